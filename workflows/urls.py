"""Route registration for workflow endpoints."""
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import WorkflowInstanceViewSet, WorkflowViewSet

router = DefaultRouter()
router.register("workflows", WorkflowViewSet, basename="workflow")
router.register("workflow-instances", WorkflowInstanceViewSet, basename="workflow-instance")

urlpatterns = [
    path("", include(router.urls)),
]
