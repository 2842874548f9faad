"""URL configuration for the SMART-DOCS workflow service."""
from django.urls import include, path

urlpatterns = [
    path("api/", include("accounts.urls")),
    path("api/", include("documents.urls")),
    path("api/", include("workflows.urls")),
    path("api/", include("notifications.urls")),
]
