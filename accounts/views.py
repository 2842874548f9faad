"""API views for the user directory."""
from __future__ import annotations

from rest_framework import status, viewsets
from rest_framework.decorators import api_view
from rest_framework.exceptions import APIException
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.response import Response

from .models import User
from .serializers import UserSerializer


class UserInUse(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "User has uploaded documents; deactivate the user instead."
    default_code = "user_in_use"


class UserViewSet(viewsets.ModelViewSet):
    queryset = User.objects.all()
    serializer_class = UserSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["email", "display_name", "department"]
    ordering_fields = ["display_name", "created_at"]
    ordering = ["display_name"]

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset()
        role = self.request.query_params.get("role")
        if role:
            queryset = queryset.filter(role=role)
        department = self.request.query_params.get("department")
        if department:
            queryset = queryset.filter(department=department)
        return queryset

    def perform_destroy(self, instance):  # type: ignore[override]
        if instance.uploaded_documents.exists():
            raise UserInUse()
        instance.delete()


@api_view(["GET"])
def health(request):  # type: ignore[override]
    """Readiness endpoint for orchestration tooling."""

    return Response({"status": "ok"})
