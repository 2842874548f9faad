"""API views for the document store."""
from __future__ import annotations

from typing import Optional

from django.db import transaction
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response

from accounts.models import User
from notifications.serializers import DocumentActivitySerializer
from workflows import engine
from workflows.serializers import AssignWorkflowRequestSerializer, WorkflowInstanceSerializer

from .models import Document
from .serializers import DocumentSerializer


def _optional_actor_id(request: Request) -> Optional[int]:
    user = request.user
    return user.pk if isinstance(user, User) else None


class DocumentViewSet(viewsets.ModelViewSet):
    queryset = Document.objects.select_related("uploaded_by").all()
    serializer_class = DocumentSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["title", "description", "document_id", "classification"]
    ordering_fields = ["created_at", "updated_at", "title", "status"]
    ordering = ["-created_at"]

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset()
        for field in ("status", "workflow_status", "classification", "uploaded_by"):
            value = self.request.query_params.get(field)
            if value:
                queryset = queryset.filter(**{field: value})
        return queryset

    def perform_create(self, serializer):  # type: ignore[override]
        # Workflow assignment happens automatically on upload.
        with transaction.atomic():
            document = serializer.save()
            if document.classification:
                engine.assign_workflow(document.pk, actor_id=document.uploaded_by_id)
        document.refresh_from_db()

    @action(detail=True, methods=["get", "post"], url_path="workflow")
    def workflow(self, request: Request, pk=None):  # type: ignore[override]
        """Show the document's workflow, or assign one."""

        document = self.get_object()
        if request.method == "GET":
            instance = engine.get_document_workflow(document.pk)
            data = WorkflowInstanceSerializer(instance).data if instance is not None else None
            return Response({"instance": data})

        payload = AssignWorkflowRequestSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        instance = engine.assign_workflow(
            document.pk,
            payload.validated_data.get("workflow_id"),
            actor_id=_optional_actor_id(request),
        )
        if instance is None:
            return Response({"instance": None, "detail": "No matching workflow"})

        instance = engine.get_document_workflow(document.pk)
        return Response(
            {"instance": WorkflowInstanceSerializer(instance).data},
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["get"], url_path="activities")
    def activities(self, request: Request, pk=None):  # type: ignore[override]
        """Audit trail of the document, oldest first."""

        document = self.get_object()
        serializer = DocumentActivitySerializer(document.activities.all(), many=True)
        return Response(serializer.data)
