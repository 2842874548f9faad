"""Database models for the document store."""
from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone


def generate_document_id() -> str:
    """Human-facing reference such as ``DOC-20260119-4F2A9C``."""

    return f"DOC-{timezone.now():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


class Document(models.Model):
    """An uploaded document routed through approval workflows."""

    UPLOAD = "upload"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    ON_HOLD = "on_hold"

    STATUS_CHOICES = [
        (UPLOAD, "Upload"),
        (PENDING, "Pending"),
        (PROCESSING, "Processing"),
        (COMPLETED, "Completed"),
        (FAILED, "Failed"),
        (ON_HOLD, "On Hold"),
    ]

    title = models.CharField(max_length=255)
    document_id = models.CharField(max_length=32, unique=True, default=generate_document_id, editable=False)
    description = models.TextField(blank=True)
    uploaded_by = models.ForeignKey(
        "accounts.User",
        related_name="uploaded_documents",
        on_delete=models.PROTECT,
    )
    classification = models.CharField(max_length=128, null=True, blank=True)
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=PENDING)
    # Denormalized from the workflow instance table, which stays authoritative.
    workflow_status = models.CharField(max_length=32, null=True, blank=True)
    workflow_instance = models.ForeignKey(
        "workflows.WorkflowInstance",
        related_name="+",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "id"]
        indexes = [
            models.Index(fields=["status"], name="documents_status_idx"),
            models.Index(fields=["workflow_status"], name="documents_workflow_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.document_id})"
