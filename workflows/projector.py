"""Mirror workflow instance state onto the owning document."""
from __future__ import annotations

from typing import Dict

from documents.models import Document

from .models import WorkflowInstance

DOCUMENT_STATUS_BY_INSTANCE_STATUS: Dict[str, str] = {
    WorkflowInstance.PENDING: Document.PROCESSING,
    WorkflowInstance.IN_PROGRESS: Document.PROCESSING,
    WorkflowInstance.COMPLETED: Document.COMPLETED,
    WorkflowInstance.FAILED: Document.ON_HOLD,
    WorkflowInstance.CANCELLED: Document.ON_HOLD,
}


def project_status(document: Document, instance: WorkflowInstance) -> None:
    """Copy ``instance.status`` onto ``document``.

    Must run inside the transaction that changed the instance.
    """

    document.workflow_instance = instance
    document.workflow_status = instance.status
    document.status = DOCUMENT_STATUS_BY_INSTANCE_STATUS[instance.status]
    document.save(update_fields=["workflow_instance", "workflow_status", "status", "updated_at"])


def rebuild_projection(document: Document) -> bool:
    """Recompute the document's workflow fields from the instance table.

    The active instance wins, otherwise the most recent one. Returns whether
    anything changed.
    """

    instances = WorkflowInstance.objects.filter(document=document)
    instance = (
        instances.filter(status__in=WorkflowInstance.ACTIVE_STATUSES).first()
        or instances.order_by("-created_at", "-id").first()
    )
    if instance is None:
        if document.workflow_instance_id is None and document.workflow_status is None:
            return False
        document.workflow_instance = None
        document.workflow_status = None
        document.save(update_fields=["workflow_instance", "workflow_status", "updated_at"])
        return True

    expected_status = DOCUMENT_STATUS_BY_INSTANCE_STATUS[instance.status]
    if (
        document.workflow_instance_id == instance.pk
        and document.workflow_status == instance.status
        and document.status == expected_status
    ):
        return False
    project_status(document, instance)
    return True
