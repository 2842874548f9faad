"""Background tasks that turn workflow events into notifications and audit entries."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from celery import shared_task

from accounts.models import User
from documents.models import Document

from . import events
from .models import DocumentActivity, Notification

logger = logging.getLogger(__name__)

ACTIVITY_TYPES: Dict[str, str] = {
    events.INSTANCE_STARTED: "workflow_assigned",
    events.STEP_ASSIGNED: "workflow_step_started",
    events.STEP_SKIPPED: "workflow_step_skipped",
    events.STEP_COMPLETED: "workflow_step_completed",
    events.STEP_OVERDUE: "workflow_step_overdue",
    events.INSTANCE_COMPLETED: "workflow_completed",
    events.INSTANCE_FAILED: "workflow_failed",
    events.INSTANCE_CANCELLED: "workflow_cancelled",
}


def _details(event_type: str, payload: Dict[str, Any]) -> str:
    label = ACTIVITY_TYPES[event_type].replace("_", " ").capitalize()
    step_name = payload.get("step_name")
    if step_name:
        label = f"{label}: {step_name}"
    action = payload.get("action")
    if action:
        label = f"{label} ({action})"
    reason = payload.get("reason")
    if reason:
        label = f"{label} - {reason}"
    return label


def _notification_for(event_type: str, payload: Dict[str, Any], document: Document) -> Optional[Dict[str, Any]]:
    """Describe the notification an event produces, if any."""

    step_name = payload.get("step_name", "")
    if event_type == events.STEP_ASSIGNED:
        return {
            "user_id": payload["user_id"],
            "type": "workflow_assignment",
            "title": f"Workflow Assignment: {step_name}",
            "message": f"You have been assigned to review/approve document: {document.title}",
        }
    if event_type == events.STEP_OVERDUE:
        return {
            "user_id": payload["user_id"],
            "type": "workflow_step_overdue",
            "title": f"Workflow Step Overdue: {step_name}",
            "message": f"Your action on document '{document.title}' was due {payload.get('due_at')}.",
        }
    if event_type == events.INSTANCE_COMPLETED:
        return {
            "user_id": document.uploaded_by_id,
            "type": "workflow_completed",
            "title": "Workflow Completed",
            "message": f"Workflow for document '{document.title}' has been completed.",
        }
    if event_type == events.INSTANCE_FAILED:
        return {
            "user_id": document.uploaded_by_id,
            "type": "workflow_failed",
            "title": "Workflow Rejected",
            "message": f"Workflow for document '{document.title}' was rejected and needs attention.",
        }
    if event_type == events.INSTANCE_CANCELLED:
        return {
            "user_id": document.uploaded_by_id,
            "type": "workflow_cancelled",
            "title": "Workflow Cancelled",
            "message": f"Workflow for document '{document.title}' has been cancelled.",
        }
    return None


def record_event(event_type: str, payload: Dict[str, Any]) -> None:
    """Persist the audit entry and notification for one workflow event."""

    document = Document.objects.filter(pk=payload.get("document_id")).first()
    if document is None:
        logger.warning("Dropping %s event for missing document %s", event_type, payload.get("document_id"))
        return

    actor_id = payload.get("actor_id")
    if actor_id is not None and not User.objects.filter(pk=actor_id).exists():
        actor_id = None

    DocumentActivity.objects.create(
        document=document,
        user_id=actor_id,
        activity_type=ACTIVITY_TYPES[event_type],
        details=_details(event_type, payload),
        metadata=payload,
    )

    notification = _notification_for(event_type, payload, document)
    if notification is None:
        return
    Notification.objects.create(
        user_id=notification["user_id"],
        type=notification["type"],
        title=notification["title"],
        message=notification["message"],
        related_document=document,
        data=payload,
    )


@shared_task(bind=True, max_retries=3, default_retry_delay=5)
def deliver_event(self, event_type: str, payload: Dict[str, Any]) -> None:
    """Record a workflow event outside the request that produced it."""

    try:
        record_event(event_type, payload)
        logger.info("Recorded %s event for document %s", event_type, payload.get("document_id"))
    except Exception as exc:  # pragma: no cover - retries exercised in production
        logger.exception("Recording %s event failed", event_type)
        if self.request.retries >= self.max_retries:
            return
        raise self.retry(exc=exc, countdown=min(60, 2 ** self.request.retries))
