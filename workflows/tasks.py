"""Periodic workflow tasks."""
from __future__ import annotations

import logging

from celery import shared_task
from django.db import transaction
from django.utils import timezone

from notifications import emitter, events

from .models import WorkflowInstance, WorkflowStepInstance

logger = logging.getLogger(__name__)


@shared_task
def remind_overdue_steps() -> int:
    """Emit a reminder for every open step instance past its due date."""

    now = timezone.now()
    overdue = (
        WorkflowStepInstance.objects.select_related("instance", "step")
        .filter(
            status__in=WorkflowStepInstance.OPEN_STATUSES,
            due_at__lt=now,
            instance__status=WorkflowInstance.IN_PROGRESS,
        )
        .order_by("due_at", "id")
    )

    count = 0
    with transaction.atomic():
        for step_instance in overdue:
            instance = step_instance.instance
            emitter.emit(
                events.STEP_OVERDUE,
                {
                    "document_id": instance.document_id,
                    "instance_id": instance.pk,
                    "workflow_id": instance.workflow_id,
                    "status": instance.status,
                    "step_instance_id": step_instance.pk,
                    "step_id": step_instance.step_id,
                    "step_name": step_instance.step.name,
                    "user_id": step_instance.assigned_to_id,
                    "due_at": step_instance.due_at.isoformat(),
                },
            )
            count += 1

    if count:
        logger.info("Sent %d overdue workflow step reminder(s)", count)
    return count
