"""Workflow instance engine.

Every state change of a :class:`WorkflowInstance` goes through this module.
Mutations of an existing instance run inside ``transaction.atomic`` with the
instance row locked (``select_for_update``), so the move from one step to the
next happens exactly once even when assignees race. The document projection is
written in the same transaction, and events are handed to the emitter, which
only enqueues them after commit.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone
from rest_framework import serializers

from accounts.models import User
from documents.models import Document
from notifications import emitter, events

from . import conditions
from .assignees import resolve_step_assignees
from .exceptions import Conflict, Forbidden, InvalidState, NotFound
from .models import Workflow, WorkflowInstance, WorkflowStep, WorkflowStepInstance
from .projector import project_status
from .resolver import resolve

logger = logging.getLogger(__name__)

NO_ASSIGNEES = "No assignees could be resolved"
CONDITIONS_NOT_MET = "Step conditions not met"


@dataclass
class StepCompletion:
    """Outcome of :func:`complete_step`.

    ``already_completed`` is set when the caller lost a race: another assignee
    resolved the step first and nothing was changed.
    """

    instance: WorkflowInstance
    already_completed: bool = False


def _event_payload(instance: WorkflowInstance, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "document_id": instance.document_id,
        "instance_id": instance.pk,
        "workflow_id": instance.workflow_id,
        "status": instance.status,
    }
    payload.update(extra)
    return payload


def _step_payload(step: WorkflowStep) -> Dict[str, Any]:
    return {"step_id": step.pk, "step_name": step.name, "step_order": step.step_order}


def _lock_instance(instance_id: int) -> WorkflowInstance:
    instance = WorkflowInstance.objects.select_for_update().filter(pk=instance_id).first()
    if instance is None:
        raise NotFound(f"Workflow instance {instance_id} not found.")
    return instance


def _lock_document(document_id: int) -> Document:
    document = Document.objects.select_for_update().filter(pk=document_id).first()
    if document is None:
        raise NotFound(f"Document {document_id} not found.")
    return document


def assign_workflow(
    document_id: int,
    definition_id: Optional[int] = None,
    actor_id: Optional[int] = None,
) -> Optional[WorkflowInstance]:
    """Resolve a definition for the document and start it.

    Returns ``None`` when no definition matches, which is not an error.
    """

    with transaction.atomic():
        document = _lock_document(document_id)
        workflow = resolve(document.classification, definition_id)
        if workflow is None:
            logger.info(
                "No workflow matches document %s (classification=%r)",
                document.pk,
                document.classification,
            )
            return None
        return _start(document, workflow, actor_id)


def start_instance(
    document: Document,
    definition: Workflow,
    actor_id: Optional[int] = None,
) -> WorkflowInstance:
    """Start ``definition`` for ``document``; ``Conflict`` if one is already running."""

    with transaction.atomic():
        return _start(_lock_document(document.pk), definition, actor_id)


def _start(document: Document, workflow: Workflow, actor_id: Optional[int]) -> WorkflowInstance:
    if WorkflowInstance.objects.filter(
        document=document, status__in=WorkflowInstance.ACTIVE_STATUSES
    ).exists():
        raise Conflict()

    instance = WorkflowInstance.objects.create(
        document=document,
        workflow=workflow,
        status=WorkflowInstance.PENDING,
        started_at=timezone.now(),
    )
    project_status(document, instance)
    logger.info("Started workflow %s instance %s for document %s", workflow.pk, instance.pk, document.pk)
    emitter.emit(
        events.INSTANCE_STARTED,
        _event_payload(instance, workflow_name=workflow.name, actor_id=actor_id),
    )

    _enter_step(instance, document, workflow.first_step())
    return instance


def _skip_reason(step: WorkflowStep, document: Document, assignees: List[int]) -> Optional[str]:
    if step.conditions:
        holds = conditions.evaluate(step.conditions, document)
        if not holds and conditions.is_enforced(step.conditions):
            return CONDITIONS_NOT_MET
        if not holds:
            logger.info("Step %s conditions do not hold for document %s; not enforced", step.pk, document.pk)
    if not assignees:
        return NO_ASSIGNEES
    return None


def _enter_step(instance: WorkflowInstance, document: Document, step: Optional[WorkflowStep]) -> None:
    """Make ``step`` current, skipping forward past steps nobody can act on."""

    while step is not None:
        assignees = resolve_step_assignees(step)
        reason = _skip_reason(step, document, assignees)
        if reason is None:
            _assign_step(instance, document, step, assignees)
            return
        _auto_skip_step(instance, document, step, reason)
        step = step.next_step()

    _finish(instance, document, WorkflowInstance.COMPLETED)


def _move_to(instance: WorkflowInstance, document: Document, step: WorkflowStep) -> None:
    instance.current_step = step
    instance.status = WorkflowInstance.IN_PROGRESS
    instance.save(update_fields=["current_step", "status", "updated_at"])
    project_status(document, instance)


def _assign_step(
    instance: WorkflowInstance,
    document: Document,
    step: WorkflowStep,
    assignees: List[int],
) -> None:
    _move_to(instance, document, step)

    now = timezone.now()
    due_at = now + timedelta(hours=step.timeout_hours) if step.timeout_hours else None
    for user_id in assignees:
        step_instance = WorkflowStepInstance.objects.create(
            instance=instance,
            step=step,
            assigned_to_id=user_id,
            status=WorkflowStepInstance.PENDING,
            started_at=now,
            due_at=due_at,
        )
        emitter.emit(
            events.STEP_ASSIGNED,
            _event_payload(
                instance,
                step_instance_id=step_instance.pk,
                user_id=user_id,
                due_at=due_at.isoformat() if due_at else None,
                **_step_payload(step),
            ),
        )
    logger.info(
        "Instance %s entered step %s with %d assignee(s)",
        instance.pk,
        step.pk,
        len(assignees),
    )


def _auto_skip_step(instance: WorkflowInstance, document: Document, step: WorkflowStep, reason: str) -> None:
    _move_to(instance, document, step)

    now = timezone.now()
    step_instance = WorkflowStepInstance.objects.create(
        instance=instance,
        step=step,
        assigned_to=None,
        status=WorkflowStepInstance.SKIPPED,
        comments=reason,
        started_at=now,
        completed_at=now,
    )
    logger.info("Auto-skipping step %s of instance %s: %s", step.pk, instance.pk, reason)
    emitter.emit(
        events.STEP_SKIPPED,
        _event_payload(instance, step_instance_id=step_instance.pk, reason=reason, **_step_payload(step)),
    )


def _finish(
    instance: WorkflowInstance,
    document: Document,
    status: str,
    notes: str = "",
    actor_id: Optional[int] = None,
) -> None:
    instance.status = status
    instance.completed_at = timezone.now()
    instance.current_step = None
    if notes:
        instance.notes = notes
    instance.save(update_fields=["status", "completed_at", "current_step", "notes", "updated_at"])
    project_status(document, instance)

    terminal_events = {
        WorkflowInstance.COMPLETED: events.INSTANCE_COMPLETED,
        WorkflowInstance.FAILED: events.INSTANCE_FAILED,
        WorkflowInstance.CANCELLED: events.INSTANCE_CANCELLED,
    }
    logger.info("Instance %s finished as %s", instance.pk, status)
    emitter.emit(
        terminal_events[status],
        _event_payload(instance, reason=notes or None, actor_id=actor_id),
    )


def _resolve_step(instance: WorkflowInstance, step: WorkflowStep, action: str) -> Optional[str]:
    """Return how the step resolves after ``action``, or ``None`` while waiting."""

    if not step.requires_all_assignees or action == WorkflowStepInstance.REJECTED:
        return action

    statuses = list(
        WorkflowStepInstance.objects.filter(instance=instance, step=step).values_list("status", flat=True)
    )
    if any(status in WorkflowStepInstance.OPEN_STATUSES for status in statuses):
        return None
    if WorkflowStepInstance.APPROVED in statuses:
        return WorkflowStepInstance.APPROVED
    return WorkflowStepInstance.SKIPPED


def _supersede_open(instance: WorkflowInstance, step: WorkflowStep) -> int:
    now = timezone.now()
    return WorkflowStepInstance.objects.filter(
        instance=instance,
        step=step,
        status__in=WorkflowStepInstance.OPEN_STATUSES,
    ).update(status=WorkflowStepInstance.SKIPPED, superseded=True, completed_at=now, updated_at=now)


def complete_step(
    instance_id: int,
    step_instance_id: int,
    acting_user_id: int,
    action: str,
    comments: str = "",
) -> StepCompletion:
    """Record an assignee's decision and advance the instance if the step resolved."""

    if action not in WorkflowStepInstance.ACTIONS:
        raise serializers.ValidationError(
            {"action": [f"Must be one of: {', '.join(WorkflowStepInstance.ACTIONS)}."]}
        )

    with transaction.atomic():
        instance = _lock_instance(instance_id)
        step_instance = (
            WorkflowStepInstance.objects.select_related("step").filter(pk=step_instance_id).first()
        )
        if step_instance is None:
            raise NotFound(f"Step instance {step_instance_id} not found.")
        if step_instance.instance_id != instance.pk:
            raise InvalidState("Step instance does not belong to this workflow instance.")
        if step_instance.assigned_to_id is None or step_instance.assigned_to_id != acting_user_id:
            raise Forbidden()
        if step_instance.superseded:
            logger.info(
                "Step instance %s was already resolved by another assignee; ignoring %s by user %s",
                step_instance.pk,
                action,
                acting_user_id,
            )
            return StepCompletion(instance=instance, already_completed=True)
        if instance.status != WorkflowInstance.IN_PROGRESS or not step_instance.is_open:
            raise InvalidState()

        step_instance.status = action
        step_instance.comments = comments or ""
        step_instance.completed_at = timezone.now()
        step_instance.save(update_fields=["status", "comments", "completed_at", "updated_at"])

        step = step_instance.step
        emitter.emit(
            events.STEP_COMPLETED,
            _event_payload(
                instance,
                step_instance_id=step_instance.pk,
                action=action,
                actor_id=acting_user_id,
                comments=step_instance.comments,
                **_step_payload(step),
            ),
        )

        resolution = _resolve_step(instance, step, action)
        if resolution is None:
            logger.info("Step %s of instance %s waits for remaining assignees", step.pk, instance.pk)
            return StepCompletion(instance=instance)

        superseded = _supersede_open(instance, step)
        if superseded:
            logger.info("Superseded %d open step instance(s) of step %s", superseded, step.pk)

        document = Document.objects.get(pk=instance.document_id)
        if resolution == WorkflowStepInstance.REJECTED and step.is_required:
            _finish(instance, document, WorkflowInstance.FAILED, notes=f"Step rejected: {step.name}")
        else:
            _enter_step(instance, document, step.next_step())

    return StepCompletion(instance=instance)


def cancel_instance(
    instance_id: int,
    reason: Optional[str] = None,
    actor: Optional[User] = None,
) -> WorkflowInstance:
    """Administratively terminate a running instance."""

    with transaction.atomic():
        instance = _lock_instance(instance_id)
        document = Document.objects.get(pk=instance.document_id)
        if actor is not None and not actor.is_staff_member and document.uploaded_by_id != actor.pk:
            raise Forbidden("You do not have permission to cancel this workflow.")
        if instance.is_terminal:
            raise InvalidState()

        now = timezone.now()
        closed = WorkflowStepInstance.objects.filter(
            instance=instance,
            status__in=WorkflowStepInstance.OPEN_STATUSES,
        ).update(status=WorkflowStepInstance.SKIPPED, completed_at=now, updated_at=now)
        logger.info("Cancelling instance %s; closed %d open step instance(s)", instance.pk, closed)
        _finish(
            instance,
            document,
            WorkflowInstance.CANCELLED,
            notes=reason or "",
            actor_id=actor.pk if actor is not None else None,
        )
    return instance


def get_document_workflow(document_id: int) -> Optional[WorkflowInstance]:
    """The document's active instance, otherwise its most recent one."""

    if not Document.objects.filter(pk=document_id).exists():
        raise NotFound(f"Document {document_id} not found.")
    instances = (
        WorkflowInstance.objects.filter(document_id=document_id)
        .select_related("workflow", "current_step")
        .prefetch_related("step_instances__step")
    )
    return (
        instances.filter(status__in=WorkflowInstance.ACTIVE_STATUSES).first()
        or instances.order_by("-created_at", "-id").first()
    )


def list_pending_steps_for(user_id: int) -> QuerySet:
    """Open step instances assigned to ``user_id``, oldest first."""

    return (
        WorkflowStepInstance.objects.select_related("instance__document", "instance__workflow", "step")
        .filter(
            assigned_to_id=user_id,
            status__in=WorkflowStepInstance.OPEN_STATUSES,
            instance__status=WorkflowInstance.IN_PROGRESS,
        )
        .order_by("created_at", "id")
    )
