"""Fixtures shared by the workflow test modules."""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from unittest import mock

from django.test import TestCase

from accounts.models import User
from documents.models import Document
from workflows.models import Workflow, WorkflowStep, WorkflowStepAssignee


def make_user(email: str, role: str = User.USER, department: str = "", is_active: bool = True) -> User:
    return User.objects.create(
        email=email,
        display_name=email.split("@")[0].title(),
        role=role,
        department=department,
        is_active=is_active,
    )


def make_document(uploader: User, classification: Optional[str] = "invoice", title: str = "Q3 invoice") -> Document:
    return Document.objects.create(title=title, uploaded_by=uploader, classification=classification)


def make_workflow(
    steps: List[Dict[str, Any]],
    name: str = "Invoice Approval",
    trigger_value: Optional[str] = "invoice",
    priority: int = 0,
    is_active: bool = True,
) -> Workflow:
    """Create a definition from step dicts.

    Each step dict takes ``name`` and ``assignees`` plus any ``WorkflowStep``
    field. Assignees are ``User`` objects or ``(assignee_type, value)`` pairs.
    """

    workflow = Workflow.objects.create(
        name=name,
        trigger_value=trigger_value,
        priority=priority,
        is_active=is_active,
    )
    for order, fields in enumerate(steps, start=1):
        data = dict(fields)
        assignees = data.pop("assignees", [])
        data.setdefault("step_order", order)
        step = WorkflowStep.objects.create(workflow=workflow, **data)
        for assignee in assignees:
            if isinstance(assignee, User):
                WorkflowStepAssignee.objects.create(step=step, assignee_type=WorkflowStepAssignee.USER, user=assignee)
            else:
                assignee_type, value = assignee
                WorkflowStepAssignee.objects.create(step=step, assignee_type=assignee_type, assignee_value=value)
    return workflow


class WorkflowTestCase(TestCase):
    """Keeps event delivery away from the broker."""

    def setUp(self) -> None:
        patcher = mock.patch("notifications.emitter.deliver_event")
        self.deliver_event = patcher.start()
        self.addCleanup(patcher.stop)

    def delivered(self, event_type: str) -> List[Dict[str, Any]]:
        return [
            call.args[1]
            for call in self.deliver_event.delay.call_args_list
            if call.args[0] == event_type
        ]
