"""Resolution of assignee rules into concrete user ids."""
from __future__ import annotations

from typing import Callable, Dict, List

from accounts import directory

from .models import WorkflowStep, WorkflowStepAssignee


def _resolve_user(rule: WorkflowStepAssignee) -> List[int]:
    if rule.user_id is None or not directory.is_active_user(rule.user_id):
        return []
    return [rule.user_id]


def _resolve_role(rule: WorkflowStepAssignee) -> List[int]:
    return directory.resolve_users_by_role(rule.assignee_value or "")


def _resolve_department(rule: WorkflowStepAssignee) -> List[int]:
    return directory.resolve_users_by_department(rule.assignee_value or "")


RESOLVERS: Dict[str, Callable[[WorkflowStepAssignee], List[int]]] = {
    WorkflowStepAssignee.USER: _resolve_user,
    WorkflowStepAssignee.ROLE: _resolve_role,
    WorkflowStepAssignee.DEPARTMENT: _resolve_department,
}


def resolve_step_assignees(step: WorkflowStep) -> List[int]:
    """Expand every rule of ``step`` against the current user directory.

    The result is de-duplicated and sorted so that the same directory state
    always yields the same assignees. Nothing is cached between calls.
    """

    user_ids = set()
    for rule in step.assignees.all():
        user_ids.update(RESOLVERS[rule.assignee_type](rule))
    return sorted(user_ids)
