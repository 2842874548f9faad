"""Event types the workflow engine emits."""
from __future__ import annotations

INSTANCE_STARTED = "instance_started"
STEP_ASSIGNED = "step_assigned"
STEP_SKIPPED = "step_skipped"
STEP_COMPLETED = "step_completed"
STEP_OVERDUE = "step_overdue"
INSTANCE_COMPLETED = "instance_completed"
INSTANCE_FAILED = "instance_failed"
INSTANCE_CANCELLED = "instance_cancelled"

EVENT_TYPES = (
    INSTANCE_STARTED,
    STEP_ASSIGNED,
    STEP_SKIPPED,
    STEP_COMPLETED,
    STEP_OVERDUE,
    INSTANCE_COMPLETED,
    INSTANCE_FAILED,
    INSTANCE_CANCELLED,
)
