"""Trigger resolution: pick the workflow definition a document should run."""
from __future__ import annotations

from typing import Optional

from django.db.models import Q

from .exceptions import NotFound
from .models import Workflow


def resolve(classification: Optional[str], requested_definition_id: Optional[int] = None) -> Optional[Workflow]:
    """Return the best-matching active definition, or ``None``.

    An explicit ``requested_definition_id`` wins and must name an active
    definition. Otherwise active classification-triggered definitions whose
    ``trigger_value`` equals ``classification`` or is NULL are considered,
    highest ``priority`` first, newest first on ties. Documents without a
    classification match nothing.
    """

    if requested_definition_id is not None:
        workflow = Workflow.objects.filter(pk=requested_definition_id, is_active=True).first()
        if workflow is None:
            raise NotFound(f"Workflow {requested_definition_id} does not exist or is inactive.")
        return workflow

    if not classification:
        return None

    return (
        Workflow.objects.filter(is_active=True, trigger_type=Workflow.CLASSIFICATION)
        .filter(Q(trigger_value=classification) | Q(trigger_value__isnull=True))
        .order_by("-priority", "-created_at", "-id")
        .first()
    )
