"""Hands workflow events to the notification and audit pipeline.

Events are only enqueued once the surrounding transaction commits, so a rolled
back mutation emits nothing and no broker I/O happens while row locks are held.
Delivery is best-effort: enqueue failures are logged here and never reach the
caller.
"""
from __future__ import annotations

import logging
from functools import partial
from typing import Any, Dict

from django.db import transaction

from .events import EVENT_TYPES
from .tasks import deliver_event

logger = logging.getLogger(__name__)


def emit(event_type: str, payload: Dict[str, Any]) -> None:
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown workflow event type: {event_type}")
    transaction.on_commit(partial(_dispatch, event_type, dict(payload)))


def _dispatch(event_type: str, payload: Dict[str, Any]) -> None:
    try:
        deliver_event.delay(event_type, payload)
    except Exception:
        logger.exception(
            "Failed to enqueue %s event for document %s",
            event_type,
            payload.get("document_id"),
        )
