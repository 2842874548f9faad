"""Errors raised by the workflow engine.

They subclass DRF's ``APIException`` so views can let them propagate to the
framework's exception handler.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException


class WorkflowError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Workflow request could not be processed."
    default_code = "workflow_error"


class NotFound(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Workflow resource not found."
    default_code = "not_found"


class Conflict(WorkflowError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Document already has an active workflow."
    default_code = "conflict"


class InvalidState(WorkflowError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This step/workflow has already been resolved."
    default_code = "invalid_state"


class Forbidden(WorkflowError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not assigned to this step."
    default_code = "forbidden"
