"""User lookups consumed by the workflow engine and the API layer."""
from __future__ import annotations

from typing import List

from rest_framework.exceptions import NotAuthenticated
from rest_framework.request import Request

from .models import User

ACTING_USER_HEADER = "X-User-Id"


def resolve_users_by_role(role: str) -> List[int]:
    """Return the ids of every active user holding ``role``, ascending."""

    return list(
        User.objects.filter(role=role, is_active=True)
        .order_by("id")
        .values_list("id", flat=True)
    )


def resolve_users_by_department(department: str) -> List[int]:
    """Return the ids of every active member of ``department``, ascending."""

    return list(
        User.objects.filter(department=department, is_active=True)
        .order_by("id")
        .values_list("id", flat=True)
    )


def is_active_user(user_id: int) -> bool:
    return User.objects.filter(pk=user_id, is_active=True).exists()


def acting_user(request: Request) -> User:
    """The caller identified by the ``X-User-Id`` header.

    Resolution happens in :class:`accounts.authentication.ActingUserAuthentication`;
    this only insists that it succeeded.
    """

    user = request.user
    if not isinstance(user, User):
        raise NotAuthenticated(f"The {ACTING_USER_HEADER} header is required.")
    return user
