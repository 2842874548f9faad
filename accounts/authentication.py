"""Identify callers by the user id forwarded in a request header."""
from __future__ import annotations

from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

from .directory import ACTING_USER_HEADER
from .models import User


class ActingUserAuthentication(BaseAuthentication):
    """Trust ``X-User-Id`` as set by the upstream gateway."""

    def authenticate(self, request):  # type: ignore[override]
        raw_value = request.headers.get(ACTING_USER_HEADER)
        if not raw_value:
            return None
        try:
            user_id = int(raw_value)
        except ValueError as exc:
            raise AuthenticationFailed(f"Invalid {ACTING_USER_HEADER} header.") from exc

        user = User.objects.filter(pk=user_id, is_active=True).first()
        if user is None:
            raise AuthenticationFailed("Unknown or inactive user.")
        return (user, None)

    def authenticate_header(self, request):  # type: ignore[override]
        return ACTING_USER_HEADER
