"""API views for the caller's notifications."""
from __future__ import annotations

from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.directory import acting_user

from .models import Notification
from .serializers import NotificationSerializer


class NotificationViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    serializer_class = NotificationSerializer

    def get_queryset(self):  # type: ignore[override]
        queryset = Notification.objects.filter(user=acting_user(self.request))
        unread = self.request.query_params.get("unread")
        if unread is not None and unread.lower() in {"1", "true", "yes"}:
            queryset = queryset.filter(is_read=False)
        return queryset

    @action(detail=True, methods=["post"], url_path="read")
    def read(self, request, *args, **kwargs):  # type: ignore[override]
        """Mark one of the caller's notifications as read."""

        notification = self.get_object()
        notification.mark_read()
        serializer = self.get_serializer(notification)
        return Response(serializer.data)
