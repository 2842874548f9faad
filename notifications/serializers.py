"""Serializers for notifications and audit entries."""
from __future__ import annotations

from rest_framework import serializers

from .models import DocumentActivity, Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            "id",
            "user",
            "type",
            "title",
            "message",
            "related_document",
            "data",
            "is_read",
            "read_at",
            "created_at",
        ]
        read_only_fields = fields


class DocumentActivitySerializer(serializers.ModelSerializer):
    class Meta:
        model = DocumentActivity
        fields = [
            "id",
            "document",
            "user",
            "activity_type",
            "details",
            "metadata",
            "created_at",
        ]
        read_only_fields = fields
