"""Serializers for document records."""
from __future__ import annotations

from typing import Any

from rest_framework import serializers

from accounts.models import User

from .models import Document


class DocumentSerializer(serializers.ModelSerializer):
    uploaded_by = serializers.PrimaryKeyRelatedField(queryset=User.objects.all())

    class Meta:
        model = Document
        fields = [
            "id",
            "document_id",
            "title",
            "description",
            "uploaded_by",
            "classification",
            "status",
            "workflow_status",
            "workflow_instance",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "document_id",
            "status",
            "workflow_status",
            "workflow_instance",
            "created_at",
            "updated_at",
        ]

    def validate_classification(self, value: Any) -> Any:
        if value is None:
            return None
        return value.strip() or None
