"""Database models for user notifications and the document audit trail."""
from __future__ import annotations

from django.db import models
from django.utils import timezone


class Notification(models.Model):
    """An in-app notification addressed to one user."""

    user = models.ForeignKey("accounts.User", related_name="notifications", on_delete=models.CASCADE)
    type = models.CharField(max_length=64)
    title = models.CharField(max_length=255)
    message = models.TextField(blank=True)
    related_document = models.ForeignKey(
        "documents.Document",
        related_name="notifications",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
    )
    data = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "is_read"], name="notifications_unread_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.title} -> {self.user_id}"

    def mark_read(self) -> None:
        if self.is_read:
            return
        self.is_read = True
        self.read_at = timezone.now()
        self.save(update_fields=["is_read", "read_at"])


class DocumentActivity(models.Model):
    """One audit trail entry for a document."""

    document = models.ForeignKey("documents.Document", related_name="activities", on_delete=models.CASCADE)
    user = models.ForeignKey(
        "accounts.User",
        related_name="document_activities",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    activity_type = models.CharField(max_length=64)
    details = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name_plural = "document activities"

    def __str__(self) -> str:
        return f"{self.activity_type} on {self.document_id}"
