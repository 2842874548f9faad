"""Database models for the user directory."""
from __future__ import annotations

from django.db import models


class User(models.Model):
    """A user that can own documents and act on workflow steps."""

    ADMIN = "admin"
    STAFF = "staff"
    USER = "user"

    ROLE_CHOICES = [
        (ADMIN, "Administrator"),
        (STAFF, "Staff"),
        (USER, "User"),
    ]

    email = models.EmailField(unique=True)
    display_name = models.CharField(max_length=255)
    role = models.CharField(max_length=32, choices=ROLE_CHOICES, default=USER)
    department = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["display_name", "email"]
        indexes = [
            models.Index(fields=["role", "is_active"], name="accounts_user_role_active_idx"),
            models.Index(fields=["department", "is_active"], name="accounts_user_dept_active_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.display_name} <{self.email}>"

    @property
    def is_staff_member(self) -> bool:
        return self.role in {self.ADMIN, self.STAFF}
