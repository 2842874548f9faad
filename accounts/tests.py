"""Smoke tests for the user directory."""
from __future__ import annotations

from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from documents.models import Document

from .directory import resolve_users_by_department, resolve_users_by_role
from .models import User


class UserApiTests(TestCase):
    def setUp(self) -> None:
        self.client = APIClient()

    def test_create_user(self) -> None:
        payload = {
            "email": "casey@example.com",
            "display_name": "Casey Reviewer",
            "role": "staff",
            "department": "finance",
        }
        response = self.client.post(reverse("user-list"), payload, format="json")
        self.assertEqual(response.status_code, 201)

        response = self.client.get(reverse("user-list"), {"department": "finance"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["role"], User.STAFF)

    def test_uploaders_cannot_be_deleted(self) -> None:
        uploader = User.objects.create(email="uploader@example.com", display_name="Uploader")
        bystander = User.objects.create(email="bystander@example.com", display_name="Bystander")
        Document.objects.create(title="Q3 invoice", uploaded_by=uploader)

        response = self.client.delete(reverse("user-detail", args=[uploader.id]))
        self.assertEqual(response.status_code, 409)
        self.assertTrue(User.objects.filter(pk=uploader.pk).exists())

        response = self.client.patch(reverse("user-detail", args=[uploader.id]), {"is_active": False}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data["is_active"])

        response = self.client.delete(reverse("user-detail", args=[bystander.id]))
        self.assertEqual(response.status_code, 204)

    def test_health(self) -> None:
        response = self.client.get(reverse("health"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"status": "ok"})


class DirectoryTests(TestCase):
    def setUp(self) -> None:
        self.ada = User.objects.create(email="ada@example.com", display_name="Ada", role=User.STAFF, department="legal")
        self.bo = User.objects.create(email="bo@example.com", display_name="Bo", role=User.STAFF, department="finance")
        User.objects.create(
            email="cy@example.com",
            display_name="Cy",
            role=User.STAFF,
            department="legal",
            is_active=False,
        )

    def test_resolve_by_role_skips_inactive_users(self) -> None:
        self.assertEqual(resolve_users_by_role(User.STAFF), [self.ada.id, self.bo.id])
        self.assertEqual(resolve_users_by_role(User.ADMIN), [])

    def test_resolve_by_department(self) -> None:
        self.assertEqual(resolve_users_by_department("legal"), [self.ada.id])
        self.assertEqual(resolve_users_by_department("marketing"), [])

    def test_staff_membership(self) -> None:
        self.assertTrue(self.ada.is_staff_member)
        self.assertFalse(User(role=User.USER).is_staff_member)
