"""Smoke tests for the document API."""
from __future__ import annotations

from unittest import mock

from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from accounts.models import User
from workflows.models import Workflow, WorkflowStep, WorkflowStepAssignee

from .models import Document


class DocumentApiTests(TestCase):
    def setUp(self) -> None:
        self.client = APIClient()
        patcher = mock.patch("notifications.emitter.deliver_event")
        patcher.start()
        self.addCleanup(patcher.stop)

        self.uploader = User.objects.create(email="uploader@example.com", display_name="Uploader")
        self.reviewer = User.objects.create(email="reviewer@example.com", display_name="Reviewer")
        self.workflow = Workflow.objects.create(name="Invoice Approval", trigger_value="invoice")
        step = WorkflowStep.objects.create(workflow=self.workflow, name="Review", step_order=1)
        WorkflowStepAssignee.objects.create(step=step, assignee_type=WorkflowStepAssignee.USER, user=self.reviewer)

    def test_upload_with_classification_starts_a_workflow(self) -> None:
        payload = {"title": "Q3 invoice", "uploaded_by": self.uploader.id, "classification": "invoice"}
        response = self.client.post(reverse("document-list"), payload, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data["document_id"].startswith("DOC-"))
        self.assertEqual(response.data["status"], Document.PROCESSING)
        self.assertEqual(response.data["workflow_status"], "in_progress")
        self.assertIsNotNone(response.data["workflow_instance"])

        response = self.client.get(reverse("document-workflow", args=[response.data["id"]]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["instance"]["workflow_name"], "Invoice Approval")

    def test_upload_without_match_leaves_document_pending(self) -> None:
        payload = {"title": "Holiday photo", "uploaded_by": self.uploader.id, "classification": "photo"}
        response = self.client.post(reverse("document-list"), payload, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], Document.PENDING)
        self.assertIsNone(response.data["workflow_status"])

        response = self.client.get(reverse("document-workflow", args=[response.data["id"]]))
        self.assertEqual(response.data, {"instance": None})

    def test_manual_assignment(self) -> None:
        document = Document.objects.create(title="Unsorted", uploaded_by=self.uploader)
        url = reverse("document-workflow", args=[document.id])

        response = self.client.post(url, {}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"instance": None, "detail": "No matching workflow"})

        response = self.client.post(
            url, {"workflow_id": self.workflow.id}, format="json", HTTP_X_USER_ID=str(self.uploader.id)
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["instance"]["workflow"], self.workflow.id)

        response = self.client.post(url, {"workflow_id": self.workflow.id}, format="json")
        self.assertEqual(response.status_code, 409)

        response = self.client.post(url, {"workflow_id": 999999}, format="json")
        self.assertEqual(response.status_code, 404)

    def test_activities_endpoint(self) -> None:
        document = Document.objects.create(title="Unsorted", uploaded_by=self.uploader)
        document.activities.create(activity_type="workflow_assigned", details="Workflow assigned")

        response = self.client.get(reverse("document-activities", args=[document.id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([entry["activity_type"] for entry in response.data], ["workflow_assigned"])

    def test_filter_by_status(self) -> None:
        Document.objects.create(title="Unsorted", uploaded_by=self.uploader)

        response = self.client.get(reverse("document-list"), {"status": Document.PENDING})
        self.assertEqual(len(response.data), 1)
        response = self.client.get(reverse("document-list"), {"status": Document.COMPLETED})
        self.assertEqual(len(response.data), 0)
