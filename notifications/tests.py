"""Tests for event recording and the notification API."""
from __future__ import annotations

from unittest import mock

from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from accounts.models import User
from documents.models import Document

from . import emitter, events
from .models import DocumentActivity, Notification
from .tasks import deliver_event, record_event


class RecordEventTests(TestCase):
    def setUp(self) -> None:
        self.uploader = User.objects.create(email="uploader@example.com", display_name="Uploader")
        self.reviewer = User.objects.create(email="reviewer@example.com", display_name="Reviewer")
        self.document = Document.objects.create(title="Q3 invoice", uploaded_by=self.uploader)

    def test_assignment_notifies_the_assignee(self) -> None:
        record_event(
            events.STEP_ASSIGNED,
            {"document_id": self.document.pk, "user_id": self.reviewer.pk, "step_name": "Review"},
        )

        notification = Notification.objects.get()
        self.assertEqual(notification.user, self.reviewer)
        self.assertEqual(notification.type, "workflow_assignment")
        self.assertEqual(notification.title, "Workflow Assignment: Review")
        self.assertEqual(notification.related_document, self.document)

        activity = DocumentActivity.objects.get()
        self.assertEqual(activity.activity_type, "workflow_step_started")
        self.assertEqual(activity.details, "Workflow step started: Review")

    def test_failure_notifies_the_uploader(self) -> None:
        record_event(
            events.INSTANCE_FAILED,
            {"document_id": self.document.pk, "reason": "Step rejected: Review"},
        )

        notification = Notification.objects.get()
        self.assertEqual(notification.user, self.uploader)
        self.assertEqual(notification.title, "Workflow Rejected")
        self.assertEqual(DocumentActivity.objects.get().details, "Workflow failed - Step rejected: Review")

    def test_skipped_steps_are_audited_without_notification(self) -> None:
        record_event(
            events.STEP_SKIPPED,
            {"document_id": self.document.pk, "step_name": "Legal", "reason": "No assignees could be resolved"},
        )

        self.assertFalse(Notification.objects.exists())
        self.assertEqual(DocumentActivity.objects.get().activity_type, "workflow_step_skipped")

    def test_unknown_actor_is_not_linked(self) -> None:
        record_event(
            events.STEP_COMPLETED,
            {"document_id": self.document.pk, "actor_id": 999999, "step_name": "Review", "action": "approved"},
        )

        activity = DocumentActivity.objects.get()
        self.assertIsNone(activity.user)
        self.assertEqual(activity.details, "Workflow step completed: Review (approved)")

    def test_missing_document_is_dropped(self) -> None:
        with self.assertLogs("notifications.tasks", level="WARNING"):
            record_event(events.INSTANCE_COMPLETED, {"document_id": 999999})
        self.assertFalse(DocumentActivity.objects.exists())

    def test_task_runs_eagerly(self) -> None:
        with self.settings(CELERY_TASK_ALWAYS_EAGER=True, CELERY_TASK_EAGER_PROPAGATES=True):
            deliver_event.apply(args=[events.INSTANCE_COMPLETED, {"document_id": self.document.pk}])

        self.assertEqual(Notification.objects.get().type, "workflow_completed")


class EmitterTests(TestCase):
    def test_unknown_event_types_are_refused(self) -> None:
        with self.assertRaises(ValueError):
            emitter.emit("instance.exploded", {})

    @mock.patch("notifications.emitter.deliver_event")
    def test_emit_waits_for_commit(self, deliver) -> None:
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            emitter.emit(events.INSTANCE_STARTED, {"document_id": 1})
            deliver.delay.assert_not_called()

        self.assertEqual(len(callbacks), 1)
        deliver.delay.assert_called_once_with(events.INSTANCE_STARTED, {"document_id": 1})

    @mock.patch("notifications.emitter.deliver_event")
    def test_enqueue_failures_are_logged_not_raised(self, deliver) -> None:
        deliver.delay.side_effect = ConnectionError("broker down")

        with self.assertLogs("notifications.emitter", level="ERROR"):
            with self.captureOnCommitCallbacks(execute=True):
                emitter.emit(events.INSTANCE_STARTED, {"document_id": 1})


class NotificationApiTests(TestCase):
    def setUp(self) -> None:
        self.client = APIClient()
        self.owner = User.objects.create(email="owner@example.com", display_name="Owner")
        self.other = User.objects.create(email="other@example.com", display_name="Other")
        self.notification = Notification.objects.create(user=self.owner, type="workflow_completed", title="Done")
        Notification.objects.create(user=self.other, type="workflow_completed", title="Not yours")

    def test_list_is_scoped_to_the_caller(self) -> None:
        response = self.client.get(reverse("notification-list"), HTTP_X_USER_ID=str(self.owner.id))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["title"] for item in response.data], ["Done"])

        response = self.client.get(reverse("notification-list"))
        self.assertEqual(response.status_code, 401)

    def test_mark_read(self) -> None:
        url = reverse("notification-read", args=[self.notification.id])

        response = self.client.post(url, format="json", HTTP_X_USER_ID=str(self.other.id))
        self.assertEqual(response.status_code, 404)

        response = self.client.post(url, format="json", HTTP_X_USER_ID=str(self.owner.id))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["is_read"])
        self.assertIsNotNone(response.data["read_at"])

        response = self.client.get(reverse("notification-list"), {"unread": "true"}, HTTP_X_USER_ID=str(self.owner.id))
        self.assertEqual(response.data, [])
