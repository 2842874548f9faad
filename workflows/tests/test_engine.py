"""Behaviour of the workflow instance engine."""
from __future__ import annotations

from datetime import timedelta
from unittest import mock

from rest_framework import serializers

from accounts.models import User
from documents.models import Document
from notifications import events
from workflows import engine
from workflows.exceptions import Conflict, Forbidden, InvalidState, NotFound
from workflows.models import WorkflowInstance, WorkflowStepAssignee, WorkflowStepInstance
from workflows.projector import DOCUMENT_STATUS_BY_INSTANCE_STATUS, rebuild_projection

from .helpers import WorkflowTestCase, make_document, make_user, make_workflow


def open_step_instance(instance: WorkflowInstance, user: User) -> WorkflowStepInstance:
    return WorkflowStepInstance.objects.get(
        instance=instance,
        assigned_to=user,
        status__in=WorkflowStepInstance.OPEN_STATUSES,
    )


class InvoiceApprovalScenarioTests(WorkflowTestCase):
    """Step A goes to either of u1/u2, step B needs both u3 and u4."""

    def setUp(self) -> None:
        super().setUp()
        self.uploader = make_user("uploader@example.com")
        self.u1 = make_user("u1@example.com")
        self.u2 = make_user("u2@example.com")
        self.u3 = make_user("u3@example.com")
        self.u4 = make_user("u4@example.com")
        self.workflow = make_workflow(
            [
                {"name": "Manager review", "assignees": [self.u1, self.u2]},
                {"name": "Finance sign-off", "assignees": [self.u3, self.u4], "requires_all_assignees": True},
            ]
        )
        self.step_a, self.step_b = list(self.workflow.steps.order_by("step_order"))
        self.document = make_document(self.uploader)
        self.instance = engine.assign_workflow(self.document.pk)

    def assert_projection(self) -> None:
        self.instance.refresh_from_db()
        self.document.refresh_from_db()
        self.assertEqual(self.document.workflow_instance_id, self.instance.pk)
        self.assertEqual(self.document.workflow_status, self.instance.status)
        self.assertEqual(self.document.status, DOCUMENT_STATUS_BY_INSTANCE_STATUS[self.instance.status])

    def test_assignment_creates_one_step_instance_per_assignee(self) -> None:
        self.assertEqual(self.instance.status, WorkflowInstance.IN_PROGRESS)
        self.assertEqual(self.instance.current_step, self.step_a)
        assigned = set(
            WorkflowStepInstance.objects.filter(instance=self.instance, step=self.step_a).values_list(
                "assigned_to_id", flat=True
            )
        )
        self.assertEqual(assigned, {self.u1.pk, self.u2.pk})
        self.assert_projection()
        self.assertEqual(self.document.status, Document.PROCESSING)

    def test_first_responder_wins_then_rejection_fails_the_instance(self) -> None:
        engine.complete_step(self.instance.pk, open_step_instance(self.instance, self.u1).pk, self.u1.pk, "approved")
        self.assert_projection()
        self.assertEqual(self.instance.current_step, self.step_b)

        superseded = WorkflowStepInstance.objects.get(instance=self.instance, assigned_to=self.u2)
        self.assertEqual(superseded.status, WorkflowStepInstance.SKIPPED)
        self.assertTrue(superseded.superseded)

        engine.complete_step(self.instance.pk, open_step_instance(self.instance, self.u3).pk, self.u3.pk, "approved")
        self.assert_projection()
        self.assertEqual(self.instance.status, WorkflowInstance.IN_PROGRESS)
        self.assertEqual(self.instance.current_step, self.step_b)

        engine.complete_step(
            self.instance.pk,
            open_step_instance(self.instance, self.u4).pk,
            self.u4.pk,
            "rejected",
            "Amounts do not match",
        )
        self.assert_projection()
        self.assertEqual(self.instance.status, WorkflowInstance.FAILED)
        self.assertEqual(self.instance.notes, "Step rejected: Finance sign-off")
        self.assertIsNone(self.instance.current_step)
        self.assertIsNotNone(self.instance.completed_at)
        self.assertEqual(self.document.status, Document.ON_HOLD)

    def test_all_assignees_approving_completes_the_instance(self) -> None:
        engine.complete_step(self.instance.pk, open_step_instance(self.instance, self.u2).pk, self.u2.pk, "approved")
        engine.complete_step(self.instance.pk, open_step_instance(self.instance, self.u4).pk, self.u4.pk, "approved")
        engine.complete_step(self.instance.pk, open_step_instance(self.instance, self.u3).pk, self.u3.pk, "approved")

        self.assert_projection()
        self.assertEqual(self.instance.status, WorkflowInstance.COMPLETED)
        self.assertEqual(self.document.status, Document.COMPLETED)

    def test_rejection_dominates_an_all_assignees_step(self) -> None:
        engine.complete_step(self.instance.pk, open_step_instance(self.instance, self.u1).pk, self.u1.pk, "approved")
        pending_u4 = open_step_instance(self.instance, self.u4)

        engine.complete_step(self.instance.pk, open_step_instance(self.instance, self.u3).pk, self.u3.pk, "rejected")

        self.assert_projection()
        self.assertEqual(self.instance.status, WorkflowInstance.FAILED)
        pending_u4.refresh_from_db()
        self.assertEqual(pending_u4.status, WorkflowStepInstance.SKIPPED)
        self.assertTrue(pending_u4.superseded)

    def test_race_loser_gets_already_completed_without_advancing_twice(self) -> None:
        first = open_step_instance(self.instance, self.u1)
        second = open_step_instance(self.instance, self.u2)
        engine.complete_step(self.instance.pk, first.pk, self.u1.pk, "approved")
        step_instances_before = WorkflowStepInstance.objects.filter(instance=self.instance).count()

        with self.assertLogs("workflows.engine", level="INFO"):
            result = engine.complete_step(self.instance.pk, second.pk, self.u2.pk, "approved")

        self.assertTrue(result.already_completed)
        self.assertEqual(WorkflowStepInstance.objects.filter(instance=self.instance).count(), step_instances_before)
        self.assertEqual(
            WorkflowStepInstance.objects.filter(instance=self.instance, step=self.step_b).count(),
            2,
        )
        second.refresh_from_db()
        self.assertEqual(second.status, WorkflowStepInstance.SKIPPED)

    def test_completing_someone_elses_step_is_forbidden(self) -> None:
        step_instance = open_step_instance(self.instance, self.u1)
        with self.assertRaises(Forbidden):
            engine.complete_step(self.instance.pk, step_instance.pk, self.u3.pk, "approved")
        step_instance.refresh_from_db()
        self.assertTrue(step_instance.is_open)

    def test_completing_twice_is_an_invalid_state(self) -> None:
        engine.complete_step(self.instance.pk, open_step_instance(self.instance, self.u1).pk, self.u1.pk, "approved")
        engine.complete_step(self.instance.pk, open_step_instance(self.instance, self.u3).pk, self.u3.pk, "approved")
        done = WorkflowStepInstance.objects.get(instance=self.instance, assigned_to=self.u3)

        with self.assertRaises(InvalidState):
            engine.complete_step(self.instance.pk, done.pk, self.u3.pk, "rejected")

    def test_unknown_action_is_rejected(self) -> None:
        step_instance = open_step_instance(self.instance, self.u1)
        with self.assertRaises(serializers.ValidationError):
            engine.complete_step(self.instance.pk, step_instance.pk, self.u1.pk, "maybe")

    def test_unknown_step_instance_is_not_found(self) -> None:
        with self.assertRaises(NotFound):
            engine.complete_step(self.instance.pk, 999999, self.u1.pk, "approved")

    def test_second_active_instance_is_a_conflict(self) -> None:
        with self.assertRaises(Conflict):
            engine.start_instance(self.document, self.workflow)
        self.assertEqual(WorkflowInstance.objects.filter(document=self.document).count(), 1)

    def test_current_step_order_only_moves_forward(self) -> None:
        orders = [self.instance.current_step.step_order]
        engine.complete_step(self.instance.pk, open_step_instance(self.instance, self.u1).pk, self.u1.pk, "approved")
        self.instance.refresh_from_db()
        orders.append(self.instance.current_step.step_order)
        self.assertEqual(orders, sorted(orders))
        self.assertLess(orders[0], orders[1])

    def test_cancel_closes_open_step_instances(self) -> None:
        engine.cancel_instance(self.instance.pk, "Uploaded by mistake", actor=self.uploader)

        self.assert_projection()
        self.assertEqual(self.instance.status, WorkflowInstance.CANCELLED)
        self.assertEqual(self.instance.notes, "Uploaded by mistake")
        self.assertEqual(self.document.status, Document.ON_HOLD)
        self.assertFalse(
            WorkflowStepInstance.objects.filter(
                instance=self.instance, status__in=WorkflowStepInstance.OPEN_STATUSES
            ).exists()
        )

    def test_cancel_requires_staff_or_uploader(self) -> None:
        with self.assertRaises(Forbidden):
            engine.cancel_instance(self.instance.pk, actor=self.u1)

        staff = make_user("staff@example.com", role=User.STAFF)
        engine.cancel_instance(self.instance.pk, actor=staff)
        self.instance.refresh_from_db()
        self.assertEqual(self.instance.status, WorkflowInstance.CANCELLED)

    def test_completing_after_cancellation_is_an_invalid_state(self) -> None:
        step_instance = open_step_instance(self.instance, self.u1)
        engine.cancel_instance(self.instance.pk)

        with self.assertRaises(InvalidState):
            engine.complete_step(self.instance.pk, step_instance.pk, self.u1.pk, "approved")

    def test_pending_steps_are_listed_per_user(self) -> None:
        self.assertEqual(
            [step.pk for step in engine.list_pending_steps_for(self.u1.pk)],
            [open_step_instance(self.instance, self.u1).pk],
        )
        self.assertEqual(list(engine.list_pending_steps_for(self.u3.pk)), [])

        engine.complete_step(self.instance.pk, open_step_instance(self.instance, self.u2).pk, self.u2.pk, "approved")
        self.assertEqual(list(engine.list_pending_steps_for(self.u1.pk)), [])
        self.assertEqual(len(engine.list_pending_steps_for(self.u3.pk)), 1)

    def test_document_workflow_prefers_the_active_instance(self) -> None:
        self.assertEqual(engine.get_document_workflow(self.document.pk), self.instance)

        engine.cancel_instance(self.instance.pk)
        self.assertEqual(engine.get_document_workflow(self.document.pk), self.instance)

        restarted = engine.start_instance(self.document, self.workflow)
        self.assertEqual(engine.get_document_workflow(self.document.pk), restarted)

        with self.assertRaises(NotFound):
            engine.get_document_workflow(999999)


class CancelCompletedInstanceTests(WorkflowTestCase):
    def test_cancelling_a_completed_instance_changes_nothing(self) -> None:
        uploader = make_user("uploader@example.com")
        approver = make_user("approver@example.com")
        make_workflow([{"name": "Review", "assignees": [approver]}])
        document = make_document(uploader)
        instance = engine.assign_workflow(document.pk)
        engine.complete_step(instance.pk, open_step_instance(instance, approver).pk, approver.pk, "approved")
        instance.refresh_from_db()
        snapshot = (instance.status, instance.completed_at, instance.updated_at, instance.notes)

        with self.assertRaises(InvalidState):
            engine.cancel_instance(instance.pk, "too late", actor=uploader)

        instance.refresh_from_db()
        self.assertEqual((instance.status, instance.completed_at, instance.updated_at, instance.notes), snapshot)
        document.refresh_from_db()
        self.assertEqual(document.status, Document.COMPLETED)


class AutoSkipTests(WorkflowTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.uploader = make_user("uploader@example.com")
        self.reviewer = make_user("reviewer@example.com", department="finance")

    def test_empty_department_step_is_skipped_with_an_event(self) -> None:
        workflow = make_workflow(
            [
                {"name": "Legal check", "assignees": [(WorkflowStepAssignee.DEPARTMENT, "legal")]},
                {"name": "Finance check", "assignees": [(WorkflowStepAssignee.DEPARTMENT, "finance")]},
            ]
        )
        legal, finance = list(workflow.steps.order_by("step_order"))
        document = make_document(self.uploader)

        with self.assertLogs("workflows.engine", level="INFO") as logs:
            with self.captureOnCommitCallbacks(execute=True):
                instance = engine.assign_workflow(document.pk)

        self.assertTrue(any("Auto-skipping step" in line for line in logs.output))
        skipped = WorkflowStepInstance.objects.get(instance=instance, step=legal)
        self.assertEqual(skipped.status, WorkflowStepInstance.SKIPPED)
        self.assertIsNone(skipped.assigned_to)
        self.assertEqual(skipped.comments, engine.NO_ASSIGNEES)

        instance.refresh_from_db()
        self.assertEqual(instance.current_step, finance)
        self.assertEqual(open_step_instance(instance, self.reviewer).step, finance)

        skipped_events = self.delivered(events.STEP_SKIPPED)
        self.assertEqual(len(skipped_events), 1)
        self.assertEqual(skipped_events[0]["step_name"], "Legal check")
        self.assertEqual(skipped_events[0]["reason"], engine.NO_ASSIGNEES)

    def test_instance_with_every_step_skipped_completes(self) -> None:
        make_workflow([{"name": "Legal check", "assignees": [(WorkflowStepAssignee.DEPARTMENT, "legal")]}])
        document = make_document(self.uploader)

        instance = engine.assign_workflow(document.pk)

        instance.refresh_from_db()
        document.refresh_from_db()
        self.assertEqual(instance.status, WorkflowInstance.COMPLETED)
        self.assertIsNone(instance.current_step)
        self.assertEqual(document.status, Document.COMPLETED)

    def test_inactive_direct_user_resolves_to_nobody(self) -> None:
        departed = make_user("departed@example.com", is_active=False)
        make_workflow(
            [
                {"name": "Former owner", "assignees": [departed]},
                {"name": "Reviewer", "assignees": [self.reviewer]},
            ]
        )
        instance = engine.assign_workflow(make_document(self.uploader).pk)

        instance.refresh_from_db()
        self.assertEqual(instance.current_step.name, "Reviewer")

    def test_enforced_conditions_skip_a_step(self) -> None:
        make_workflow(
            [
                {
                    "name": "Large contracts",
                    "assignees": [self.reviewer],
                    "conditions": {
                        "enforce": True,
                        "rules": [{"field": "title", "operator": "contains", "value": "contract"}],
                    },
                },
            ]
        )
        instance = engine.assign_workflow(make_document(self.uploader, title="Lunch receipt").pk)

        instance.refresh_from_db()
        self.assertEqual(instance.status, WorkflowInstance.COMPLETED)
        skipped = WorkflowStepInstance.objects.get(instance=instance)
        self.assertEqual(skipped.comments, engine.CONDITIONS_NOT_MET)

    def test_unenforced_conditions_do_not_skip(self) -> None:
        make_workflow(
            [
                {
                    "name": "Large contracts",
                    "assignees": [self.reviewer],
                    "conditions": {"rules": [{"field": "title", "operator": "contains", "value": "contract"}]},
                },
            ]
        )
        instance = engine.assign_workflow(make_document(self.uploader, title="Lunch receipt").pk)

        instance.refresh_from_db()
        self.assertEqual(instance.status, WorkflowInstance.IN_PROGRESS)
        self.assertEqual(open_step_instance(instance, self.reviewer).step.name, "Large contracts")


class StepOptionsTests(WorkflowTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.uploader = make_user("uploader@example.com")
        self.first = make_user("first@example.com")
        self.second = make_user("second@example.com")

    def test_rejecting_an_optional_step_advances(self) -> None:
        make_workflow(
            [
                {"name": "Courtesy review", "assignees": [self.first], "is_required": False},
                {"name": "Approval", "assignees": [self.second]},
            ]
        )
        instance = engine.assign_workflow(make_document(self.uploader).pk)

        engine.complete_step(instance.pk, open_step_instance(instance, self.first).pk, self.first.pk, "rejected")

        instance.refresh_from_db()
        self.assertEqual(instance.status, WorkflowInstance.IN_PROGRESS)
        self.assertEqual(instance.current_step.name, "Approval")

    def test_skip_action_advances(self) -> None:
        make_workflow(
            [
                {"name": "Review", "assignees": [self.first]},
                {"name": "Approval", "assignees": [self.second]},
            ]
        )
        instance = engine.assign_workflow(make_document(self.uploader).pk)

        engine.complete_step(instance.pk, open_step_instance(instance, self.first).pk, self.first.pk, "skipped")

        instance.refresh_from_db()
        self.assertEqual(instance.current_step.name, "Approval")

    def test_timeout_sets_due_date(self) -> None:
        make_workflow([{"name": "Review", "assignees": [self.first], "timeout_hours": 24}])
        instance = engine.assign_workflow(make_document(self.uploader).pk)

        step_instance = open_step_instance(instance, self.first)
        self.assertEqual(step_instance.due_at - step_instance.started_at, timedelta(hours=24))

    def test_no_timeout_means_no_due_date(self) -> None:
        make_workflow([{"name": "Review", "assignees": [self.first]}])
        instance = engine.assign_workflow(make_document(self.uploader).pk)

        self.assertIsNone(open_step_instance(instance, self.first).due_at)


class EventEmissionTests(WorkflowTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.uploader = make_user("uploader@example.com")
        self.approver = make_user("approver@example.com")
        make_workflow([{"name": "Review", "assignees": [self.approver]}])

    def test_events_wait_for_commit(self) -> None:
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            engine.assign_workflow(make_document(self.uploader).pk)

        self.deliver_event.delay.assert_not_called()
        self.assertEqual(len(callbacks), 2)

    def test_lifecycle_events_are_delivered_in_order(self) -> None:
        document = make_document(self.uploader)
        with self.captureOnCommitCallbacks(execute=True):
            instance = engine.assign_workflow(document.pk, actor_id=self.uploader.pk)
        with self.captureOnCommitCallbacks(execute=True):
            engine.complete_step(instance.pk, open_step_instance(instance, self.approver).pk, self.approver.pk, "approved")

        delivered = [call.args[0] for call in self.deliver_event.delay.call_args_list]
        self.assertEqual(
            delivered,
            [
                events.INSTANCE_STARTED,
                events.STEP_ASSIGNED,
                events.STEP_COMPLETED,
                events.INSTANCE_COMPLETED,
            ],
        )
        assigned = self.delivered(events.STEP_ASSIGNED)[0]
        self.assertEqual(assigned["user_id"], self.approver.pk)
        self.assertEqual(assigned["document_id"], document.pk)

    def test_rolled_back_mutation_emits_nothing(self) -> None:
        document = make_document(self.uploader)

        with self.captureOnCommitCallbacks(execute=True):
            with mock.patch("workflows.engine._enter_step", side_effect=RuntimeError("boom")):
                with self.assertRaises(RuntimeError):
                    engine.assign_workflow(document.pk)

        self.deliver_event.delay.assert_not_called()
        self.assertFalse(WorkflowInstance.objects.filter(document=document).exists())
        document.refresh_from_db()
        self.assertIsNone(document.workflow_status)


class RebuildProjectionTests(WorkflowTestCase):
    def test_rebuild_restores_drifted_document_fields(self) -> None:
        uploader = make_user("uploader@example.com")
        approver = make_user("approver@example.com")
        make_workflow([{"name": "Review", "assignees": [approver]}])
        document = make_document(uploader)
        instance = engine.assign_workflow(document.pk)

        Document.objects.filter(pk=document.pk).update(workflow_status=None, workflow_instance=None, status=Document.PENDING)
        document.refresh_from_db()

        self.assertTrue(rebuild_projection(document))
        document.refresh_from_db()
        self.assertEqual(document.workflow_instance_id, instance.pk)
        self.assertEqual(document.workflow_status, WorkflowInstance.IN_PROGRESS)
        self.assertEqual(document.status, Document.PROCESSING)

        self.assertFalse(rebuild_projection(document))

    def test_rebuild_without_instances_is_a_no_op(self) -> None:
        document = make_document(make_user("uploader@example.com"), classification=None)
        self.assertFalse(rebuild_projection(document))
