"""Serializers for workflow definitions and instances."""
from __future__ import annotations

from typing import Any, Dict, List

from rest_framework import serializers

from accounts.models import User

from . import conditions
from .exceptions import Conflict
from .models import Workflow, WorkflowInstance, WorkflowStep, WorkflowStepAssignee, WorkflowStepInstance


class WorkflowStepAssigneeSerializer(serializers.ModelSerializer):
    user_id = serializers.PrimaryKeyRelatedField(
        source="user",
        queryset=User.objects.all(),
        required=False,
        allow_null=True,
    )

    class Meta:
        model = WorkflowStepAssignee
        fields = [
            "id",
            "assignee_type",
            "assignee_value",
            "user_id",
        ]

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:  # type: ignore[override]
        assignee_type = attrs.get("assignee_type", WorkflowStepAssignee.USER)
        if assignee_type == WorkflowStepAssignee.USER:
            if attrs.get("user") is None:
                raise serializers.ValidationError({"user_id": "Required for user assignees."})
            attrs["assignee_value"] = None
        else:
            value = (attrs.get("assignee_value") or "").strip()
            if not value:
                raise serializers.ValidationError(
                    {"assignee_value": f"Required for {assignee_type} assignees."}
                )
            attrs["assignee_value"] = value
            attrs["user"] = None
        return attrs


class WorkflowStepSerializer(serializers.ModelSerializer):
    assignees = WorkflowStepAssigneeSerializer(many=True, allow_empty=False)
    timeout_hours = serializers.IntegerField(required=False, allow_null=True, min_value=1)

    class Meta:
        model = WorkflowStep
        fields = [
            "id",
            "name",
            "description",
            "step_order",
            "step_type",
            "is_required",
            "requires_all_assignees",
            "timeout_hours",
            "conditions",
            "assignees",
        ]

    def validate_conditions(self, value: Any) -> Any:
        try:
            conditions.validate_conditions(value)
        except conditions.ConditionError as exc:
            raise serializers.ValidationError(str(exc)) from exc
        return value or None

    @staticmethod
    def replace_assignees(step: WorkflowStep, assignees: List[Dict[str, Any]]) -> None:
        step.assignees.all().delete()
        for assignee in assignees:
            WorkflowStepAssignee.objects.create(step=step, **assignee)

    def create(self, validated_data):  # type: ignore[override]
        assignees = validated_data.pop("assignees", [])
        step = WorkflowStep.objects.create(**validated_data)
        self.replace_assignees(step, assignees)
        return step

    def update(self, instance, validated_data):  # type: ignore[override]
        assignees = validated_data.pop("assignees", None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save()

        if assignees is not None:
            self.replace_assignees(instance, assignees)
        return instance


class WorkflowSerializer(serializers.ModelSerializer):
    steps = WorkflowStepSerializer(many=True, required=False)

    class Meta:
        model = Workflow
        fields = [
            "id",
            "name",
            "description",
            "type",
            "trigger_type",
            "trigger_value",
            "is_active",
            "priority",
            "steps",
            "created_at",
            "updated_at",
        ]

    def validate_trigger_value(self, value: Any) -> Any:
        if value is None:
            return None
        return value.strip() or None

    def validate_steps(self, value: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for index, step in enumerate(value, start=1):
            step.setdefault("step_order", index)
        orders = [step["step_order"] for step in value]
        if len(orders) != len(set(orders)):
            raise serializers.ValidationError("Step orders must be unique within a workflow.")
        return value

    def _create_steps(self, workflow: Workflow, steps: List[Dict[str, Any]]) -> None:
        for step in steps:
            data = dict(step)
            assignees = data.pop("assignees", [])
            created = WorkflowStep.objects.create(workflow=workflow, **data)
            WorkflowStepSerializer.replace_assignees(created, assignees)

    def create(self, validated_data):  # type: ignore[override]
        steps = validated_data.pop("steps", [])
        workflow = Workflow.objects.create(**validated_data)
        self._create_steps(workflow, steps)
        return workflow

    def update(self, instance, validated_data):  # type: ignore[override]
        steps = validated_data.pop("steps", None)
        if steps is not None and instance.has_instances():
            raise Conflict("Cannot replace the steps of a workflow that has been run.")
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save()

        if steps is not None:
            instance.steps.all().delete()
            self._create_steps(instance, steps)
        return instance


class WorkflowStepInstanceSerializer(serializers.ModelSerializer):
    step_name = serializers.CharField(source="step.name", read_only=True)
    step_order = serializers.IntegerField(source="step.step_order", read_only=True)

    class Meta:
        model = WorkflowStepInstance
        fields = [
            "id",
            "step",
            "step_name",
            "step_order",
            "assigned_to",
            "status",
            "comments",
            "superseded",
            "started_at",
            "completed_at",
            "due_at",
            "created_at",
        ]
        read_only_fields = fields


class WorkflowInstanceSerializer(serializers.ModelSerializer):
    workflow_name = serializers.CharField(source="workflow.name", read_only=True)
    current_step_name = serializers.CharField(source="current_step.name", read_only=True, allow_null=True)
    step_instances = WorkflowStepInstanceSerializer(many=True, read_only=True)

    class Meta:
        model = WorkflowInstance
        fields = [
            "id",
            "document",
            "workflow",
            "workflow_name",
            "status",
            "current_step",
            "current_step_name",
            "started_at",
            "completed_at",
            "notes",
            "step_instances",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PendingStepSerializer(serializers.ModelSerializer):
    """A row of the approval queue."""

    instance_id = serializers.IntegerField(source="instance.id", read_only=True)
    workflow_name = serializers.CharField(source="instance.workflow.name", read_only=True)
    step_name = serializers.CharField(source="step.name", read_only=True)
    document = serializers.SerializerMethodField()

    class Meta:
        model = WorkflowStepInstance
        fields = [
            "id",
            "instance_id",
            "workflow_name",
            "step",
            "step_name",
            "status",
            "started_at",
            "due_at",
            "created_at",
            "document",
        ]
        read_only_fields = fields

    def get_document(self, obj: WorkflowStepInstance) -> Dict[str, Any]:
        document = obj.instance.document
        return {
            "id": document.pk,
            "document_id": document.document_id,
            "title": document.title,
            "classification": document.classification,
            "status": document.status,
        }


class StepCompletionRequestSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=WorkflowStepInstance.ACTIONS)
    comments = serializers.CharField(required=False, allow_blank=True, default="")


class CancelWorkflowRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class AssignWorkflowRequestSerializer(serializers.Serializer):
    workflow_id = serializers.IntegerField(required=False, allow_null=True)
