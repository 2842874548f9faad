"""API views for workflow definitions and running workflow instances."""
from __future__ import annotations

from django.db import transaction
from django.db.models import Max
from django.shortcuts import get_object_or_404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response

from accounts.directory import acting_user

from . import engine
from .exceptions import Conflict
from .models import Workflow, WorkflowInstance, WorkflowStep
from .serializers import (
    CancelWorkflowRequestSerializer,
    PendingStepSerializer,
    StepCompletionRequestSerializer,
    WorkflowInstanceSerializer,
    WorkflowSerializer,
    WorkflowStepSerializer,
)


def _truthy(value: str) -> bool:
    return value.lower() in {"1", "true", "yes"}


class WorkflowViewSet(viewsets.ModelViewSet):
    queryset = Workflow.objects.prefetch_related("steps__assignees").all()
    serializer_class = WorkflowSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["name", "description", "trigger_value"]
    ordering_fields = ["name", "priority", "created_at", "updated_at"]
    ordering = ["-priority", "-created_at"]

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset()
        active = self.request.query_params.get("active")
        if active is not None:
            queryset = queryset.filter(is_active=_truthy(active))
        workflow_type = self.request.query_params.get("type")
        if workflow_type:
            queryset = queryset.filter(type=workflow_type)
        return queryset

    def perform_create(self, serializer):  # type: ignore[override]
        with transaction.atomic():
            serializer.save()

    def perform_update(self, serializer):  # type: ignore[override]
        with transaction.atomic():
            serializer.save()

    def perform_destroy(self, instance):  # type: ignore[override]
        if instance.has_instances():
            raise Conflict("Cannot delete a workflow that has been run; deactivate it instead.")
        instance.delete()

    @action(detail=True, methods=["post"], url_path="publish")
    def publish(self, request, *args, **kwargs):  # type: ignore[override]
        """Activate a workflow definition."""

        workflow = self.get_object()
        workflow.is_active = True
        workflow.save(update_fields=["is_active", "updated_at"])
        serializer = self.get_serializer(workflow)
        return Response(serializer.data)

    @action(detail=True, methods=["post"], url_path="steps")
    def add_step(self, request, *args, **kwargs):  # type: ignore[override]
        """Append a step to a workflow definition."""

        workflow = self.get_object()
        serializer = WorkflowStepSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        step_order = serializer.validated_data.get("step_order")
        if "step_order" not in request.data:
            highest = workflow.steps.aggregate(highest=Max("step_order"))["highest"]
            step_order = 1 if highest is None else highest + 1
        elif workflow.steps.filter(step_order=step_order).exists():
            raise Conflict(f"Step order {step_order} is already used by this workflow.")

        with transaction.atomic():
            step = serializer.save(workflow=workflow, step_order=step_order)
        return Response(WorkflowStepSerializer(step).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["patch", "delete"], url_path=r"steps/(?P<step_id>[0-9]+)")
    def step_detail(self, request, step_id=None, *args, **kwargs):  # type: ignore[override]
        """Update or remove one step of a workflow definition."""

        workflow = self.get_object()
        step = get_object_or_404(WorkflowStep, pk=step_id, workflow=workflow)

        if request.method == "DELETE":
            if step.has_instances():
                raise Conflict("Cannot delete a step that workflow instances have reached.")
            step.delete()
            return Response(status=status.HTTP_204_NO_CONTENT)

        serializer = WorkflowStepSerializer(step, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        step_order = serializer.validated_data.get("step_order")
        if (
            step_order is not None
            and workflow.steps.filter(step_order=step_order).exclude(pk=step.pk).exists()
        ):
            raise Conflict(f"Step order {step_order} is already used by this workflow.")

        with transaction.atomic():
            step = serializer.save()
        return Response(WorkflowStepSerializer(step).data)


class WorkflowInstanceViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    queryset = (
        WorkflowInstance.objects.select_related("workflow", "current_step")
        .prefetch_related("step_instances__step")
        .all()
    )
    serializer_class = WorkflowInstanceSerializer
    lookup_value_regex = "[0-9]+"

    def _fresh(self, instance_id: int) -> dict:
        return WorkflowInstanceSerializer(self.get_queryset().get(pk=instance_id)).data

    @action(
        detail=True,
        methods=["post"],
        url_path=r"steps/(?P<step_instance_id>[0-9]+)/complete",
        url_name="complete-step",
    )
    def complete_step(self, request: Request, pk=None, step_instance_id=None):  # type: ignore[override]
        """Approve, reject or skip the caller's step."""

        user = acting_user(request)
        payload = StepCompletionRequestSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        result = engine.complete_step(
            int(pk),
            int(step_instance_id),
            user.pk,
            payload.validated_data["action"],
            payload.validated_data["comments"],
        )
        return Response(
            {
                "already_completed": result.already_completed,
                "instance": self._fresh(result.instance.pk),
            }
        )

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request: Request, pk=None):  # type: ignore[override]
        """Administratively cancel a running workflow."""

        user = acting_user(request)
        payload = CancelWorkflowRequestSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        instance = engine.cancel_instance(int(pk), payload.validated_data["reason"], actor=user)
        return Response({"instance": self._fresh(instance.pk)})

    @action(detail=False, methods=["get"], url_path="my-pending-steps", url_name="my-pending-steps")
    def my_pending_steps(self, request: Request):  # type: ignore[override]
        """The caller's approval queue, oldest first."""

        user = acting_user(request)
        steps = engine.list_pending_steps_for(user.pk)
        return Response(PendingStepSerializer(steps, many=True).data)
