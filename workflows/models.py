"""Database models for workflow definitions and their per-document instances."""
from __future__ import annotations

from typing import Optional

from django.db import models


class Workflow(models.Model):
    """A reusable workflow definition that routes documents through ordered steps."""

    APPROVAL = "approval"
    REVIEW = "review"
    PROCESSING = "processing"

    TYPE_CHOICES = [
        (APPROVAL, "Approval"),
        (REVIEW, "Review"),
        (PROCESSING, "Processing"),
    ]

    CLASSIFICATION = "classification"
    MANUAL = "manual"

    TRIGGER_CHOICES = [
        (CLASSIFICATION, "Classification"),
        (MANUAL, "Manual"),
    ]

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=32, choices=TYPE_CHOICES, default=APPROVAL)
    trigger_type = models.CharField(max_length=32, choices=TRIGGER_CHOICES, default=CLASSIFICATION)
    # NULL matches every classification.
    trigger_value = models.CharField(max_length=128, null=True, blank=True)
    is_active = models.BooleanField(default=True)
    priority = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-priority", "-created_at", "-id"]
        indexes = [
            models.Index(fields=["is_active", "trigger_type", "trigger_value"], name="workflows_trigger_idx"),
        ]

    def __str__(self) -> str:
        return self.name

    def first_step(self) -> Optional["WorkflowStep"]:
        return self.steps.order_by("step_order", "id").first()

    def has_instances(self) -> bool:
        return self.instances.exists()


class WorkflowStep(models.Model):
    """An ordered stage of a workflow definition."""

    workflow = models.ForeignKey(Workflow, related_name="steps", on_delete=models.CASCADE)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    step_order = models.PositiveIntegerField(default=0)
    step_type = models.CharField(max_length=32, choices=Workflow.TYPE_CHOICES, default=Workflow.APPROVAL)
    is_required = models.BooleanField(default=True)
    requires_all_assignees = models.BooleanField(default=False)
    timeout_hours = models.PositiveIntegerField(null=True, blank=True)
    conditions = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["step_order", "id"]
        unique_together = ("workflow", "step_order")

    def __str__(self) -> str:
        return f"{self.step_order}. {self.name}"

    def next_step(self) -> Optional["WorkflowStep"]:
        return (
            WorkflowStep.objects.filter(workflow_id=self.workflow_id, step_order__gt=self.step_order)
            .order_by("step_order", "id")
            .first()
        )

    def has_instances(self) -> bool:
        return self.step_instances.exists()


class WorkflowStepAssignee(models.Model):
    """Who may act on a step: one user, everyone holding a role, or a department."""

    USER = "user"
    ROLE = "role"
    DEPARTMENT = "department"

    ASSIGNEE_TYPES = [
        (USER, "User"),
        (ROLE, "Role"),
        (DEPARTMENT, "Department"),
    ]

    step = models.ForeignKey(WorkflowStep, related_name="assignees", on_delete=models.CASCADE)
    assignee_type = models.CharField(max_length=32, choices=ASSIGNEE_TYPES, default=USER)
    assignee_value = models.CharField(max_length=255, null=True, blank=True)
    user = models.ForeignKey(
        "accounts.User",
        related_name="workflow_assignee_rules",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
    )

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        if self.assignee_type == self.USER:
            return f"user:{self.user_id}"
        return f"{self.assignee_type}:{self.assignee_value}"


class WorkflowInstance(models.Model):
    """One execution of a workflow definition against a document."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (IN_PROGRESS, "In Progress"),
        (COMPLETED, "Completed"),
        (CANCELLED, "Cancelled"),
        (FAILED, "Failed"),
    ]

    ACTIVE_STATUSES = (PENDING, IN_PROGRESS)
    TERMINAL_STATUSES = (COMPLETED, CANCELLED, FAILED)

    document = models.ForeignKey(
        "documents.Document",
        related_name="workflow_instances",
        on_delete=models.CASCADE,
    )
    # Run history outlives edits to the definition.
    workflow = models.ForeignKey(Workflow, related_name="instances", on_delete=models.PROTECT)
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=PENDING)
    current_step = models.ForeignKey(
        WorkflowStep,
        related_name="+",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["document"],
                condition=models.Q(status__in=["pending", "in_progress"]),
                name="workflows_one_active_instance_per_document",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.workflow} for document {self.document_id} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES


class WorkflowStepInstance(models.Model):
    """The runtime record of one assignee acting on one step of an instance."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (IN_PROGRESS, "In Progress"),
        (APPROVED, "Approved"),
        (REJECTED, "Rejected"),
        (SKIPPED, "Skipped"),
    ]

    OPEN_STATUSES = (PENDING, IN_PROGRESS)
    ACTIONS = (APPROVED, REJECTED, SKIPPED)

    instance = models.ForeignKey(WorkflowInstance, related_name="step_instances", on_delete=models.CASCADE)
    step = models.ForeignKey(WorkflowStep, related_name="step_instances", on_delete=models.PROTECT)
    assigned_to = models.ForeignKey(
        "accounts.User",
        related_name="workflow_step_instances",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=PENDING)
    comments = models.TextField(blank=True)
    # Closed as skipped because another assignee resolved the step first.
    superseded = models.BooleanField(default=False)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    due_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["assigned_to", "status"], name="workflows_step_inbox_idx"),
            models.Index(fields=["status", "due_at"], name="workflows_step_due_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.step} -> {self.assigned_to_id} ({self.status})"

    @property
    def is_open(self) -> bool:
        return self.status in self.OPEN_STATUSES
