# Generated manually for initial schema.
from __future__ import annotations

from django.db import migrations, models
import django.db.models.deletion

import documents.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Document",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                (
                    "document_id",
                    models.CharField(
                        default=documents.models.generate_document_id,
                        editable=False,
                        max_length=32,
                        unique=True,
                    ),
                ),
                ("description", models.TextField(blank=True)),
                ("classification", models.CharField(blank=True, max_length=128, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("upload", "Upload"),
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("on_hold", "On Hold"),
                        ],
                        default="pending",
                        max_length=32,
                    ),
                ),
                ("workflow_status", models.CharField(blank=True, max_length=32, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "uploaded_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="uploaded_documents",
                        to="accounts.user",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "id"],
                "indexes": [
                    models.Index(fields=["status"], name="documents_status_idx"),
                    models.Index(fields=["workflow_status"], name="documents_workflow_status_idx"),
                ],
            },
        ),
    ]
