"""Rebuild documents' workflow fields from the workflow instance table."""
from __future__ import annotations

from django.core.management.base import BaseCommand
from django.db import transaction

from documents.models import Document
from workflows.projector import rebuild_projection


class Command(BaseCommand):
    help = "Recompute workflow_status, status and workflow_instance on documents from their instances."

    def add_arguments(self, parser):  # type: ignore[override]
        parser.add_argument("--document", type=int, action="append", dest="documents", help="Document pk to rebuild.")

    def handle(self, *args, **options):  # type: ignore[override]
        queryset = Document.objects.order_by("id")
        if options.get("documents"):
            queryset = queryset.filter(pk__in=options["documents"])

        repaired = 0
        for document_pk in queryset.values_list("pk", flat=True):
            with transaction.atomic():
                document = Document.objects.select_for_update().get(pk=document_pk)
                if rebuild_projection(document):
                    repaired += 1
                    self.stdout.write(f"Rebuilt workflow projection for document {document.pk}")

        self.stdout.write(self.style.SUCCESS(f"{repaired} document(s) repaired"))
