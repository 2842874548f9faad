"""Celery application for the SMART-DOCS workflow service."""
from __future__ import annotations

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "smartdocs_service.settings")

app = Celery("smartdocs_service")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
