"""ASGI config for the SMART-DOCS workflow service."""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "smartdocs_service.settings")

application = get_asgi_application()
