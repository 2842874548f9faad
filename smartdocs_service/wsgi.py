"""WSGI config for the SMART-DOCS workflow service."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "smartdocs_service.settings")

application = get_wsgi_application()
