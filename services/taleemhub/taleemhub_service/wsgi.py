"""WSGI config for the TaleemHub service."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "taleemhub_service.settings")

application = get_wsgi_application()
