"""ASGI config for the TaleemHub service."""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "taleemhub_service.settings")

application = get_asgi_application()
