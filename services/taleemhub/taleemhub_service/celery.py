"""Celery application for the TaleemHub service."""
from __future__ import annotations

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "taleemhub_service.settings")

app = Celery("taleemhub_service")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
