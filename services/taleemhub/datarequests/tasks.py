"""Background tasks for data requests."""
from __future__ import annotations

import logging

from celery import shared_task
from django.db import transaction
from django.utils import timezone

from .models import DataRequest, RequestAssignee

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def mark_overdue_assignees(self) -> int:
    """Flag pending assignees of active requests whose due date has passed."""

    now = timezone.now()
    try:
        with transaction.atomic():
            updated = RequestAssignee.objects.filter(
                status=RequestAssignee.PENDING,
                request__status=DataRequest.ACTIVE,
                request__is_archived=False,
                request__due_date__lt=now,
            ).update(status=RequestAssignee.OVERDUE)
    except Exception as exc:  # pragma: no cover - retries exercised in production
        logger.exception("Overdue sweep failed")
        raise self.retry(exc=exc, countdown=min(300, 30 * 2 ** self.request.retries))
    if updated:
        logger.info("Marked %d assignees overdue", updated)
    return updated
