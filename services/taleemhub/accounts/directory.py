"""User directory lookups backed by the hierarchy policy."""
from __future__ import annotations

from typing import Iterable, List

from . import hierarchy
from .models import User


def candidate_users(requester: User):
    """Active users holding a role the requester may assign to."""

    roles = hierarchy.valid_assignee_roles(requester.role)
    if not roles:
        return User.objects.none()
    return User.objects.filter(role__in=roles, is_active=True).exclude(id=requester.id)


def eligible_users(requester: User, exclude_ids: Iterable[str] = ()) -> List[User]:
    return hierarchy.eligible_assignees(requester, candidate_users(requester), exclude_ids)
