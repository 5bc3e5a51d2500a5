"""Role hierarchy and organizational scoping rules.

This module is the single source of truth for who may assign work to whom and
who may see which data request. It has no Django imports so that the server
(directory lookup, request validation, list visibility) and the client store's
offline fallback evaluate exactly the same policy.

Callers pass any object exposing ``id``, ``role``, ``school_id``,
``school_name``, ``cluster_id``, ``district_id`` and ``assigned_schools``;
:class:`Member` adapts plain mappings (cached JSON, API payloads).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

CEO = "CEO"
DEO = "DEO"
DDEO = "DDEO"
AEO = "AEO"
HEAD_TEACHER = "HEAD_TEACHER"
TEACHER = "TEACHER"
COACH = "COACH"
TRAINING_MANAGER = "TRAINING_MANAGER"

ROLE_CHOICES = [
    (CEO, "Chief Executive Officer"),
    (DEO, "District Education Officer"),
    (DDEO, "Deputy District Education Officer"),
    (AEO, "Assistant Education Officer"),
    (HEAD_TEACHER, "Head Teacher"),
    (TEACHER, "Teacher"),
    (COACH, "Coach"),
    (TRAINING_MANAGER, "Training Manager"),
]

SCOPE_ALL = "all"
SCOPE_DISTRICT = "district"
SCOPE_CLUSTER = "cluster"
SCOPE_SCHOOL = "school"


@dataclass(frozen=True)
class RolePolicy:
    rank: int
    valid_assignees: Tuple[str, ...]
    scope: str


ROLE_POLICIES: Dict[str, RolePolicy] = {
    CEO: RolePolicy(rank=6, valid_assignees=(DEO,), scope=SCOPE_ALL),
    DEO: RolePolicy(rank=5, valid_assignees=(DDEO, AEO), scope=SCOPE_DISTRICT),
    DDEO: RolePolicy(rank=4, valid_assignees=(AEO,), scope=SCOPE_DISTRICT),
    TRAINING_MANAGER: RolePolicy(rank=4, valid_assignees=(), scope=SCOPE_DISTRICT),
    AEO: RolePolicy(rank=3, valid_assignees=(HEAD_TEACHER,), scope=SCOPE_CLUSTER),
    HEAD_TEACHER: RolePolicy(rank=2, valid_assignees=(TEACHER,), scope=SCOPE_SCHOOL),
    TEACHER: RolePolicy(rank=1, valid_assignees=(), scope=SCOPE_SCHOOL),
    COACH: RolePolicy(rank=1, valid_assignees=(), scope=SCOPE_SCHOOL),
}

DELEGATION_ROLES: FrozenSet[str] = frozenset({AEO, HEAD_TEACHER, DEO, DDEO})

# Roles allowed to register, edit and remove other users.
USER_ADMIN_ROLES: FrozenSet[str] = frozenset({DEO, DDEO})

# User attributes that decide what a user may assign, delegate and see.
PRIVILEGED_USER_FIELDS: FrozenSet[str] = frozenset(
    {"role", "is_active", "school_id", "school_name", "cluster_id", "district_id", "assigned_schools"}
)


@dataclass(frozen=True)
class Member:
    """Organizational identity of a user, independent of storage."""

    id: str
    role: str
    school_id: Optional[str] = None
    school_name: Optional[str] = None
    cluster_id: Optional[str] = None
    district_id: Optional[str] = None
    assigned_schools: Tuple[str, ...] = field(default_factory=tuple)
    is_active: bool = True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Member":
        return cls(
            id=str(data["id"]),
            role=str(data["role"]),
            school_id=data.get("school_id"),
            school_name=data.get("school_name"),
            cluster_id=data.get("cluster_id"),
            district_id=data.get("district_id"),
            assigned_schools=tuple(data.get("assigned_schools") or ()),
            is_active=bool(data.get("is_active", True)),
        )


def policy_for(role: str) -> Optional[RolePolicy]:
    return ROLE_POLICIES.get(role)


def rank_of(role: str) -> int:
    policy = policy_for(role)
    return policy.rank if policy else 0


def valid_assignee_roles(role: str) -> Tuple[str, ...]:
    policy = policy_for(role)
    return policy.valid_assignees if policy else ()


def can_create_requests(role: str) -> bool:
    return bool(valid_assignee_roles(role))


def can_delegate(role: str) -> bool:
    return role in DELEGATION_ROLES and can_create_requests(role)


def can_manage_users(role: str) -> bool:
    return role in USER_ADMIN_ROLES


def unit_matches(
    actor: Any,
    *,
    school_id: Optional[str] = None,
    school_name: Optional[str] = None,
    cluster_id: Optional[str] = None,
    district_id: Optional[str] = None,
) -> bool:
    """Apply the actor's scope rule to a target organizational unit."""

    policy = policy_for(actor.role)
    if policy is None:
        return False
    if policy.scope == SCOPE_ALL:
        return True
    if policy.scope == SCOPE_DISTRICT:
        return actor.district_id is not None and actor.district_id == district_id
    if policy.scope == SCOPE_CLUSTER:
        if actor.cluster_id is not None and actor.cluster_id == cluster_id:
            return True
        assigned = set(actor.assigned_schools or ())
        return bool(assigned) and (school_name in assigned or school_id in assigned)
    if policy.scope == SCOPE_SCHOOL:
        return actor.school_id is not None and actor.school_id == school_id
    return False


def is_eligible_assignee(requester: Any, candidate: Any) -> bool:
    if str(candidate.id) == str(requester.id):
        return False
    if not getattr(candidate, "is_active", True):
        return False
    if candidate.role not in valid_assignee_roles(requester.role):
        return False
    return unit_matches(
        requester,
        school_id=candidate.school_id,
        school_name=candidate.school_name,
        cluster_id=candidate.cluster_id,
        district_id=candidate.district_id,
    )


def eligible_assignees(
    requester: Any,
    candidates: Iterable[Any],
    exclude_ids: Iterable[Any] = (),
) -> List[Any]:
    """Return candidates the requester may assign or delegate work to.

    Input order is preserved and the result depends only on the arguments.
    ``exclude_ids`` holds users already assigned on the request in question.
    """

    excluded = {str(value) for value in exclude_ids}
    return [
        candidate
        for candidate in candidates
        if str(candidate.id) not in excluded and is_eligible_assignee(requester, candidate)
    ]


def can_view_request(
    viewer: Any,
    *,
    created_by: Any,
    created_by_role: str,
    created_by_school_id: Optional[str] = None,
    created_by_cluster_id: Optional[str] = None,
    created_by_district_id: Optional[str] = None,
    assignee_ids: Sequence[Any] = (),
) -> bool:
    """Visibility rule shared by the list endpoint and the offline fallback."""

    viewer_id = str(viewer.id)
    if str(created_by) == viewer_id:
        return True
    if viewer_id in {str(value) for value in assignee_ids}:
        return True
    if rank_of(viewer.role) <= rank_of(created_by_role):
        return False
    return unit_matches(
        viewer,
        school_id=created_by_school_id,
        cluster_id=created_by_cluster_id,
        district_id=created_by_district_id,
    )


def can_view_request_payload(viewer: Any, payload: Mapping[str, Any]) -> bool:
    """Evaluate :func:`can_view_request` against a serialized request."""

    return can_view_request(
        viewer,
        created_by=payload.get("created_by"),
        created_by_role=payload.get("created_by_role", ""),
        created_by_school_id=payload.get("created_by_school_id"),
        created_by_cluster_id=payload.get("created_by_cluster_id"),
        created_by_district_id=payload.get("created_by_district_id"),
        assignee_ids=[entry.get("user_id") for entry in payload.get("assignees") or []],
    )
