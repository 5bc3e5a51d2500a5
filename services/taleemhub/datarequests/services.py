"""Lifecycle operations for data requests.

Views stay thin: every authorization and validation decision for creating,
answering, editing, deleting and delegating a request is made here, against
the authenticated :class:`accounts.models.User`.
"""
from __future__ import annotations

import logging
import math
import numbers
from typing import Any, Dict, Iterable, List, Optional, Tuple

from django.db import IntegrityError, transaction
from django.shortcuts import get_object_or_404
from rest_framework.exceptions import PermissionDenied, ValidationError

from accounts import hierarchy
from accounts.directory import eligible_users
from accounts.models import User

from .models import DataRequest, RequestAssignee

logger = logging.getLogger(__name__)

EDITABLE_ATTRIBUTES = ("title", "description", "voice_note", "priority", "due_date", "is_archived")


def _dedupe(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(str(value) for value in values))


def _assignee_from_user(data_request: DataRequest, user: User, delegated_by: Optional[str] = None) -> RequestAssignee:
    return RequestAssignee(
        request=data_request,
        user_id=user.id,
        user_name=user.name,
        user_role=user.role,
        school_id=user.school_id,
        school_name=user.school_name,
        field_responses=data_request.response_template(),
        delegated_by=delegated_by,
    )


def get_request(request_id: str) -> DataRequest:
    queryset = DataRequest.objects.prefetch_related("assignees")
    return get_object_or_404(queryset, id=request_id)


def can_view(viewer: User, data_request: DataRequest) -> bool:
    return hierarchy.can_view_request(
        viewer,
        created_by=data_request.created_by,
        created_by_role=data_request.created_by_role,
        created_by_school_id=data_request.created_by_school_id,
        created_by_cluster_id=data_request.created_by_cluster_id,
        created_by_district_id=data_request.created_by_district_id,
        assignee_ids=[entry.user_id for entry in data_request.assignees.all()],
    )


def ensure_visible(viewer: User, data_request: DataRequest) -> None:
    if not can_view(viewer, data_request):
        raise PermissionDenied("You do not have access to this request.")


def list_requests_for(viewer: User) -> List[DataRequest]:
    """Non-archived requests the viewer may see, newest first."""

    queryset = DataRequest.objects.filter(is_archived=False).prefetch_related("assignees")
    return [data_request for data_request in queryset if can_view(viewer, data_request)]


def create_request(
    creator: User,
    *,
    title: str,
    fields: List[Dict[str, Any]],
    assignee_ids: Iterable[str],
    description: str = "",
    voice_note: Optional[Dict[str, Any]] = None,
    due_date=None,
    priority: str = DataRequest.MEDIUM,
    status: str = DataRequest.ACTIVE,
    client_reference=None,
) -> Tuple[DataRequest, bool]:
    """Persist a request and one pending assignee per selected user.

    Returns ``(request, created)``; ``created`` is false when the client
    reference was already used by this creator and the earlier request is
    returned instead.
    """

    if client_reference is not None:
        existing = DataRequest.objects.filter(client_reference=client_reference).first()
        if existing is not None:
            if existing.created_by != creator.id:
                raise ValidationError({"client_reference": "Reference already used."})
            logger.info("Request %s replayed for client reference %s", existing.id, client_reference)
            return get_request(existing.id), False

    if not hierarchy.can_create_requests(creator.role):
        raise PermissionDenied(f"{creator.role} cannot create data requests.")
    if not title or not title.strip():
        raise ValidationError({"title": "Title is required."})
    if not fields:
        raise ValidationError({"fields": "At least one field is required."})
    selected = _dedupe(assignee_ids)
    if not selected:
        raise ValidationError({"assignee_ids": "At least one assignee is required."})

    eligible = {user.id: user for user in eligible_users(creator)}
    rejected = [user_id for user_id in selected if user_id not in eligible]
    if rejected:
        raise ValidationError({"assignee_ids": f"Not eligible for assignment: {', '.join(rejected)}."})

    attributes = {
        "title": title.strip(),
        "description": description or "",
        "voice_note": voice_note,
        "created_by": creator.id,
        "created_by_name": creator.name,
        "created_by_role": creator.role,
        "created_by_school_id": creator.school_id,
        "created_by_cluster_id": creator.cluster_id,
        "created_by_district_id": creator.district_id,
        "fields": fields,
        "priority": priority,
        "status": status,
        "client_reference": client_reference,
    }
    if due_date is not None:
        attributes["due_date"] = due_date

    try:
        with transaction.atomic():
            data_request = DataRequest.objects.create(**attributes)
            RequestAssignee.objects.bulk_create(
                [_assignee_from_user(data_request, eligible[user_id]) for user_id in selected]
            )
    except IntegrityError:
        # Lost a race on the same client reference.
        if client_reference is None:
            raise
        existing = DataRequest.objects.filter(client_reference=client_reference).first()
        if existing is None:
            raise
        return get_request(existing.id), False

    logger.info(
        "Request %s created by %s with %d assignees", data_request.id, creator.id, len(selected)
    )
    return get_request(data_request.id), True


def _coerce_value(field: Dict[str, Any], value: Any) -> Dict[str, Any]:
    """Validate one submitted value against its field definition."""

    field_type = field["type"]
    if value is None or value == "":
        return {"value": None, "file_url": None, "file_name": None}
    if field_type == DataRequest.NUMBER:
        if isinstance(value, str):
            try:
                value = int(value)
            except ValueError:
                try:
                    value = float(value)
                except ValueError:
                    raise ValidationError({field["id"]: "Must be a number."}) from None
        if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
            raise ValidationError({field["id"]: "Must be a number."})
        return {"value": value, "file_url": None, "file_name": None}
    if field_type == DataRequest.TEXT:
        if not isinstance(value, str):
            raise ValidationError({field["id"]: "Must be text."})
        return {"value": value, "file_url": None, "file_name": None}
    if isinstance(value, str):
        value = {"url": value}
    if not isinstance(value, dict) or not value.get("url"):
        raise ValidationError({field["id"]: "Attachment must provide a url."})
    return {"value": None, "file_url": str(value["url"]), "file_name": value.get("file_name")}


def build_responses(
    template: List[Dict[str, Any]],
    current: List[Dict[str, Any]],
    values: Dict[str, Any],
) -> List[Dict[str, Any]]:
    """Merge submitted values into the assignee's responses by field id."""

    known = {field["id"] for field in template}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValidationError({"values": f"Unknown field ids: {', '.join(unknown)}."})

    previous = {entry["id"]: entry for entry in current}
    responses = []
    missing = []
    for field in template:
        entry = {
            "id": field["id"],
            "name": field["name"],
            "type": field["type"],
            "required": bool(field.get("required", False)),
        }
        if field["id"] in values:
            entry.update(_coerce_value(field, values[field["id"]]))
        else:
            old = previous.get(field["id"], {})
            entry.update(
                {
                    "value": old.get("value"),
                    "file_url": old.get("file_url"),
                    "file_name": old.get("file_name"),
                }
            )
        if entry["required"] and entry["value"] is None and not entry["file_url"]:
            missing.append(field["id"])
        responses.append(entry)
    if missing:
        raise ValidationError({"values": f"Required fields missing: {', '.join(missing)}."})
    return responses


def submit_response(assignee: RequestAssignee, actor: User, values: Dict[str, Any]) -> RequestAssignee:
    """Overwrite an assignee's answers and mark the row completed."""

    if assignee.user_id != actor.id:
        raise PermissionDenied("Only the assignee can submit this response.")
    with transaction.atomic():
        data_request = DataRequest.objects.select_for_update().get(id=assignee.request_id)
        responses = build_responses(data_request.fields, assignee.field_responses, values)
        assignee.mark_completed(responses)
        data_request.refresh_completion()
    logger.info("Assignee %s submitted request %s", assignee.id, data_request.id)
    return assignee


def update_request(data_request: DataRequest, actor: User, changes: Dict[str, Any]) -> DataRequest:
    """Patch the request's own attributes.

    The field template can only be replaced while nobody has completed a
    response; pending assignees are re-templated from the new fields.
    """

    if data_request.created_by != actor.id:
        raise PermissionDenied("Only the creator can edit this request.")
    with transaction.atomic():
        update_fields = ["updated_at"]
        for attr in EDITABLE_ATTRIBUTES:
            if attr in changes:
                setattr(data_request, attr, changes[attr])
                update_fields.append(attr)
        if "fields" in changes:
            if data_request.has_responses():
                raise ValidationError(
                    {"fields": "Fields cannot change after an assignee has submitted."}
                )
            data_request.fields = changes["fields"]
            update_fields.append("fields")
        data_request.save(update_fields=update_fields)
        if "fields" in changes:
            template = data_request.response_template()
            for assignee in data_request.assignees.all():
                assignee.field_responses = template
                assignee.save(update_fields=["field_responses"])
    logger.info("Request %s updated by %s", data_request.id, actor.id)
    return get_request(data_request.id)


def delete_request(data_request: DataRequest, actor: User) -> None:
    if data_request.created_by != actor.id:
        raise PermissionDenied("Only the creator can delete this request.")
    request_id = data_request.id
    with transaction.atomic():
        RequestAssignee.objects.filter(request_id=request_id).delete()
        data_request.delete()
    logger.info("Request %s deleted by %s", request_id, actor.id)


def delegate_request(data_request: DataRequest, actor: User, target_user_id: str) -> RequestAssignee:
    """Add a subordinate of an existing assignee to the request."""

    existing_ids = set(data_request.assignees.values_list("user_id", flat=True))
    if actor.id not in existing_ids:
        raise PermissionDenied("Only assignees of this request can delegate it.")
    if not hierarchy.can_delegate(actor.role):
        raise PermissionDenied(f"{actor.role} cannot delegate requests.")
    if target_user_id in existing_ids:
        raise ValidationError({"user_id": "User is already assigned to this request."})

    candidates = {user.id: user for user in eligible_users(actor, existing_ids)}
    target = candidates.get(target_user_id)
    if target is None:
        raise ValidationError({"user_id": "User is not eligible for delegation."})

    with transaction.atomic():
        locked = DataRequest.objects.select_for_update().get(id=data_request.id)
        assignee = _assignee_from_user(locked, target, delegated_by=actor.id)
        try:
            with transaction.atomic():
                assignee.save(force_insert=True)
        except IntegrityError:
            raise ValidationError({"user_id": "User is already assigned to this request."})
        locked.refresh_completion()
    logger.info("Request %s delegated by %s to %s", data_request.id, actor.id, target.id)
    return assignee
