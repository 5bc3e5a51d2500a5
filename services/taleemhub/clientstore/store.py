"""HTTP client for data requests with a local fallback.

Reads degrade to the last cached snapshot when the service is unreachable,
filtered with the same visibility rule the server applies. Failed writes are
queued locally so work is not lost, but they are never reported as saved.
"""
from __future__ import annotations

import logging
import os
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import requests

from accounts.hierarchy import Member, can_view_request_payload

from .cache import LocalCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientSettings:
    api_url: str = field(default_factory=lambda: os.getenv("TALEEMHUB_API_URL", "http://localhost:8000/api"))
    timeout: float = field(default_factory=lambda: float(os.getenv("TALEEMHUB_API_TIMEOUT", "10")))
    cache_path: Optional[str] = field(default_factory=lambda: os.getenv("TALEEMHUB_CACHE_PATH") or None)


class StoreError(Exception):
    """Base error raised by :class:`RequestStore`."""


class RequestNotFound(StoreError):
    pass


class RemoteRejected(StoreError):
    """The service refused the call (validation or permission)."""

    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(f"Request rejected with status {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class RemoteWriteFailed(StoreError):
    """The write did not reach the service and was queued locally."""

    def __init__(self, message: str, queued_write: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.queued_write = queued_write


def _detail(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class RequestStore:
    def __init__(
        self,
        user: Union[Member, Mapping[str, Any]],
        base_url: Optional[str] = None,
        cache: Optional[LocalCache] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        settings: Optional[ClientSettings] = None,
    ) -> None:
        settings = settings or ClientSettings()
        self.user = user if isinstance(user, Member) else Member.from_mapping(user)
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.timeout
        if cache is None:
            cache = LocalCache(Path(settings.cache_path) if settings.cache_path else None)
        self.cache = cache
        self.session = session or requests.Session()
        self._create_latch = threading.Lock()

    def _send(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        return self.session.request(
            method,
            f"{self.base_url}/{path.lstrip('/')}",
            json=payload,
            params=params,
            headers={"X-User-Id": self.user.id},
            timeout=self.timeout,
        )

    def _write(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> requests.Response:
        """Send a write; queue it locally if the service cannot take it."""

        try:
            response = self._send(method, path, payload)
        except requests.RequestException as exc:
            queued = self.cache.queue_write(method, path, payload)
            logger.warning("%s %s failed, queued locally: %s", method, path, exc)
            raise RemoteWriteFailed(f"Upstream request failed: {exc}", queued) from exc
        if response.status_code >= 500:
            queued = self.cache.queue_write(method, path, payload)
            logger.warning("%s %s returned %s, queued locally", method, path, response.status_code)
            raise RemoteWriteFailed(f"Service error {response.status_code}", queued)
        if response.status_code == 404:
            raise RequestNotFound(path)
        if response.status_code >= 400:
            raise RemoteRejected(response.status_code, _detail(response))
        return response

    def get_requests_for_user(self) -> List[Dict[str, Any]]:
        try:
            response = self._send("GET", "requests/")
            response.raise_for_status()
            payloads = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Listing requests failed, using cached snapshot: %s", exc)
            return [
                payload
                for payload in self.cache.requests()
                if not payload.get("is_archived") and can_view_request_payload(self.user, payload)
            ]
        self.cache.replace_requests(payloads)
        return payloads

    def get_request(self, request_id: str) -> Dict[str, Any]:
        try:
            response = self._send("GET", f"requests/{request_id}/")
        except requests.RequestException as exc:
            return self._cached_request(request_id, exc)
        if response.status_code == 404:
            raise RequestNotFound(request_id)
        if response.status_code >= 400:
            return self._cached_request(request_id, f"status {response.status_code}")
        payload = response.json()
        self.cache.upsert_request(payload)
        return payload

    def _cached_request(self, request_id: str, reason: Any) -> Dict[str, Any]:
        cached = self.cache.get_request(request_id)
        if cached is None or not can_view_request_payload(self.user, cached):
            raise StoreError(f"Request {request_id} unavailable: {reason}")
        logger.warning("Serving request %s from cache: %s", request_id, reason)
        return cached

    def _queued_create(self, payload: Dict[str, Any], client_reference: Optional[str]) -> Optional[Dict[str, Any]]:
        """Find a queued create that the current call is retrying."""

        for entry in self.cache.pending_writes():
            if entry["method"] != "POST" or entry["path"] != "requests/":
                continue
            queued = dict(entry["payload"] or {})
            reference = queued.pop("client_reference", None)
            if client_reference is not None:
                if reference == client_reference:
                    return entry
            elif queued == payload:
                return entry
        return None

    def create_request(
        self,
        title: str,
        fields: List[Dict[str, Any]],
        assignee_ids: Iterable[str],
        description: str = "",
        due_date: Optional[datetime] = None,
        priority: str = "medium",
        voice_note: Optional[Dict[str, Any]] = None,
        client_reference: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Create a request, or return ``None`` if a creation is already in flight.

        Retrying a create that failed earlier reuses the queued client
        reference and takes the write off the queue, so the service stores
        the request at most once.
        """

        if not self._create_latch.acquire(blocking=False):
            logger.warning("Dropping duplicate submission of request %r", title)
            return None
        try:
            payload: Dict[str, Any] = {
                "title": title,
                "description": description,
                "fields": list(fields),
                "assignee_ids": list(assignee_ids),
                "priority": priority,
            }
            if due_date is not None:
                payload["due_date"] = due_date.isoformat()
            if voice_note is not None:
                payload["voice_note"] = voice_note
            retried = self._queued_create(payload, client_reference)
            if retried is not None:
                client_reference = retried["payload"]["client_reference"]
                self.cache.drop_write(retried["id"])
                logger.info("Retrying queued create %s for request %r", retried["id"], title)
            payload["client_reference"] = client_reference or str(uuid.uuid4())
            created = self._write("POST", "requests/", payload).json()
            self.cache.upsert_request(created)
            return created
        finally:
            self._create_latch.release()

    def update_request(self, request_id: str, **changes: Any) -> Dict[str, Any]:
        if isinstance(changes.get("due_date"), datetime):
            changes["due_date"] = changes["due_date"].isoformat()
        updated = self._write("PATCH", f"requests/{request_id}/", changes).json()
        self.cache.upsert_request(updated)
        return updated

    def delete_request(self, request_id: str) -> None:
        self._write("DELETE", f"requests/{request_id}/")
        self.cache.remove_request(request_id)

    def submit_response(self, assignee_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        return self._write("PATCH", f"assignees/{assignee_id}/", {"values": values}).json()

    def delegate(self, request_id: str, user_id: str) -> Dict[str, Any]:
        return self._write("POST", f"requests/{request_id}/assignees/", {"user_id": user_id}).json()

    def eligible_assignees(self, request_id: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"request_id": request_id} if request_id else None
        response = self._send("GET", f"users/{self.user.id}/eligible-assignees/", params=params)
        response.raise_for_status()
        return response.json()

    def pending_writes(self) -> List[Dict[str, Any]]:
        return self.cache.pending_writes()

    def resubmit_pending(self) -> int:
        """Replay queued writes once; returns how many went through.

        Writes the service rejects are dropped, transport failures stay queued.
        """

        sent = 0
        for entry in self.cache.pending_writes():
            try:
                response = self._send(entry["method"], entry["path"], entry["payload"])
            except requests.RequestException as exc:
                logger.warning("Queued write %s still failing: %s", entry["id"], exc)
                continue
            if response.status_code >= 500:
                continue
            self.cache.drop_write(entry["id"])
            if response.status_code < 400:
                sent += 1
            else:
                logger.warning(
                    "Queued write %s rejected with status %s", entry["id"], response.status_code
                )
        return sent
