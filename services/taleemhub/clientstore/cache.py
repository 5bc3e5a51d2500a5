"""Local snapshot of requests and queued writes for the client store."""
from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class LocalCache:
    """JSON-file backed cache; keeps everything in memory when no path is given."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._state: Dict[str, Any] = {"requests": [], "pending_writes": []}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable request cache at %s", self.path)
            return
        if isinstance(data, dict):
            self._state["requests"] = list(data.get("requests") or [])
            self._state["pending_writes"] = list(data.get("pending_writes") or [])

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._state, default=str), encoding="utf-8")
        tmp_path.replace(self.path)

    def requests(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(entry) for entry in self._state["requests"]]

    def get_request(self, request_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            for entry in self._state["requests"]:
                if str(entry.get("id")) == str(request_id):
                    return dict(entry)
        return None

    def replace_requests(self, payloads: List[Dict[str, Any]]) -> None:
        """Make a fresh listing the whole snapshot."""

        with self._lock:
            self._state["requests"] = [dict(entry) for entry in payloads]
            self._flush()

    def upsert_request(self, payload: Dict[str, Any]) -> None:
        with self._lock:
            entries = [
                entry for entry in self._state["requests"] if str(entry.get("id")) != str(payload["id"])
            ]
            self._state["requests"] = [payload] + entries
            self._flush()

    def remove_request(self, request_id: str) -> None:
        with self._lock:
            self._state["requests"] = [
                entry for entry in self._state["requests"] if str(entry.get("id")) != str(request_id)
            ]
            self._flush()

    def queue_write(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        entry = {
            "id": uuid.uuid4().hex,
            "method": method,
            "path": path,
            "payload": payload,
            "queued_at": time.time(),
        }
        with self._lock:
            self._state["pending_writes"].append(entry)
            self._flush()
        return entry

    def pending_writes(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(entry) for entry in self._state["pending_writes"]]

    def drop_write(self, write_id: str) -> None:
        with self._lock:
            self._state["pending_writes"] = [
                entry for entry in self._state["pending_writes"] if entry["id"] != write_id
            ]
            self._flush()
