"""Tests for the client request store."""
from __future__ import annotations

import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List
from unittest import TestCase, mock

import requests

from .cache import LocalCache
from .store import (
    ClientSettings,
    RemoteRejected,
    RemoteWriteFailed,
    RequestNotFound,
    RequestStore,
    StoreError,
)

AHMED = {"id": "aeo-1", "role": "AEO", "cluster_id": "CLUS-1", "district_id": "DIST-1"}


def _response(status_code: int = 200, payload: Any = None) -> mock.Mock:
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


def _request_payload(request_id: str, **overrides: Any) -> Dict[str, Any]:
    payload = {
        "id": request_id,
        "title": f"Request {request_id}",
        "created_by": "aeo-1",
        "created_by_role": "AEO",
        "created_by_cluster_id": "CLUS-1",
        "created_by_district_id": "DIST-1",
        "is_archived": False,
        "assignees": [{"id": f"a-{request_id}", "user_id": "ht-1", "status": "pending"}],
    }
    payload.update(overrides)
    return payload


class RequestStoreTests(TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock(spec=requests.Session)
        self.cache = LocalCache()
        self.store = RequestStore(
            AHMED, base_url="http://taleemhub.test/api/", cache=self.cache, session=self.session
        )

    def calls(self) -> List[tuple]:
        return [(call.args[0], call.args[1]) for call in self.session.request.call_args_list]

    def test_list_refreshes_snapshot_and_sends_identity(self) -> None:
        self.session.request.return_value = _response(200, [_request_payload("r1")])

        listed = self.store.get_requests_for_user()

        self.assertEqual([entry["id"] for entry in listed], ["r1"])
        self.assertEqual(self.calls(), [("GET", "http://taleemhub.test/api/requests/")])
        self.assertEqual(self.session.request.call_args.kwargs["headers"], {"X-User-Id": "aeo-1"})
        self.assertEqual([entry["id"] for entry in self.cache.requests()], ["r1"])

    def test_list_falls_back_to_visible_cached_requests(self) -> None:
        self.cache.replace_requests(
            [
                _request_payload("mine"),
                _request_payload("archived", is_archived=True),
                _request_payload(
                    "elsewhere",
                    created_by="deo-9",
                    created_by_role="DEO",
                    created_by_cluster_id=None,
                    created_by_district_id="DIST-9",
                ),
                _request_payload(
                    "assigned-to-me",
                    created_by="deo-1",
                    created_by_role="DEO",
                    assignees=[{"id": "a9", "user_id": "aeo-1", "status": "pending"}],
                ),
                _request_payload(
                    "from-my-school",
                    created_by="ht-1",
                    created_by_role="HEAD_TEACHER",
                    created_by_school_id="SCH-1",
                    assignees=[],
                ),
            ]
        )
        self.session.request.side_effect = requests.ConnectionError("offline")

        listed = self.store.get_requests_for_user()

        self.assertEqual(
            sorted(entry["id"] for entry in listed), ["assigned-to-me", "from-my-school", "mine"]
        )

    def test_list_falls_back_on_server_error(self) -> None:
        self.cache.replace_requests([_request_payload("mine")])
        self.session.request.return_value = _response(503, {"detail": "down"})

        self.assertEqual([entry["id"] for entry in self.store.get_requests_for_user()], ["mine"])

    def test_get_request_uses_cache_when_offline(self) -> None:
        self.cache.upsert_request(_request_payload("r1"))
        self.session.request.side_effect = requests.Timeout("slow")

        self.assertEqual(self.store.get_request("r1")["id"], "r1")
        with self.assertRaises(StoreError):
            self.store.get_request("unknown")

    def test_get_request_not_found(self) -> None:
        self.cache.upsert_request(_request_payload("gone"))
        self.session.request.return_value = _response(404, {"detail": "Not found."})

        with self.assertRaises(RequestNotFound):
            self.store.get_request("gone")

    def test_create_sends_client_reference(self) -> None:
        created = _request_payload("r-new")
        self.session.request.return_value = _response(201, created)

        result = self.store.create_request(
            "Monthly Attendance",
            [{"name": "Count", "type": "number", "required": True}],
            ["ht-1"],
        )

        self.assertEqual(result, created)
        body = self.session.request.call_args.kwargs["json"]
        self.assertEqual(body["assignee_ids"], ["ht-1"])
        self.assertTrue(body["client_reference"])
        self.assertEqual(self.cache.get_request("r-new"), created)

    def test_overlapping_create_is_dropped(self) -> None:
        entered = threading.Event()
        release = threading.Event()

        def slow_request(*args: Any, **kwargs: Any) -> mock.Mock:
            entered.set()
            release.wait(5)
            return _response(201, _request_payload("r-once"))

        self.session.request.side_effect = slow_request
        results: List[Any] = []
        worker = threading.Thread(
            target=lambda: results.append(
                self.store.create_request("Census", [{"name": "Count", "type": "number"}], ["ht-1"])
            )
        )
        worker.start()
        self.assertTrue(entered.wait(5))

        duplicate = self.store.create_request("Census", [{"name": "Count", "type": "number"}], ["ht-1"])
        release.set()
        worker.join(5)

        self.assertIsNone(duplicate)
        self.assertEqual(results[0]["id"], "r-once")
        self.assertEqual(self.session.request.call_count, 1)

    def test_failed_create_is_queued_with_its_reference(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("offline")

        with self.assertRaises(RemoteWriteFailed) as raised:
            self.store.create_request(
                "Census", [{"name": "Count", "type": "number"}], ["ht-1"], client_reference="ref-1"
            )

        pending = self.store.pending_writes()
        self.assertEqual(len(pending), 1)
        self.assertEqual(pending[0]["method"], "POST")
        self.assertEqual(pending[0]["payload"]["client_reference"], "ref-1")
        self.assertEqual(raised.exception.queued_write["id"], pending[0]["id"])
        self.assertEqual(self.cache.requests(), [])

        # The latch is released after a failure.
        self.session.request.side_effect = None
        self.session.request.return_value = _response(201, _request_payload("r2"))
        self.assertIsNotNone(
            self.store.create_request("Census", [{"name": "Count", "type": "number"}], ["ht-1"])
        )

    def test_listing_replaces_snapshot(self) -> None:
        self.session.request.return_value = _response(200, [_request_payload("r1")])
        self.store.get_requests_for_user()
        self.session.request.return_value = _response(200, [])
        self.store.get_requests_for_user()

        self.session.request.side_effect = requests.ConnectionError("offline")
        self.assertEqual(self.store.get_requests_for_user(), [])
        self.assertEqual(self.cache.requests(), [])

    def test_retried_create_reuses_queued_reference(self) -> None:
        self.session.request.side_effect = requests.Timeout("slow")
        fields = [{"name": "Count", "type": "number"}]

        with self.assertRaises(RemoteWriteFailed):
            self.store.create_request("Census", fields, ["ht-1"])
        first_reference = self.store.pending_writes()[0]["payload"]["client_reference"]
        with self.assertRaises(RemoteWriteFailed):
            self.store.create_request("Census", fields, ["ht-1"])

        pending = self.store.pending_writes()
        self.assertEqual(len(pending), 1)
        self.assertEqual(pending[0]["payload"]["client_reference"], first_reference)

        self.session.request.side_effect = None
        self.session.request.return_value = _response(200, _request_payload("r-census"))
        self.store.create_request("Census", fields, ["ht-1"])

        sent = [call.kwargs["json"]["client_reference"] for call in self.session.request.call_args_list]
        self.assertEqual(sent, [first_reference] * 3)
        self.assertEqual(self.store.pending_writes(), [])
        self.assertEqual(self.store.resubmit_pending(), 0)

    def test_different_create_gets_its_own_reference(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("offline")
        with self.assertRaises(RemoteWriteFailed):
            self.store.create_request("Census", [{"name": "Count", "type": "number"}], ["ht-1"])
        with self.assertRaises(RemoteWriteFailed):
            self.store.create_request("Enrolment", [{"name": "Count", "type": "number"}], ["ht-1"])

        references = {entry["payload"]["client_reference"] for entry in self.store.pending_writes()}
        self.assertEqual(len(references), 2)

    def test_settings_read_environment_on_construction(self) -> None:
        environ = {"TALEEMHUB_API_URL": "http://edge.test/api", "TALEEMHUB_API_TIMEOUT": "3"}
        with mock.patch.dict("os.environ", environ):
            settings = ClientSettings()
        self.assertEqual(settings.api_url, "http://edge.test/api")
        self.assertEqual(settings.timeout, 3.0)

    def test_rejected_write_is_not_queued(self) -> None:
        self.session.request.return_value = _response(400, {"title": ["This field may not be blank."]})

        with self.assertRaises(RemoteRejected) as raised:
            self.store.update_request("r1", title="")

        self.assertEqual(raised.exception.status_code, 400)
        self.assertEqual(self.store.pending_writes(), [])

    def test_delete_removes_cached_copy(self) -> None:
        self.cache.upsert_request(_request_payload("r1"))
        self.session.request.return_value = _response(204)

        self.store.delete_request("r1")

        self.assertEqual(self.calls(), [("DELETE", "http://taleemhub.test/api/requests/r1/")])
        self.assertIsNone(self.cache.get_request("r1"))

    def test_submit_and_delegate_paths(self) -> None:
        self.session.request.return_value = _response(200, {"id": "a1", "status": "completed"})
        self.store.submit_response("a1", {"f1": 42})
        self.session.request.return_value = _response(201, {"id": "a2", "status": "pending"})
        self.store.delegate("r1", "teacher-1")

        self.assertEqual(
            self.calls(),
            [
                ("PATCH", "http://taleemhub.test/api/assignees/a1/"),
                ("POST", "http://taleemhub.test/api/requests/r1/assignees/"),
            ],
        )
        first_body = self.session.request.call_args_list[0].kwargs["json"]
        self.assertEqual(first_body, {"values": {"f1": 42}})

    def test_resubmit_pending_writes(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("offline")
        with self.assertRaises(RemoteWriteFailed):
            self.store.submit_response("a1", {"f1": 1})
        with self.assertRaises(RemoteWriteFailed):
            self.store.delete_request("r1")

        self.session.request.side_effect = [
            _response(200, {"id": "a1"}),
            requests.ConnectionError("still offline"),
        ]
        self.assertEqual(self.store.resubmit_pending(), 1)
        remaining = self.store.pending_writes()
        self.assertEqual([entry["method"] for entry in remaining], ["DELETE"])


class LocalCacheTests(TestCase):
    def test_snapshot_survives_reload(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "cache" / "requests.json"
            cache = LocalCache(path)
            cache.upsert_request({"id": "r1", "title": "Census"})
            cache.queue_write("PATCH", "requests/r1/", {"title": "New"})

            reloaded = LocalCache(path)
            self.assertEqual(reloaded.get_request("r1")["title"], "Census")
            self.assertEqual(reloaded.pending_writes()[0]["path"], "requests/r1/")

    def test_unreadable_file_is_ignored(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "requests.json"
            path.write_text("{not json", encoding="utf-8")
            self.assertEqual(LocalCache(path).requests(), [])
