"""API tests for the data request lifecycle."""
from __future__ import annotations

import uuid
from datetime import timedelta

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User

from .models import DataRequest, RequestAssignee
from .tasks import mark_overdue_assignees

FIELDS = [
    {"id": "f1", "name": "Remarks", "type": "text", "required": False},
    {"id": "f2", "name": "Enrolled", "type": "number", "required": True},
]


class DataRequestApiTests(TestCase):
    def setUp(self) -> None:
        self.ahmed = User.objects.create(
            name="Ahmed", phone_number="03001110001", role="AEO", cluster_id="CLUS-1", district_id="DIST-1"
        )
        self.khan = User.objects.create(
            name="Khan",
            phone_number="03001110002",
            role="HEAD_TEACHER",
            school_id="SCH-1",
            school_name="Govt Primary School",
            cluster_id="CLUS-1",
            district_id="DIST-1",
        )
        self.bibi = User.objects.create(
            name="Bibi",
            phone_number="03001110003",
            role="HEAD_TEACHER",
            school_id="SCH-2",
            cluster_id="CLUS-1",
            district_id="DIST-1",
        )
        self.teacher = User.objects.create(
            name="Sana", phone_number="03001110004", role="TEACHER", school_id="SCH-1", cluster_id="CLUS-1"
        )
        self.outsider = User.objects.create(
            name="Far", phone_number="03001110005", role="HEAD_TEACHER", school_id="SCH-9", cluster_id="CLUS-9"
        )
        self.deo = User.objects.create(
            name="Rashid", phone_number="03001110006", role="DEO", district_id="DIST-1"
        )

    def client_for(self, user: User) -> APIClient:
        client = APIClient()
        client.credentials(HTTP_X_USER_ID=user.id)
        return client

    def create_request(self, creator=None, **overrides):
        payload = {
            "title": "School census",
            "description": "Enrollment figures for the term",
            "fields": FIELDS,
            "assignee_ids": [self.khan.id, self.bibi.id],
            "priority": "high",
        }
        payload.update(overrides)
        return self.client_for(creator or self.ahmed).post(
            reverse("data-request-list"), payload, format="json"
        )

    def assignee_of(self, request_id: str, user: User) -> RequestAssignee:
        return RequestAssignee.objects.get(request_id=request_id, user_id=user.id)

    def test_monthly_attendance_scenario(self) -> None:
        response = self.create_request(
            title="Monthly Attendance",
            fields=[{"name": "Count", "type": "number", "required": True}],
            assignee_ids=[self.khan.id],
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], DataRequest.ACTIVE)
        self.assertEqual(len(response.data["assignees"]), 1)
        assignee = response.data["assignees"][0]
        self.assertEqual(assignee["user_id"], self.khan.id)
        self.assertEqual(assignee["status"], RequestAssignee.PENDING)
        count_id = response.data["fields"][0]["id"]

        submit = self.client_for(self.khan).patch(
            reverse("assignee-detail", args=[assignee["id"]]),
            {"values": {count_id: 42}},
            format="json",
        )
        self.assertEqual(submit.status_code, 200)
        self.assertEqual(submit.data["status"], RequestAssignee.COMPLETED)
        self.assertIsNotNone(submit.data["submitted_at"])

        detail = self.client_for(self.ahmed).get(reverse("data-request-detail", args=[response.data["id"]]))
        self.assertEqual(detail.status_code, 200)
        self.assertEqual(detail.data["progress"], {"completed": 1, "total": 1})
        self.assertEqual(detail.data["status"], DataRequest.COMPLETED)
        self.assertEqual(detail.data["assignees"][0]["fields"][0]["value"], 42)

    def test_create_requires_title_fields_and_assignees(self) -> None:
        self.assertEqual(self.create_request(title="").status_code, 400)
        self.assertEqual(self.create_request(title="   ").status_code, 400)
        self.assertEqual(self.create_request(fields=[]).status_code, 400)
        self.assertEqual(self.create_request(assignee_ids=[]).status_code, 400)
        self.assertEqual(DataRequest.objects.count(), 0)

    def test_duplicate_assignee_ids_collapse(self) -> None:
        response = self.create_request(assignee_ids=[self.khan.id, self.khan.id, self.bibi.id])
        self.assertEqual(response.status_code, 201)
        user_ids = sorted(RequestAssignee.objects.values_list("user_id", flat=True))
        self.assertEqual(user_ids, sorted([self.khan.id, self.bibi.id]))

    def test_create_rejects_ineligible_assignees(self) -> None:
        response = self.create_request(assignee_ids=[self.khan.id, self.outsider.id])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(DataRequest.objects.count(), 0)

        response = self.create_request(assignee_ids=[self.ahmed.id])
        self.assertEqual(response.status_code, 400)

    def test_roles_without_subordinates_cannot_create(self) -> None:
        response = self.create_request(creator=self.teacher, assignee_ids=[self.khan.id])
        self.assertEqual(response.status_code, 403)

    def test_duplicate_field_ids_rejected(self) -> None:
        response = self.create_request(
            fields=[{"id": "f1", "name": "A", "type": "text"}, {"id": "f1", "name": "B", "type": "number"}]
        )
        self.assertEqual(response.status_code, 400)

    def test_field_values_round_trip_by_id(self) -> None:
        request_id = self.create_request().data["id"]
        assignee = self.assignee_of(request_id, self.khan)

        response = self.client_for(self.khan).patch(
            reverse("assignee-detail", args=[assignee.id]),
            {"values": {"f2": 5, "f1": "ok"}},
            format="json",
        )
        self.assertEqual(response.status_code, 200)

        detail = self.client_for(self.khan).get(reverse("data-request-detail", args=[request_id]))
        entry = next(item for item in detail.data["assignees"] if item["user_id"] == self.khan.id)
        self.assertEqual(entry["status"], RequestAssignee.COMPLETED)
        self.assertIsNotNone(entry["submitted_at"])
        values = {field["id"]: field["value"] for field in entry["fields"]}
        self.assertEqual(values, {"f1": "ok", "f2": 5})
        self.assertEqual(detail.data["status"], DataRequest.ACTIVE)
        self.assertEqual(detail.data["progress"], {"completed": 1, "total": 2})

    def test_attachment_fields_store_url_and_name(self) -> None:
        request_id = self.create_request(
            fields=[{"id": "p1", "name": "Register photo", "type": "photo", "required": True}],
            assignee_ids=[self.khan.id],
        ).data["id"]
        assignee = self.assignee_of(request_id, self.khan)

        response = self.client_for(self.khan).patch(
            reverse("assignee-detail", args=[assignee.id]),
            {"values": {"p1": {"url": "https://files.example/p1.jpg", "file_name": "p1.jpg"}}},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["fields"][0]["file_url"], "https://files.example/p1.jpg")
        self.assertEqual(response.data["fields"][0]["file_name"], "p1.jpg")

    def test_submission_validation(self) -> None:
        request_id = self.create_request().data["id"]
        url = reverse("assignee-detail", args=[self.assignee_of(request_id, self.khan).id])
        client = self.client_for(self.khan)

        self.assertEqual(client.patch(url, {"values": {"f1": "only text"}}, format="json").status_code, 400)
        self.assertEqual(client.patch(url, {"values": {"f2": "many"}}, format="json").status_code, 400)
        self.assertEqual(client.patch(url, {"values": {"f2": 1, "zz": 3}}, format="json").status_code, 400)
        self.assertEqual(self.assignee_of(request_id, self.khan).status, RequestAssignee.PENDING)

    def test_numeric_text_is_parsed(self) -> None:
        request_id = self.create_request().data["id"]
        url = reverse("assignee-detail", args=[self.assignee_of(request_id, self.khan).id])
        client = self.client_for(self.khan)

        for raw, expected in (("42", 42), ("2.5", 2.5), ("1e3", 1000.0)):
            response = client.patch(url, {"values": {"f1": "ok", "f2": raw}}, format="json")
            self.assertEqual(response.status_code, 200)
            values = {field["id"]: field["value"] for field in response.data["fields"]}
            self.assertEqual(values["f2"], expected)

        for raw in ("NaN", "inf", "twelve"):
            response = client.patch(url, {"values": {"f2": raw}}, format="json")
            self.assertEqual(response.status_code, 400)

    def test_only_the_assignee_can_submit(self) -> None:
        request_id = self.create_request().data["id"]
        url = reverse("assignee-detail", args=[self.assignee_of(request_id, self.khan).id])

        response = self.client_for(self.bibi).patch(url, {"values": {"f2": 1}}, format="json")
        self.assertEqual(response.status_code, 403)
        response = self.client_for(self.ahmed).patch(url, {"values": {"f2": 1}}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_delegation_inherits_field_template(self) -> None:
        request_id = self.create_request().data["id"]
        response = self.client_for(self.khan).post(
            reverse("data-request-delegate", args=[request_id]),
            {"user_id": self.teacher.id},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], RequestAssignee.PENDING)
        self.assertEqual(response.data["delegated_by"], self.khan.id)
        self.assertEqual(
            [(field["id"], field["type"]) for field in response.data["fields"]],
            [("f1", "text"), ("f2", "number")],
        )
        self.assertTrue(all(field["value"] is None for field in response.data["fields"]))
        self.assertEqual(RequestAssignee.objects.filter(request_id=request_id).count(), 3)

    def test_delegation_reopens_completed_request(self) -> None:
        request_id = self.create_request(assignee_ids=[self.khan.id]).data["id"]
        khan_client = self.client_for(self.khan)
        khan_client.patch(
            reverse("assignee-detail", args=[self.assignee_of(request_id, self.khan).id]),
            {"values": {"f2": 10}},
            format="json",
        )
        self.assertEqual(DataRequest.objects.get(id=request_id).status, DataRequest.COMPLETED)

        khan_client.post(
            reverse("data-request-delegate", args=[request_id]), {"user_id": self.teacher.id}, format="json"
        )
        self.assertEqual(DataRequest.objects.get(id=request_id).status, DataRequest.ACTIVE)

    def test_delegation_rules(self) -> None:
        request_id = self.create_request().data["id"]
        url = reverse("data-request-delegate", args=[request_id])

        # Not an assignee of the request.
        response = self.client_for(self.deo).post(url, {"user_id": self.teacher.id}, format="json")
        self.assertEqual(response.status_code, 403)

        # Teacher at another school is outside Bibi's scope.
        response = self.client_for(self.bibi).post(url, {"user_id": self.teacher.id}, format="json")
        self.assertEqual(response.status_code, 400)

        # Already assigned.
        response = self.client_for(self.khan).post(url, {"user_id": self.bibi.id}, format="json")
        self.assertEqual(response.status_code, 400)

        response = self.client_for(self.khan).post(url, {"user_id": self.teacher.id}, format="json")
        self.assertEqual(response.status_code, 201)
        response = self.client_for(self.khan).post(url, {"user_id": self.teacher.id}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_assignee_without_delegation_rights(self) -> None:
        request_id = self.create_request(assignee_ids=[self.khan.id]).data["id"]
        self.client_for(self.khan).post(
            reverse("data-request-delegate", args=[request_id]), {"user_id": self.teacher.id}, format="json"
        )
        helper = User.objects.create(
            name="Helper", phone_number="03001110007", role="TEACHER", school_id="SCH-1"
        )
        response = self.client_for(self.teacher).post(
            reverse("data-request-delegate", args=[request_id]), {"user_id": helper.id}, format="json"
        )
        self.assertEqual(response.status_code, 403)

    def test_client_reference_deduplicates_creation(self) -> None:
        reference = str(uuid.uuid4())
        first = self.create_request(client_reference=reference)
        second = self.create_request(client_reference=reference)
        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(first.data["id"], second.data["id"])
        self.assertEqual(DataRequest.objects.count(), 1)
        self.assertEqual(RequestAssignee.objects.count(), 2)

    def test_client_reference_belongs_to_creator(self) -> None:
        reference = str(uuid.uuid4())
        self.create_request(client_reference=reference)
        response = self.create_request(creator=self.deo, client_reference=reference, assignee_ids=[self.ahmed.id])
        self.assertEqual(response.status_code, 400)

    def test_only_creator_can_delete(self) -> None:
        request_id = self.create_request().data["id"]
        url = reverse("data-request-detail", args=[request_id])

        response = self.client_for(self.khan).delete(url)
        self.assertEqual(response.status_code, 403)
        self.assertTrue(DataRequest.objects.filter(id=request_id).exists())

        response = self.client_for(self.ahmed).delete(url)
        self.assertEqual(response.status_code, 204)
        self.assertFalse(DataRequest.objects.filter(id=request_id).exists())
        self.assertFalse(RequestAssignee.objects.filter(request_id=request_id).exists())

        response = self.client_for(self.ahmed).delete(url)
        self.assertEqual(response.status_code, 404)

    def test_missing_request_is_not_found(self) -> None:
        response = self.client_for(self.ahmed).get(reverse("data-request-detail", args=["missing"]))
        self.assertEqual(response.status_code, 404)

    def test_detail_requires_visibility(self) -> None:
        request_id = self.create_request(assignee_ids=[self.khan.id]).data["id"]
        assignee_id = self.assignee_of(request_id, self.khan).id

        response = self.client_for(self.outsider).get(reverse("data-request-detail", args=[request_id]))
        self.assertEqual(response.status_code, 403)
        response = self.client_for(self.bibi).get(reverse("assignee-detail", args=[assignee_id]))
        self.assertEqual(response.status_code, 403)
        response = self.client_for(self.deo).get(reverse("assignee-detail", args=[assignee_id]))
        self.assertEqual(response.status_code, 200)

    def test_update_request_attributes(self) -> None:
        request_id = self.create_request().data["id"]
        url = reverse("data-request-detail", args=[request_id])
        due = (timezone.now() + timedelta(days=3)).isoformat()

        response = self.client_for(self.ahmed).patch(
            url, {"title": "Census (revised)", "priority": "urgent", "due_date": due}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["title"], "Census (revised)")
        self.assertEqual(response.data["priority"], "urgent")
        self.assertEqual(len(response.data["assignees"]), 2)

        response = self.client_for(self.khan).patch(url, {"title": "Hijacked"}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_fields_frozen_after_first_submission(self) -> None:
        request_id = self.create_request().data["id"]
        url = reverse("data-request-detail", args=[request_id])
        new_fields = [{"id": "g1", "name": "Teachers present", "type": "number", "required": True}]

        response = self.client_for(self.ahmed).patch(url, {"fields": new_fields}, format="json")
        self.assertEqual(response.status_code, 200)
        responses = self.assignee_of(request_id, self.khan).field_responses
        self.assertEqual([entry["id"] for entry in responses], ["g1"])

        self.client_for(self.khan).patch(
            reverse("assignee-detail", args=[self.assignee_of(request_id, self.khan).id]),
            {"values": {"g1": 7}},
            format="json",
        )
        response = self.client_for(self.ahmed).patch(url, {"fields": FIELDS}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(DataRequest.objects.get(id=request_id).fields, new_fields)

    def test_list_applies_visibility(self) -> None:
        request_id = self.create_request(assignee_ids=[self.khan.id]).data["id"]

        def listed(user):
            response = self.client_for(user).get(reverse("data-request-list"))
            self.assertEqual(response.status_code, 200)
            return [entry["id"] for entry in response.data]

        self.assertEqual(listed(self.ahmed), [request_id])
        self.assertEqual(listed(self.khan), [request_id])
        self.assertEqual(listed(self.deo), [request_id])
        self.assertEqual(listed(self.bibi), [])
        self.assertEqual(listed(self.outsider), [])

        self.client_for(self.ahmed).patch(
            reverse("data-request-detail", args=[request_id]), {"is_archived": True}, format="json"
        )
        self.assertEqual(listed(self.ahmed), [])


class OverdueSweepTests(TestCase):
    def test_marks_pending_assignees_overdue(self) -> None:
        past = DataRequest.objects.create(
            title="Late",
            created_by="aeo",
            created_by_name="Ahmed",
            created_by_role="AEO",
            fields=FIELDS,
            due_date=timezone.now() - timedelta(days=1),
        )
        future = DataRequest.objects.create(
            title="On time",
            created_by="aeo",
            created_by_name="Ahmed",
            created_by_role="AEO",
            fields=FIELDS,
        )
        late = RequestAssignee.objects.create(request=past, user_id="ht", user_name="Khan", user_role="HEAD_TEACHER")
        done = RequestAssignee.objects.create(
            request=past, user_id="ht-2", user_name="Bibi", user_role="HEAD_TEACHER", status=RequestAssignee.COMPLETED
        )
        waiting = RequestAssignee.objects.create(
            request=future, user_id="ht", user_name="Khan", user_role="HEAD_TEACHER"
        )

        self.assertEqual(mark_overdue_assignees(), 1)

        late.refresh_from_db()
        done.refresh_from_db()
        waiting.refresh_from_db()
        self.assertEqual(late.status, RequestAssignee.OVERDUE)
        self.assertEqual(done.status, RequestAssignee.COMPLETED)
        self.assertEqual(waiting.status, RequestAssignee.PENDING)
