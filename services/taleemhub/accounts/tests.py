"""Tests for the role hierarchy and the user directory API."""
from __future__ import annotations

from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from datarequests.models import DataRequest, RequestAssignee

from . import hierarchy
from .hierarchy import Member
from .models import Cluster, District, School, User


def _directory():
    return [
        Member(id="ceo", role=hierarchy.CEO),
        Member(id="deo", role=hierarchy.DEO, district_id="D1"),
        Member(id="deo-2", role=hierarchy.DEO, district_id="D2"),
        Member(id="ddeo", role=hierarchy.DDEO, district_id="D1"),
        Member(id="aeo", role=hierarchy.AEO, cluster_id="C1", district_id="D1",
               assigned_schools=("Model School",)),
        Member(id="aeo-2", role=hierarchy.AEO, cluster_id="C2", district_id="D1"),
        Member(id="ht", role=hierarchy.HEAD_TEACHER, school_id="S1", school_name="Primary One",
               cluster_id="C1", district_id="D1"),
        Member(id="ht-far", role=hierarchy.HEAD_TEACHER, school_id="S9", school_name="Model School",
               cluster_id="C9", district_id="D2"),
        Member(id="ht-other", role=hierarchy.HEAD_TEACHER, school_id="S5", school_name="Hill School",
               cluster_id="C5", district_id="D1"),
        Member(id="teacher", role=hierarchy.TEACHER, school_id="S1", cluster_id="C1", district_id="D1"),
        Member(id="teacher-2", role=hierarchy.TEACHER, school_id="S2", cluster_id="C1", district_id="D1"),
        Member(id="teacher-off", role=hierarchy.TEACHER, school_id="S1", cluster_id="C1",
               district_id="D1", is_active=False),
        Member(id="coach", role=hierarchy.COACH, school_id="S1", cluster_id="C1", district_id="D1"),
        Member(id="tm", role=hierarchy.TRAINING_MANAGER, district_id="D1"),
    ]


def _ids(members):
    return sorted(member.id for member in members)


class HierarchyPolicyTests(SimpleTestCase):
    def setUp(self) -> None:
        self.directory = _directory()
        self.by_id = {member.id: member for member in self.directory}

    def eligible(self, requester_id, exclude_ids=()):
        return hierarchy.eligible_assignees(self.by_id[requester_id], self.directory, exclude_ids)

    def test_scope_rules(self) -> None:
        self.assertEqual(_ids(self.eligible("ceo")), ["deo", "deo-2"])
        self.assertEqual(_ids(self.eligible("deo")), ["aeo", "aeo-2", "ddeo"])
        self.assertEqual(_ids(self.eligible("ddeo")), ["aeo", "aeo-2"])
        self.assertEqual(_ids(self.eligible("aeo")), ["ht", "ht-far"])
        self.assertEqual(_ids(self.eligible("ht")), ["teacher"])

    def test_roles_without_assignees_get_nothing(self) -> None:
        for role_id in ("teacher", "coach", "tm"):
            self.assertEqual(self.eligible(role_id), [])
            self.assertFalse(hierarchy.can_create_requests(self.by_id[role_id].role))

    def test_filter_is_deterministic(self) -> None:
        first = self.eligible("deo")
        second = self.eligible("deo")
        reversed_result = hierarchy.eligible_assignees(
            self.by_id["deo"], list(reversed(self.directory))
        )
        self.assertEqual(first, second)
        self.assertEqual(_ids(first), _ids(reversed_result))

    def test_eligible_users_are_strictly_junior(self) -> None:
        for requester in self.directory:
            for candidate in hierarchy.eligible_assignees(requester, self.directory):
                self.assertLess(hierarchy.rank_of(candidate.role), hierarchy.rank_of(requester.role))
                self.assertNotEqual(candidate.id, requester.id)

    def test_every_role_has_a_policy(self) -> None:
        for role, _label in hierarchy.ROLE_CHOICES:
            policy = hierarchy.policy_for(role)
            self.assertIsNotNone(policy)
            for junior in policy.valid_assignees:
                self.assertLess(hierarchy.rank_of(junior), policy.rank)

    def test_excludes_existing_assignees(self) -> None:
        self.assertEqual(_ids(self.eligible("aeo", exclude_ids=["ht"])), ["ht-far"])

    def test_delegation_roles(self) -> None:
        self.assertTrue(hierarchy.can_delegate(hierarchy.AEO))
        self.assertTrue(hierarchy.can_delegate(hierarchy.HEAD_TEACHER))
        self.assertFalse(hierarchy.can_delegate(hierarchy.CEO))
        self.assertFalse(hierarchy.can_delegate(hierarchy.TEACHER))

    def test_user_administration_roles(self) -> None:
        self.assertTrue(hierarchy.can_manage_users(hierarchy.DEO))
        self.assertTrue(hierarchy.can_manage_users(hierarchy.DDEO))
        self.assertFalse(hierarchy.can_manage_users(hierarchy.AEO))
        self.assertFalse(hierarchy.can_manage_users(hierarchy.CEO))

    def test_request_visibility(self) -> None:
        request = {
            "created_by": "aeo",
            "created_by_role": hierarchy.AEO,
            "created_by_cluster_id": "C1",
            "created_by_district_id": "D1",
            "assignees": [{"user_id": "ht"}],
        }
        visible = {
            member.id for member in self.directory if hierarchy.can_view_request_payload(member, request)
        }
        self.assertEqual(visible, {"aeo", "ht", "ceo", "deo", "ddeo", "tm"})

    def test_member_from_mapping(self) -> None:
        member = Member.from_mapping(
            {"id": 7, "role": "AEO", "cluster_id": "C1", "assigned_schools": ["A", "B"]}
        )
        self.assertEqual(member.id, "7")
        self.assertEqual(member.assigned_schools, ("A", "B"))
        self.assertTrue(member.is_active)


class UserApiTests(TestCase):
    def setUp(self) -> None:
        self.client = APIClient()
        self.district = District.objects.create(id="DIST-1", name="Rawalpindi", code="RWP")
        self.cluster = Cluster.objects.create(id="CLUS-1", name="Markaz One", code="MK1", district=self.district)
        self.school = School.objects.create(
            id="SCH-1", name="Govt Primary School", code="EMIS-1", cluster=self.cluster, district=self.district
        )
        self.aeo = User.objects.create(
            name="Ahmed", phone_number="03000000001", role="AEO", cluster_id="CLUS-1", district_id="DIST-1"
        )
        self.client.credentials(HTTP_X_USER_ID=self.aeo.id)
        self.deo = User.objects.create(
            name="Saima", phone_number="03000000010", role="DEO", district_id="DIST-1"
        )
        self.admin = APIClient()
        self.admin.credentials(HTTP_X_USER_ID=self.deo.id)

    def test_requires_identity(self) -> None:
        anonymous = APIClient()
        response = anonymous.get(reverse("user-list"))
        self.assertEqual(response.status_code, 401)

        anonymous.credentials(HTTP_X_USER_ID="nobody")
        response = anonymous.get(reverse("user-list"))
        self.assertEqual(response.status_code, 401)

    def test_health_is_public(self) -> None:
        response = APIClient().get(reverse("health"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "ok")

    def test_create_user_derives_school_units(self) -> None:
        payload = {
            "name": "Khan",
            "phone_number": "03000000002",
            "role": "HEAD_TEACHER",
            "school_id": "SCH-1",
        }
        response = self.admin.post(reverse("user-list"), payload, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["school_name"], "Govt Primary School")
        self.assertEqual(response.data["cluster_id"], "CLUS-1")
        self.assertEqual(response.data["district_id"], "DIST-1")

    def test_duplicate_phone_rejected(self) -> None:
        payload = {"name": "Copy", "phone_number": "03000000001", "role": "TEACHER"}
        response = self.admin.post(reverse("user-list"), payload, format="json")
        self.assertEqual(response.status_code, 400)

    def test_eligible_assignees_endpoint(self) -> None:
        khan = User.objects.create(
            name="Khan", phone_number="03000000002", role="HEAD_TEACHER", school_id="SCH-1", cluster_id="CLUS-1"
        )
        User.objects.create(
            name="Faraway", phone_number="03000000003", role="HEAD_TEACHER", school_id="SCH-9", cluster_id="CLUS-9"
        )
        User.objects.create(
            name="Teacher", phone_number="03000000004", role="TEACHER", school_id="SCH-1", cluster_id="CLUS-1"
        )
        url = reverse("user-eligible-assignees", args=[self.aeo.id])

        response = self.client.get(url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual([entry["id"] for entry in response.data], [khan.id])

        data_request = DataRequest.objects.create(
            title="Attendance", created_by=self.aeo.id, created_by_name="Ahmed", created_by_role="AEO"
        )
        RequestAssignee.objects.create(
            request=data_request, user_id=khan.id, user_name="Khan", user_role="HEAD_TEACHER"
        )
        response = self.client.get(url, {"request_id": data_request.id})
        self.assertEqual(response.data, [])

    def test_eligible_assignees_hides_requests_out_of_view(self) -> None:
        hidden = DataRequest.objects.create(
            title="District audit",
            created_by=self.deo.id,
            created_by_name="Saima",
            created_by_role="DEO",
            created_by_district_id="DIST-9",
        )
        url = reverse("user-eligible-assignees", args=[self.aeo.id])

        response = self.client.get(url, {"request_id": hidden.id})
        self.assertEqual(response.status_code, 403)

        response = self.client.get(url, {"request_id": "missing"})
        self.assertEqual(response.status_code, 404)

    def test_eligible_assignees_only_for_self(self) -> None:
        other = User.objects.create(name="Other", phone_number="03000000009", role="AEO")
        response = self.client.get(reverse("user-eligible-assignees", args=[other.id]))
        self.assertEqual(response.status_code, 403)

    def test_schools_filtered_by_cluster(self) -> None:
        response = self.client.get(reverse("school-list"), {"cluster_id": "CLUS-1"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([entry["id"] for entry in response.data], ["SCH-1"])

    def test_school_cluster_must_match_district(self) -> None:
        other = District.objects.create(name="Attock", code="ATK")
        payload = {
            "name": "Mismatch",
            "code": "EMIS-2",
            "cluster": self.cluster.id,
            "district": other.id,
        }
        response = self.client.post(reverse("school-list"), payload, format="json")
        self.assertEqual(response.status_code, 400)

    def test_users_cannot_raise_their_own_role(self) -> None:
        teacher = User.objects.create(
            name="Bilal", phone_number="03000000011", role="TEACHER", school_id="SCH-1", cluster_id="CLUS-1"
        )
        client = APIClient()
        client.credentials(HTTP_X_USER_ID=teacher.id)
        url = reverse("user-detail", args=[teacher.id])

        response = client.patch(url, {"role": "CEO"}, format="json")
        self.assertEqual(response.status_code, 403)
        response = client.patch(url, {"district_id": "DIST-9"}, format="json")
        self.assertEqual(response.status_code, 403)
        teacher.refresh_from_db()
        self.assertEqual(teacher.role, "TEACHER")
        self.assertIsNone(teacher.district_id)

        response = client.patch(url, {"name": "Bilal Ahmad"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["name"], "Bilal Ahmad")

        response = self.admin.patch(
            reverse("user-detail", args=[self.deo.id]), {"role": "CEO"}, format="json"
        )
        self.assertEqual(response.status_code, 403)

    def test_only_administrators_manage_other_users(self) -> None:
        url = reverse("user-detail", args=[self.deo.id])
        response = self.client.patch(url, {"role": "TEACHER"}, format="json")
        self.assertEqual(response.status_code, 403)
        self.deo.refresh_from_db()
        self.assertEqual(self.deo.role, "DEO")

        payload = {"name": "Khan", "phone_number": "03000000002", "role": "HEAD_TEACHER"}
        response = self.client.post(reverse("user-list"), payload, format="json")
        self.assertEqual(response.status_code, 403)

        response = self.client.delete(url)
        self.assertEqual(response.status_code, 403)

        response = self.admin.patch(
            reverse("user-detail", args=[self.aeo.id]), {"is_active": False}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data["is_active"])
