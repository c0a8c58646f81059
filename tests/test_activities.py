"""Tests for the activity timeline.

Covers:
- Manual activity logging (type vocabulary, reference required, refs must exist)
- Timeline listing and filters, display names
- Activities are append-only; only deal-cascade orphans may be removed
"""

import pytest

from contractor_crm.models.activity import Activity
from contractor_crm.services import crm_service

ACTOR = "admin@contractor.local"


class TestLogActivity:

    def test_log_call_on_lead(self, admin_client, seed_data):
        response = admin_client.post("/api/crm/activities", json={
            "type": "call_logged",
            "description": "Left a voicemail",
            "leadId": seed_data["lead_id"],
            "metadata": {"duration_minutes": 3},
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["type"] == "call_logged"
        assert body["performed_by"] == ACTOR
        assert body["subject"] == {"kind": "lead", "id": seed_data["lead_id"]}
        assert body["metadata"] == {"duration_minutes": 3}

    def test_unknown_type_rejected(self, admin_client, seed_data):
        response = admin_client.post("/api/crm/activities", json={
            "type": "telepathy", "leadId": seed_data["lead_id"],
        })
        assert response.status_code == 400
        assert Activity.query.count() == 0

    def test_reference_required(self, admin_client, seed_data):
        response = admin_client.post("/api/crm/activities", json={"type": "note_added"})
        assert response.status_code == 400
        assert "linked to a lead, client, or deal" in response.get_json()["details"][0]["message"]

    def test_reference_must_exist(self, admin_client, seed_data):
        response = admin_client.post("/api/crm/activities", json={
            "type": "note_added", "dealId": "missing-deal",
        })
        assert response.status_code == 404
        assert Activity.query.count() == 0

    def test_cannot_log_on_deleted_lead(self, admin_client, seed_data):
        crm_service.soft_delete_lead(seed_data["lead_id"], ACTOR)
        response = admin_client.post("/api/crm/activities", json={
            "type": "note_added", "leadId": seed_data["lead_id"],
        })
        assert response.status_code == 404


class TestTimeline:

    def test_filter_by_entity_and_type(self, admin_client, seed_data):
        crm_service.create_activity(
            {"type": "note_added", "lead_id": seed_data["lead_id"]}, ACTOR
        )
        crm_service.create_activity(
            {"type": "call_logged", "lead_id": seed_data["lead_id"]}, ACTOR
        )
        crm_service.create_activity(
            {"type": "call_logged", "client_id": seed_data["client_id"]}, ACTOR
        )

        body = admin_client.get(
            f"/api/crm/activities?leadId={seed_data['lead_id']}"
        ).get_json()
        assert body["total"] == 2

        body = admin_client.get("/api/crm/activities?type=call_logged").get_json()
        assert body["total"] == 2

        body = admin_client.get(
            f"/api/crm/activities?client_id={seed_data['client_id']}&type=call_logged"
        ).get_json()
        assert body["total"] == 1

    def test_names_resolved(self, admin_client, seed_data):
        crm_service.create_activity(
            {"type": "site_visit_scheduled", "deal_id": seed_data["deal_id"],
             "client_id": seed_data["client_id"]},
            ACTOR,
        )
        item = admin_client.get("/api/crm/activities").get_json()["items"][0]
        assert item["deal"] == {"id": seed_data["deal_id"], "name": "Carol kitchen"}
        assert item["client"] == {"id": seed_data["client_id"], "name": "Carol Client"}
        assert item["lead"] is None
        # Most specific reference wins
        assert item["subject"] == {"kind": "deal", "id": seed_data["deal_id"]}

    def test_status_changes_appear_on_lead_timeline(self, admin_client, seed_data):
        for status in ("contacted", "site_visit", "quoted"):
            crm_service.patch_lead(seed_data["lead_id"], {"status": status}, ACTOR)

        body = admin_client.get(
            f"/api/crm/activities?lead_id={seed_data['lead_id']}&type=status_changed"
        ).get_json()
        transitions = sorted(
            (item["metadata"]["old_status"], item["metadata"]["new_status"])
            for item in body["items"]
        )
        assert transitions == [
            ("contacted", "site_visit"),
            ("new", "contacted"),
            ("site_visit", "quoted"),
        ]


class TestImmutability:

    def test_live_activity_cannot_be_deleted(self, admin_client, seed_data):
        activity = crm_service.create_activity(
            {"type": "note_added", "lead_id": seed_data["lead_id"]}, ACTOR
        )
        response = admin_client.delete(f"/api/crm/activities?id={activity.id}")
        assert response.status_code == 400
        assert response.get_json()["error"] == "Activities are immutable and cannot be deleted"
        assert Activity.query.count() == 1

    def test_activity_of_live_deal_cannot_be_deleted(self, admin_client, seed_data):
        activity = crm_service.create_activity(
            {"type": "note_added", "deal_id": seed_data["deal_id"]}, ACTOR
        )
        response = admin_client.delete(f"/api/crm/activities?id={activity.id}")
        assert response.status_code == 400

    def test_orphan_of_deleted_deal_can_be_removed(self, admin_client, seed_data, db_session):
        # Simulates an orphan left behind by an interrupted deal cascade
        orphan = crm_service.record_activity(
            "note_added", "", ACTOR, deal_id="gone-deal"
        )
        db_session.commit()

        response = admin_client.delete(f"/api/crm/activities?id={orphan.id}")
        assert response.status_code == 200
        assert Activity.query.count() == 0

    def test_delete_missing_activity_404(self, admin_client, seed_data):
        response = admin_client.delete("/api/crm/activities?id=nope")
        assert response.status_code == 404

    def test_record_activity_requires_reference(self, seed_data):
        with pytest.raises(ValueError, match="must reference"):
            crm_service.record_activity("note_added", "", ACTOR)
