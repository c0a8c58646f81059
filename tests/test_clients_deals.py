"""Tests for clients and deals (projects).

Covers:
- Client list aggregates (deal_count, total_value) and status changes
- Client delete guard while deals exist
- Deal create / status change / completion activities
- Deal delete cascades to its activities
"""

import pytest

from contractor_crm.errors import NotFound, ReferentialIntegrityError
from contractor_crm.models.activity import Activity
from contractor_crm.models.client import Client
from contractor_crm.models.deal import Deal
from contractor_crm.services import crm_service

ACTOR = "admin@contractor.local"


def _deal_body(seed_data, **overrides):
    body = {
        "id": seed_data["deal_id"],
        "title": "Carol kitchen",
        "clientId": seed_data["client_id"],
        "dealType": "kitchen_remodel",
        "value": 45000,
        "status": "in_progress",
        "scope": ["Demo", "Cabinets"],
    }
    body.update(overrides)
    return body


class TestClients:

    def test_list_includes_deal_aggregates(self, admin_client, seed_data):
        crm_service.create_deal(
            {"title": "Carol deck", "client_id": seed_data["client_id"], "value": 5000},
            ACTOR,
        )
        body = admin_client.get("/api/crm/clients").get_json()
        assert body["total"] == 1
        carol = body["items"][0]
        assert carol["deal_count"] == 2
        assert carol["total_value"] == 50000.0
        assert body["status_counts"] == {"active": 1, "past": 0, "total": 1}

    def test_client_status_change_records_activity(self, admin_client, seed_data):
        response = admin_client.put("/api/crm/clients", json={
            "id": seed_data["client_id"],
            "fullName": "Carol Client",
            "status": "past",
        })
        assert response.status_code == 200
        assert response.get_json()["status"] == "past"

        changes = Activity.query.filter_by(
            client_id=seed_data["client_id"], type="status_changed"
        ).all()
        assert len(changes) == 1
        assert changes[0].metadata_ == {"old_status": "active", "new_status": "past"}

    def test_client_update_without_status_change(self, admin_client, seed_data):
        response = admin_client.put("/api/crm/clients", json={
            "id": seed_data["client_id"],
            "fullName": "Carol C. Client",
            "status": "active",
        })
        assert response.status_code == 200
        assert Activity.query.count() == 0

    def test_client_put_without_status_keeps_past(self, admin_client, seed_data, db_session):
        client_row = db_session.get(Client, seed_data["client_id"])
        client_row.status = "past"
        db_session.commit()

        response = admin_client.put("/api/crm/clients", json={
            "id": seed_data["client_id"],
            "fullName": "Carol C. Client",
        })
        assert response.status_code == 200
        assert response.get_json()["status"] == "past"
        assert Activity.query.count() == 0

    def test_delete_blocked_while_deals_exist(self, admin_client, seed_data, db_session):
        response = admin_client.delete(f"/api/crm/clients?id={seed_data['client_id']}")
        assert response.status_code == 400
        body = response.get_json()
        assert body["error_code"] == "REFERENTIAL_INTEGRITY"
        assert body["error"] == "Cannot delete client with existing deals. Delete deals first."
        assert db_session.get(Client, seed_data["client_id"]) is not None

    def test_delete_after_deals_removed(self, admin_client, seed_data, db_session):
        crm_service.delete_deal(seed_data["deal_id"])
        response = admin_client.delete(f"/api/crm/clients?id={seed_data['client_id']}")
        assert response.status_code == 200
        assert db_session.get(Client, seed_data["client_id"]) is None

    def test_delete_keeps_client_activities(self, seed_data):
        crm_service.create_activity(
            {"type": "call_logged", "client_id": seed_data["client_id"]}, ACTOR
        )
        crm_service.delete_deal(seed_data["deal_id"])
        crm_service.delete_client(seed_data["client_id"])
        assert Activity.query.filter_by(client_id=seed_data["client_id"]).count() == 1

    def test_service_guard_raises(self, seed_data):
        with pytest.raises(ReferentialIntegrityError):
            crm_service.delete_client(seed_data["client_id"])

    def test_get_missing_client_404(self, admin_client, seed_data):
        assert admin_client.get("/api/crm/clients/nope").status_code == 404


class TestDeals:

    def test_create_deal_records_activity(self, admin_client, seed_data):
        response = admin_client.post("/api/crm/deals", json={
            "title": "Carol deck",
            "clientId": seed_data["client_id"],
            "value": 12000,
            "startDate": "2026-11-01",
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["status"] == "planning"
        assert body["start_date"] == "2026-11-01"
        assert body["client"]["full_name"] == "Carol Client"

        created = Activity.query.filter_by(deal_id=body["id"]).one()
        assert created.type == "deal_created"
        assert created.client_id == seed_data["client_id"]

    def test_create_deal_unknown_client_404(self, admin_client, seed_data):
        response = admin_client.post("/api/crm/deals", json={
            "title": "Orphan", "clientId": "no-such-client",
        })
        assert response.status_code == 404
        assert Deal.query.count() == 1

    def test_create_deal_unknown_status_rejected(self, admin_client, seed_data):
        response = admin_client.post("/api/crm/deals", json={
            "title": "Carol deck",
            "clientId": seed_data["client_id"],
            "status": "dreaming",
        })
        assert response.status_code == 400
        assert Deal.query.count() == 1
        assert Activity.query.count() == 0

    def test_status_change_records_activity(self, admin_client, seed_data):
        response = admin_client.put(
            "/api/crm/deals", json=_deal_body(seed_data, status="inspection")
        )
        assert response.status_code == 200

        change = Activity.query.filter_by(deal_id=seed_data["deal_id"]).one()
        assert change.type == "status_changed"
        assert change.metadata_ == {"old_status": "in_progress", "new_status": "inspection"}

    def test_completion_records_deal_completed(self, admin_client, seed_data):
        admin_client.put("/api/crm/deals", json=_deal_body(seed_data, status="completed"))

        change = Activity.query.filter_by(deal_id=seed_data["deal_id"]).one()
        assert change.type == "deal_completed"
        assert change.metadata_["new_status"] == "completed"

    def test_update_without_status_change(self, admin_client, seed_data):
        response = admin_client.put(
            "/api/crm/deals", json=_deal_body(seed_data, value=47000)
        )
        assert response.status_code == 200
        assert response.get_json()["value"] == 47000
        assert Activity.query.count() == 0

    def test_put_without_status_keeps_in_progress(self, admin_client, seed_data):
        body = _deal_body(seed_data, title="Carol kitchen, phase 2")
        del body["status"]

        response = admin_client.put("/api/crm/deals", json=body)
        assert response.status_code == 200
        assert response.get_json()["status"] == "in_progress"
        assert response.get_json()["title"] == "Carol kitchen, phase 2"
        assert Activity.query.count() == 0

    def test_list_deals_pipeline_value(self, admin_client, seed_data):
        crm_service.create_deal(
            {"title": "Done job", "client_id": seed_data["client_id"],
             "value": 9000, "status": "completed"},
            ACTOR,
        )
        body = admin_client.get("/api/crm/deals").get_json()
        assert body["total"] == 2
        assert body["pipeline_value"] == 45000.0
        assert body["status_counts"]["completed"] == 1
        assert body["status_counts"]["in_progress"] == 1

        filtered = admin_client.get(
            f"/api/crm/deals?status=completed&clientId={seed_data['client_id']}"
        ).get_json()
        assert [d["title"] for d in filtered["items"]] == ["Done job"]


class TestDealDelete:

    def test_delete_removes_deal_activities(self, admin_client, seed_data, db_session):
        deal_id = seed_data["deal_id"]
        crm_service.create_activity({"type": "note_added", "deal_id": deal_id}, ACTOR)
        crm_service.create_activity({"type": "site_visit_completed", "deal_id": deal_id}, ACTOR)
        crm_service.create_activity(
            {"type": "call_logged", "client_id": seed_data["client_id"]}, ACTOR
        )

        response = admin_client.delete(f"/api/crm/deals?id={deal_id}")
        assert response.status_code == 200
        assert response.get_json() == {"success": True, "activities_deleted": 2}

        assert db_session.get(Deal, deal_id) is None
        assert Activity.query.filter_by(deal_id=deal_id).count() == 0
        # Client-only history survives
        assert Activity.query.filter_by(client_id=seed_data["client_id"]).count() == 1

    def test_delete_missing_deal_404(self, seed_data):
        with pytest.raises(NotFound) as exc:
            crm_service.delete_deal("no-such-deal")
        assert exc.value.message == "Project not found"
