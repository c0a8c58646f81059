"""Tests for lead -> client conversion.

Covers:
- Conversion writes client + lead patch + both activities together
- Lead is marked won and linked to the new client
- Missing / deleted / already-converted source leads are rejected
- Plain client creation (no source lead)
"""

import pytest

from contractor_crm.errors import NotFound, ValidationFailed
from contractor_crm.models.activity import Activity
from contractor_crm.models.client import Client
from contractor_crm.models.lead import Lead
from contractor_crm.services import crm_service

ACTOR = "admin@contractor.local"


class TestConvertLead:

    def test_conversion_via_api(self, admin_client, seed_data, db_session):
        lead_id = seed_data["lead_id"]
        response = admin_client.post("/api/crm/clients", json={
            "fullName": "Bob Builder",
            "email": "bob@example.com",
            "sourceLeadId": lead_id,
            "preferredContact": "phone",
            "propertyType": "single_family",
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["status"] == "active"
        assert body["source_lead"] == {"id": lead_id, "full_name": "Bob Builder"}
        assert body["deal_count"] == 0
        assert body["client_since"] is not None

        db_session.expire_all()
        lead = db_session.get(Lead, lead_id)
        assert lead.status == "won"
        assert lead.converted_to_client_id == body["id"]

    def test_conversion_writes_both_activities(self, seed_data, db_session):
        lead_id = seed_data["lead_id"]
        client = crm_service.create_client(
            {"full_name": "Bob Builder", "source_lead_id": lead_id}, ACTOR
        )

        converted = Activity.query.filter_by(type="converted_to_client").one()
        assert converted.client_id == client.id
        assert converted.lead_id == lead_id
        assert converted.performed_by == ACTOR

        lead_converted = Activity.query.filter_by(type="lead_converted").one()
        assert lead_converted.lead_id == lead_id
        assert lead_converted.metadata_ == {
            "old_status": "new",
            "new_client_id": client.id,
        }

        # No separate status_changed row for the conversion
        assert Activity.query.filter_by(type="status_changed").count() == 0

    def test_converted_lead_shows_client_name(self, admin_client, seed_data):
        client = crm_service.create_client(
            {"full_name": "Robert Builder", "source_lead_id": seed_data["lead_id"]}, ACTOR
        )
        body = admin_client.get(f"/api/crm/leads/{seed_data['lead_id']}").get_json()
        assert body["status"] == "won"
        assert body["converted_to_client"] == {
            "id": client.id,
            "full_name": "Robert Builder",
        }

    def test_converting_twice_is_rejected(self, seed_data):
        crm_service.create_client(
            {"full_name": "Bob Builder", "source_lead_id": seed_data["lead_id"]}, ACTOR
        )
        with pytest.raises(ValidationFailed):
            crm_service.create_client(
                {"full_name": "Bob Again", "source_lead_id": seed_data["lead_id"]}, ACTOR
            )
        assert Client.query.filter_by(full_name="Bob Again").count() == 0

    def test_missing_source_lead_404(self, admin_client, seed_data):
        clients_before = Client.query.count()
        response = admin_client.post("/api/crm/clients", json={
            "fullName": "Ghost", "sourceLeadId": "no-such-lead",
        })
        assert response.status_code == 404
        assert Client.query.count() == clients_before
        assert Activity.query.count() == 0

    def test_deleted_source_lead_404(self, seed_data):
        crm_service.soft_delete_lead(seed_data["lead_id"], ACTOR)
        with pytest.raises(NotFound):
            crm_service.create_client(
                {"full_name": "Bob Builder", "source_lead_id": seed_data["lead_id"]}, ACTOR
            )


class TestCreateClient:

    def test_manual_client_gets_manual_activity(self, admin_client, seed_data):
        response = admin_client.post("/api/crm/clients", json={"fullName": "Walk In Wally"})
        assert response.status_code == 201
        client_id = response.get_json()["id"]

        activities = Activity.query.filter_by(client_id=client_id).all()
        assert [a.type for a in activities] == ["client_created_manual"]
        assert activities[0].lead_id is None

    def test_invalid_client_status_rejected(self, admin_client, seed_data):
        response = admin_client.post("/api/crm/clients", json={
            "fullName": "Walk In Wally", "status": "vip",
        })
        assert response.status_code == 400

    def test_blank_enum_values_are_treated_as_unset(self, admin_client, seed_data):
        response = admin_client.post("/api/crm/clients", json={
            "fullName": "Walk In Wally", "preferredContact": "", "propertyType": "",
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["preferred_contact"] is None
        assert body["property_type"] == ""
