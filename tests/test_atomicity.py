"""Tests that entity writes and their activities commit together or not at all.

A failing commit (store outage) or an exception while staging the
activity must leave the entity exactly as it was and add no activity.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from contractor_crm.errors import StoreError
from contractor_crm.models.activity import Activity
from contractor_crm.models.client import Client
from contractor_crm.models.deal import Deal
from contractor_crm.models.lead import Lead
from contractor_crm.services import crm_service

ACTOR = "admin@contractor.local"


@pytest.fixture
def failing_commit(monkeypatch):
    """Make every session commit fail like a dropped connection."""

    def _boom(self):
        raise OperationalError("COMMIT", {}, Exception("connection reset"))

    monkeypatch.setattr(Session, "commit", _boom)


@pytest.fixture
def failing_activity(monkeypatch):
    """Make activity staging blow up after the entity has been mutated."""

    def _boom(*args, **kwargs):
        raise RuntimeError("activity write failed")

    monkeypatch.setattr(crm_service, "record_activity", _boom)


class TestCommitFailure:

    def test_status_change_rolled_back(self, seed_data, db_session, failing_commit):
        with pytest.raises(StoreError):
            crm_service.patch_lead(seed_data["lead_id"], {"status": "contacted"}, ACTOR)

        db_session.expire_all()
        assert db_session.get(Lead, seed_data["lead_id"]).status == "new"
        assert Activity.query.count() == 0

    def test_api_returns_store_error(self, admin_client, seed_data, db_session, monkeypatch):
        def _boom(self):
            raise OperationalError("COMMIT", {}, Exception("connection reset"))

        monkeypatch.setattr(Session, "commit", _boom)
        response = admin_client.patch("/api/crm/leads", json={
            "id": seed_data["lead_id"], "status": "quoted",
        })
        assert response.status_code == 502
        body = response.get_json()
        assert body == {"error": "Storage service error", "error_code": "STORE_ERROR"}

        monkeypatch.undo()
        db_session.expire_all()
        assert db_session.get(Lead, seed_data["lead_id"]).status == "new"
        assert Activity.query.count() == 0

    def test_conversion_rolled_back(self, seed_data, db_session, failing_commit):
        with pytest.raises(StoreError):
            crm_service.create_client(
                {"full_name": "Bob Builder", "source_lead_id": seed_data["lead_id"]}, ACTOR
            )

        db_session.expire_all()
        lead = db_session.get(Lead, seed_data["lead_id"])
        assert lead.status == "new"
        assert lead.converted_to_client_id is None
        assert Client.query.filter_by(full_name="Bob Builder").count() == 0
        assert Activity.query.count() == 0

    def test_deal_cascade_rolled_back(self, seed_data, db_session, monkeypatch):
        crm_service.create_activity(
            {"type": "note_added", "deal_id": seed_data["deal_id"]}, ACTOR
        )

        def _boom(self):
            raise OperationalError("COMMIT", {}, Exception("connection reset"))

        monkeypatch.setattr(Session, "commit", _boom)
        with pytest.raises(StoreError):
            crm_service.delete_deal(seed_data["deal_id"])
        monkeypatch.undo()

        db_session.expire_all()
        assert db_session.get(Deal, seed_data["deal_id"]) is not None
        assert Activity.query.filter_by(deal_id=seed_data["deal_id"]).count() == 1

    def test_soft_delete_rolled_back(self, seed_data, db_session, failing_commit):
        with pytest.raises(StoreError):
            crm_service.soft_delete_lead(seed_data["lead_id"], ACTOR)

        db_session.expire_all()
        assert db_session.get(Lead, seed_data["lead_id"]).deleted is False


class TestStagingFailure:

    def test_lead_status_not_persisted_without_activity(
        self, seed_data, db_session, failing_activity
    ):
        with pytest.raises(RuntimeError):
            crm_service.patch_lead(seed_data["lead_id"], {"status": "lost"}, ACTOR)

        db_session.expire_all()
        assert db_session.get(Lead, seed_data["lead_id"]).status == "new"

    def test_deal_status_not_persisted_without_activity(
        self, seed_data, db_session, failing_activity
    ):
        with pytest.raises(RuntimeError):
            crm_service.update_deal(seed_data["deal_id"], {
                "title": "Carol kitchen",
                "client_id": seed_data["client_id"],
                "status": "completed",
            }, ACTOR)

        db_session.expire_all()
        assert db_session.get(Deal, seed_data["deal_id"]).status == "in_progress"

    def test_conversion_not_persisted_without_activity(
        self, seed_data, db_session, failing_activity
    ):
        with pytest.raises(RuntimeError):
            crm_service.create_client(
                {"full_name": "Bob Builder", "source_lead_id": seed_data["lead_id"]}, ACTOR
            )

        db_session.expire_all()
        lead = db_session.get(Lead, seed_data["lead_id"])
        assert lead.status == "new"
        assert lead.converted_to_client_id is None
        assert Client.query.count() == 1
