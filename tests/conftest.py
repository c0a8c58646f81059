"""Shared test fixtures for the contractor CRM test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: admin user, non-admin user, one lead, one client with a deal
- admin_client: test client already logged in as the admin
"""

from datetime import datetime, timedelta, timezone

import pytest
from werkzeug.security import generate_password_hash

from contractor_crm import create_app
from contractor_crm.extensions import db as _db
from contractor_crm.models.client import Client
from contractor_crm.models.deal import Deal
from contractor_crm.models.lead import Lead
from contractor_crm.models.user import User

ADMIN_EMAIL = "admin@contractor.local"
ADMIN_PASSWORD = "admin123"
STAFF_EMAIL = "staff@contractor.local"
STAFF_PASSWORD = "staff123"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def login(client, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
    """Log in through the JSON auth endpoint."""
    return client.post("/auth/login", json={"email": email, "password": password})


@pytest.fixture
def seed_data(app, db_session):
    """Seed the database with users, a lead, and a client that owns one deal.

    Returns a dict of plain IDs so tests can use them across contexts.
    """
    admin = User(
        email=ADMIN_EMAIL,
        password_hash=generate_password_hash(ADMIN_PASSWORD),
        full_name="Admin User",
        is_admin=True,
    )
    staff = User(
        email=STAFF_EMAIL,
        password_hash=generate_password_hash(STAFF_PASSWORD),
        full_name="Staff User",
        is_admin=False,
    )
    db_session.add_all([admin, staff])

    now = datetime.now(timezone.utc)
    lead = Lead(
        full_name="Bob Builder",
        email="bob@example.com",
        phone="555-0101",
        origin="manual",
        source="Referral",
        service_type="kitchen_remodel",
        priority="high",
        status="new",
        received_at=now - timedelta(days=1),
    )
    db_session.add(lead)

    client_row = Client(
        full_name="Carol Client",
        email="carol@example.com",
        status="active",
        client_since=now - timedelta(days=30),
    )
    db_session.add(client_row)
    db_session.flush()

    deal = Deal(
        title="Carol kitchen",
        client_id=client_row.id,
        deal_type="kitchen_remodel",
        value=45000,
        status="in_progress",
        scope=["Demo", "Cabinets"],
    )
    db_session.add(deal)
    db_session.commit()

    return {
        "admin_id": admin.id,
        "staff_id": staff.id,
        "lead_id": lead.id,
        "client_id": client_row.id,
        "deal_id": deal.id,
    }


@pytest.fixture
def admin_client(client, seed_data):
    """Test client with an authenticated admin session."""
    response = login(client)
    assert response.status_code == 200
    return client
