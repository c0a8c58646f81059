"""Shared column mixins and JSON helpers for CRM models."""

import uuid

from contractor_crm.extensions import db


def new_id():
    """Pre-generated primary key, so related rows can reference it before flush."""
    return str(uuid.uuid4())


def iso(value):
    """Serialize a date/datetime (or None) for JSON responses."""
    return value.isoformat() if value is not None else None


class TimestampMixin:
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
