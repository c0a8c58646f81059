"""CRM service — entity writes and their Activity trail.

Every write that changes a persisted ``status`` or converts a lead into a
client stages the entity change and its Activity rows in one unit of work
(see unit_of_work.atomic), so either both are committed or neither is.
Writes that leave the status untouched are plain patches with no Activity.

Before any Lead or Deal write, the submitted status / source / service
type is checked against CrmSettings (fail-closed).

Status-change detection reads the persisted status just before the write;
there is no optimistic locking, so concurrent writers are last-writer-wins.
"""

import logging
from datetime import datetime, timezone

from contractor_crm.errors import (
    AlreadyDeleted,
    NotFound,
    ReferentialIntegrityError,
    ValidationFailed,
    field_error,
)
from contractor_crm.extensions import db
from contractor_crm.models.activity import Activity
from contractor_crm.models.client import Client
from contractor_crm.models.crm_settings import CONVERTED_LEAD_STATUS
from contractor_crm.models.deal import Deal
from contractor_crm.models.lead import Lead
from contractor_crm.models.mixins import new_id
from contractor_crm.services import crm_settings_service
from contractor_crm.services.unit_of_work import atomic

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

# Status values that get a dedicated activity type instead of status_changed.
SPECIAL_STATUS_ACTIVITY = {
    "deal": {"completed": "deal_completed"},
}

# Fields an admin may write on each entity (PUT replaces all of them).
LEAD_FIELDS = [
    "full_name",
    "email",
    "phone",
    "source",
    "service_type",
    "estimated_value",
    "priority",
    "status",
    "referred_by",
    "original_message",
    "description",
    "internal_notes",
]
# Columns that may not be cleared by a PATCH.
LEAD_REQUIRED = {"full_name", "status", "priority"}

CLIENT_FIELDS = [
    "full_name",
    "email",
    "phone",
    "address",
    "status",
    "preferred_contact",
    "property_type",
    "internal_notes",
]

DEAL_FIELDS = [
    "title",
    "client_id",
    "deal_type",
    "value",
    "status",
    "project_address",
    "permit_number",
    "estimated_duration",
    "scope",
    "contract_signed_date",
    "start_date",
    "expected_end_date",
    "actual_end_date",
    "description",
    "internal_notes",
]


def _now():
    return datetime.now(timezone.utc)


def record_activity(activity_type, description, performed_by, lead_id=None,
                    client_id=None, deal_id=None, metadata=None, timestamp=None):
    """Stage an Activity on the session. Caller owns the transaction."""
    if not (lead_id or client_id or deal_id):
        raise ValueError("Activity must reference a lead, client, or deal")
    activity = Activity(
        id=new_id(),
        type=activity_type,
        description=description,
        timestamp=timestamp or _now(),
        lead_id=lead_id,
        client_id=client_id,
        deal_id=deal_id,
        performed_by=performed_by,
        metadata_=metadata or {},
    )
    db.session.add(activity)
    return activity


def _record_status_change(kind, label, old_status, new_status, performed_by, **refs):
    activity_type = SPECIAL_STATUS_ACTIVITY.get(kind, {}).get(new_status, "status_changed")
    return record_activity(
        activity_type,
        f'{label} status changed from "{old_status}" to "{new_status}"',
        performed_by,
        metadata={"old_status": old_status, "new_status": new_status},
        **refs,
    )


# ──────────────────────────────────────────────
# Leads
# ──────────────────────────────────────────────

def get_lead(lead_id):
    """Return a non-deleted lead or raise NotFound."""
    lead = Lead.active().filter(Lead.id == lead_id).first()
    if lead is None:
        raise NotFound("Lead not found")
    return lead


def create_lead(data, performed_by):
    """Create a lead entered by an admin.

    Args:
        data: Validated LeadInput fields.
        performed_by: Admin email recorded on the activity.

    Returns:
        The created Lead.

    Raises:
        ValidationFailed: If status, source or service type is outside the vocabulary.
    """
    settings = crm_settings_service.get_settings()
    status = data.get("status") or "new"
    crm_settings_service.validate_lead_vocabulary(
        status=status,
        source=data.get("source"),
        service_type=data.get("service_type"),
        settings=settings,
    )

    now = _now()
    fields = {field: data.get(field) for field in LEAD_FIELDS}
    fields["status"] = status
    fields["priority"] = data.get("priority") or settings["default_priority"]

    with atomic():
        lead = Lead(
            id=new_id(),
            origin=data.get("origin") or "manual",
            received_at=now,
            **fields,
        )
        db.session.add(lead)
        record_activity(
            "lead_created_manual",
            f"Lead manually created by {performed_by}",
            performed_by,
            lead_id=lead.id,
            timestamp=now,
        )

    logger.info(f"Lead {lead.id} created by {performed_by}")
    return lead


def create_web_lead(data):
    """Create a lead from the public website contact form.

    Args:
        data: Validated LeadWebForm fields.

    Returns:
        The created Lead.
    """
    settings = crm_settings_service.get_settings()
    stage_keys = crm_settings_service.pipeline_stage_keys(settings)
    status = "new" if "new" in stage_keys else stage_keys[0]
    crm_settings_service.validate_lead_vocabulary(
        service_type=data.get("service_type"), settings=settings
    )

    now = _now()
    with atomic():
        lead = Lead(
            id=new_id(),
            full_name=data["full_name"],
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            origin="auto_website_form",
            source="website_form",
            service_type=data.get("service_type") or "",
            priority=settings["default_priority"],
            status=status,
            original_message=data.get("message") or "",
            received_at=now,
            form_id=data.get("form_id") or "contact-page",
        )
        db.session.add(lead)
        record_activity(
            "lead_created_auto",
            "Lead auto-created from website contact form",
            SYSTEM_ACTOR,
            lead_id=lead.id,
            timestamp=now,
        )

    logger.info(f"Website lead {lead.id} created (form {lead.form_id})")
    return lead


def _apply_lead_change(lead, fields, performed_by):
    """Apply validated fields to a lead, pairing a status change with its activity."""
    old_status = lead.status
    new_status = fields.get("status", old_status)

    with atomic():
        for field, value in fields.items():
            setattr(lead, field, value)
        lead.updated_at = _now()
        if new_status != old_status:
            _record_status_change(
                "lead", "Lead", old_status, new_status, performed_by, lead_id=lead.id
            )

    if new_status != old_status:
        logger.info(f"Lead {lead.id} status {old_status} -> {new_status} by {performed_by}")
    return lead


def update_lead(lead_id, data, performed_by):
    """Replace a lead's editable fields (PUT).

    ``origin`` and ``received_at`` describe how the lead arrived and are
    never rewritten.

    Raises:
        NotFound: If the lead does not exist or is soft-deleted.
        ValidationFailed: If the vocabulary check fails.
    """
    lead = get_lead(lead_id)
    settings = crm_settings_service.get_settings()
    fields = {field: data.get(field) for field in LEAD_FIELDS}
    fields["status"] = fields["status"] or lead.status
    fields["priority"] = fields["priority"] or lead.priority or settings["default_priority"]

    crm_settings_service.validate_lead_vocabulary(
        status=fields["status"],
        source=fields["source"],
        service_type=fields["service_type"],
        settings=settings,
    )
    return _apply_lead_change(lead, fields, performed_by)


def patch_lead(lead_id, data, performed_by):
    """Apply only the submitted fields to a lead (PATCH)."""
    lead = get_lead(lead_id)
    fields = {
        field: data[field]
        for field in LEAD_FIELDS
        if field in data and not (data[field] is None and field in LEAD_REQUIRED)
    }
    crm_settings_service.validate_lead_vocabulary(
        status=fields.get("status"),
        source=fields.get("source"),
        service_type=fields.get("service_type"),
    )
    return _apply_lead_change(lead, fields, performed_by)


def soft_delete_lead(lead_id, performed_by):
    """Mark a lead deleted. It disappears from every list, count and search.

    Raises:
        NotFound: If no lead has this id.
        AlreadyDeleted: If the lead was already soft-deleted.
    """
    lead = db.session.get(Lead, lead_id)
    if lead is None:
        raise NotFound("Lead not found")
    if lead.deleted:
        raise AlreadyDeleted()

    now = _now()
    with atomic():
        lead.deleted = True
        lead.deleted_at = now
        record_activity(
            "lead_deleted",
            f"Lead deleted by {performed_by}",
            performed_by,
            lead_id=lead.id,
            metadata={"status": lead.status},
            timestamp=now,
        )

    logger.info(f"Lead {lead_id} soft-deleted by {performed_by}")
    return lead


# ──────────────────────────────────────────────
# Clients
# ──────────────────────────────────────────────

def get_client(client_id):
    client = db.session.get(Client, client_id)
    if client is None:
        raise NotFound("Client not found")
    return client


def create_client(data, performed_by):
    """Create a client, converting the source lead when one is given.

    Conversion stages, in a single transaction: the client, a
    ``converted_to_client`` activity, the lead patch (status ``won`` and
    the link to the client) and a ``lead_converted`` activity. If the
    commit fails none of it exists.

    Args:
        data: Validated ClientInput fields.
        performed_by: Admin email recorded on the activities.

    Returns:
        The created Client, re-read after commit.

    Raises:
        NotFound: If source_lead_id names a missing or deleted lead.
        ValidationFailed: If the lead has already been converted.
    """
    source_lead_id = data.get("source_lead_id")
    lead = None
    previous_status = None
    if source_lead_id:
        lead = get_lead(source_lead_id)
        if lead.converted_to_client_id:
            raise ValidationFailed(
                "Lead has already been converted to a client",
                details=[field_error("source_lead_id", "Lead already converted.")],
            )
        # Read outside the transaction; only used for activity metadata.
        previous_status = lead.status

    client_id = new_id()
    now = _now()
    fields = {field: data.get(field) for field in CLIENT_FIELDS}
    fields["status"] = fields["status"] or "active"

    with atomic():
        db.session.add(Client(
            id=client_id,
            client_since=now,
            source_lead_id=source_lead_id,
            **fields,
        ))

        if lead is None:
            record_activity(
                "client_created_manual",
                f"Client manually created by {performed_by}",
                performed_by,
                client_id=client_id,
                timestamp=now,
            )
        else:
            record_activity(
                "converted_to_client",
                f"Lead converted to client by {performed_by}",
                performed_by,
                client_id=client_id,
                lead_id=lead.id,
                timestamp=now,
            )
            lead.status = CONVERTED_LEAD_STATUS
            lead.converted_to_client_id = client_id
            lead.updated_at = now
            record_activity(
                "lead_converted",
                f'Lead converted to client "{fields["full_name"]}" by {performed_by}',
                performed_by,
                lead_id=lead.id,
                client_id=client_id,
                metadata={"old_status": previous_status, "new_client_id": client_id},
                timestamp=now,
            )

    if lead is not None:
        logger.info(f"Lead {lead.id} converted to client {client_id} by {performed_by}")
    else:
        logger.info(f"Client {client_id} created by {performed_by}")
    return get_client(client_id)


def update_client(client_id, data, performed_by):
    """Replace a client's editable fields; a status change gets an activity."""
    client = get_client(client_id)
    fields = {field: data.get(field) for field in CLIENT_FIELDS}
    fields["status"] = fields["status"] or client.status
    old_status = client.status

    with atomic():
        for field, value in fields.items():
            setattr(client, field, value)
        client.updated_at = _now()
        if fields["status"] != old_status:
            _record_status_change(
                "client", "Client", old_status, fields["status"], performed_by,
                client_id=client.id,
            )
    return client


def delete_client(client_id):
    """Delete a client that owns no deals. Its activities are kept.

    Raises:
        NotFound: If the client does not exist.
        ReferentialIntegrityError: If any deal still references the client.
    """
    client = get_client(client_id)
    if Deal.query.filter_by(client_id=client_id).count() > 0:
        raise ReferentialIntegrityError()

    with atomic():
        db.session.delete(client)
    logger.info(f"Client {client_id} deleted")


# ──────────────────────────────────────────────
# Deals
# ──────────────────────────────────────────────

def get_deal(deal_id):
    deal = db.session.get(Deal, deal_id)
    if deal is None:
        raise NotFound("Project not found")
    return deal


def create_deal(data, performed_by):
    """Create a deal for an existing client.

    Raises:
        ValidationFailed: If the status is not a configured deal status.
        NotFound: If the client does not exist.
    """
    status = data.get("status") or "planning"
    crm_settings_service.validate_deal_status(status)
    client = get_client(data["client_id"])

    deal_id = new_id()
    fields = {field: data.get(field) for field in DEAL_FIELDS}
    fields["status"] = status
    fields["scope"] = fields["scope"] or []

    with atomic():
        db.session.add(Deal(id=deal_id, **fields))
        record_activity(
            "deal_created",
            f'Project "{fields["title"]}" created by {performed_by}',
            performed_by,
            deal_id=deal_id,
            client_id=client.id,
        )

    logger.info(f"Deal {deal_id} created for client {client.id} by {performed_by}")
    return get_deal(deal_id)


def update_deal(deal_id, data, performed_by):
    """Replace a deal's editable fields; a status change gets an activity.

    Moving to ``completed`` is logged as ``deal_completed``.
    """
    deal = get_deal(deal_id)
    fields = {field: data.get(field) for field in DEAL_FIELDS}
    fields["status"] = fields["status"] or deal.status
    fields["scope"] = fields["scope"] or []
    crm_settings_service.validate_deal_status(fields["status"])
    if fields["client_id"] != deal.client_id:
        get_client(fields["client_id"])

    old_status = deal.status
    with atomic():
        for field, value in fields.items():
            setattr(deal, field, value)
        deal.updated_at = _now()
        if fields["status"] != old_status:
            _record_status_change(
                "deal", "Project", old_status, fields["status"], performed_by,
                deal_id=deal.id, client_id=deal.client_id,
            )

    if fields["status"] != old_status:
        logger.info(f"Deal {deal_id} status {old_status} -> {fields['status']} by {performed_by}")
    return deal


def delete_deal(deal_id):
    """Delete a deal and every activity that references it, atomically.

    Returns:
        Number of activities removed with the deal.
    """
    deal = get_deal(deal_id)
    with atomic():
        removed = Activity.query.filter_by(deal_id=deal_id).delete(
            synchronize_session=False
        )
        db.session.delete(deal)
    logger.info(f"Deal {deal_id} deleted with {removed} activities")
    return removed


# ──────────────────────────────────────────────
# Activities
# ──────────────────────────────────────────────

def create_activity(data, performed_by):
    """Log a manual activity (call, note, site visit, ...) against existing entities.

    Raises:
        NotFound: If a referenced lead, client or deal does not exist.
    """
    if data.get("lead_id"):
        get_lead(data["lead_id"])
    if data.get("client_id"):
        get_client(data["client_id"])
    if data.get("deal_id"):
        get_deal(data["deal_id"])

    with atomic():
        activity = record_activity(
            data["type"],
            data.get("description") or "",
            performed_by,
            lead_id=data.get("lead_id"),
            client_id=data.get("client_id"),
            deal_id=data.get("deal_id"),
            metadata=data.get("metadata"),
        )
    return activity


def delete_activity(activity_id):
    """Remove an activity left behind by a deleted deal.

    Activities are otherwise immutable; this only finishes a deal cascade.

    Raises:
        NotFound: If the activity does not exist.
        ValidationFailed: If the activity's deal still exists or it has no deal.
    """
    activity = db.session.get(Activity, activity_id)
    if activity is None:
        raise NotFound("Activity not found")
    if not activity.deal_id or db.session.get(Deal, activity.deal_id) is not None:
        raise ValidationFailed("Activities are immutable and cannot be deleted")

    with atomic():
        db.session.delete(activity)
    logger.info(f"Orphaned activity {activity_id} removed (deal {activity.deal_id})")
