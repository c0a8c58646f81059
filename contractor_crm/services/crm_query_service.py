"""CRM read side — list pages, status counts, aggregates and search.

Soft-deleted leads are excluded from every list, count and search here.
Client ``deal_count`` / ``total_value`` and the deal pipeline value are
aggregated per request, never stored.
"""

from sqlalchemy import func, or_

from contractor_crm.extensions import db
from contractor_crm.models.activity import Activity
from contractor_crm.models.client import Client
from contractor_crm.models.crm_settings import ACTIVE_DEAL_STATUSES
from contractor_crm.models.deal import Deal
from contractor_crm.models.lead import Lead
from contractor_crm.models.mixins import iso
from contractor_crm.services import crm_settings_service

DEFAULT_LIMIT = 50
MAX_LIMIT = 100
SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 5


def clamp_page(limit, offset):
    """Coerce query-string paging values into a sane (limit, offset)."""
    try:
        limit = int(limit) if limit not in (None, "") else DEFAULT_LIMIT
    except (TypeError, ValueError):
        limit = DEFAULT_LIMIT
    try:
        offset = int(offset) if offset not in (None, "") else 0
    except (TypeError, ValueError):
        offset = 0
    return max(1, min(limit, MAX_LIMIT)), max(0, offset)


def _page(total, limit, offset):
    return {"offset": offset, "limit": limit, "has_more": offset + limit < total}


def _counts_by(query, column, keys):
    """{key: count} for each key plus ``total`` over the whole query."""
    rows = dict(
        query.with_entities(column, func.count()).group_by(column).all()
    )
    counts = {key: rows.get(key, 0) for key in keys}
    counts["total"] = sum(rows.values())
    return counts


def _client_aggregates(client_ids):
    """{client_id: (deal_count, total_value)} for the given clients."""
    if not client_ids:
        return {}
    rows = (
        db.session.query(
            Deal.client_id,
            func.count(Deal.id),
            func.coalesce(func.sum(Deal.value), 0),
        )
        .filter(Deal.client_id.in_(client_ids))
        .group_by(Deal.client_id)
        .all()
    )
    return {client_id: (count, float(total)) for client_id, count, total in rows}


def _converted_names(leads):
    ids = {lead.converted_to_client_id for lead in leads if lead.converted_to_client_id}
    if not ids:
        return {}
    rows = db.session.query(Client.id, Client.full_name).filter(Client.id.in_(ids)).all()
    return dict(rows)


def lead_to_dict(lead, client_names=None):
    client_names = client_names if client_names is not None else _converted_names([lead])
    converted = None
    if lead.converted_to_client_id:
        converted = {
            "id": lead.converted_to_client_id,
            "full_name": client_names.get(lead.converted_to_client_id),
        }
    return lead.to_dict(converted_to_client=converted)


def client_to_dict(client):
    count, total = _client_aggregates([client.id]).get(client.id, (0, 0.0))
    return client.to_dict(deal_count=count, total_value=total)


# ──────────────────────────────────────────────
# Lists
# ──────────────────────────────────────────────

def list_leads(status=None, limit=None, offset=None):
    limit, offset = clamp_page(limit, offset)
    query = Lead.active()
    filtered = query.filter(Lead.status == status) if status and status != "all" else query

    total = filtered.count()
    leads = (
        filtered.order_by(Lead.received_at.desc(), Lead.id)
        .offset(offset)
        .limit(limit)
        .all()
    )
    names = _converted_names(leads)
    stage_keys = crm_settings_service.pipeline_stage_keys()

    return {
        "items": [lead_to_dict(lead, names) for lead in leads],
        "total": total,
        "status_counts": _counts_by(query, Lead.status, stage_keys),
        "pagination": _page(total, limit, offset),
    }


def list_clients(status=None, limit=None, offset=None):
    limit, offset = clamp_page(limit, offset)
    query = Client.query
    filtered = query.filter(Client.status == status) if status and status != "all" else query

    total = filtered.count()
    clients = (
        filtered.order_by(Client.client_since.desc(), Client.id)
        .offset(offset)
        .limit(limit)
        .all()
    )
    aggregates = _client_aggregates([c.id for c in clients])

    items = []
    for client in clients:
        count, value = aggregates.get(client.id, (0, 0.0))
        items.append(client.to_dict(deal_count=count, total_value=value))

    return {
        "items": items,
        "total": total,
        "status_counts": _counts_by(query, Client.status, Client.STATUSES),
        "pagination": _page(total, limit, offset),
    }


def list_deals(status=None, client_id=None, limit=None, offset=None):
    limit, offset = clamp_page(limit, offset)
    query = Deal.query
    if client_id:
        query = query.filter(Deal.client_id == client_id)
    filtered = query.filter(Deal.status == status) if status and status != "all" else query

    total = filtered.count()
    deals = (
        filtered.order_by(Deal.start_date.desc(), Deal.created_at.desc(), Deal.id)
        .offset(offset)
        .limit(limit)
        .all()
    )
    pipeline_value = (
        query.filter(Deal.status.in_(ACTIVE_DEAL_STATUSES))
        .with_entities(func.coalesce(func.sum(Deal.value), 0))
        .scalar()
    )

    return {
        "items": [deal.to_dict() for deal in deals],
        "total": total,
        "status_counts": _counts_by(
            query, Deal.status, crm_settings_service.deal_status_keys()
        ),
        "pipeline_value": float(pipeline_value or 0),
        "pagination": _page(total, limit, offset),
    }


def _reference_names(activities):
    """Resolve display names for every entity the activities reference."""
    lead_ids = {a.lead_id for a in activities if a.lead_id}
    client_ids = {a.client_id for a in activities if a.client_id}
    deal_ids = {a.deal_id for a in activities if a.deal_id}

    names = {}
    if lead_ids:
        for ref_id, name in db.session.query(Lead.id, Lead.full_name).filter(Lead.id.in_(lead_ids)):
            names[("lead", ref_id)] = name
    if client_ids:
        for ref_id, name in db.session.query(Client.id, Client.full_name).filter(Client.id.in_(client_ids)):
            names[("client", ref_id)] = name
    if deal_ids:
        for ref_id, name in db.session.query(Deal.id, Deal.title).filter(Deal.id.in_(deal_ids)):
            names[("deal", ref_id)] = name
    return names


def list_activities(lead_id=None, client_id=None, deal_id=None, activity_type=None,
                    limit=None, offset=None):
    """Timeline entries, newest first, optionally narrowed to one entity."""
    limit, offset = clamp_page(limit, offset)
    query = Activity.query
    if lead_id:
        query = query.filter(Activity.lead_id == lead_id)
    if client_id:
        query = query.filter(Activity.client_id == client_id)
    if deal_id:
        query = query.filter(Activity.deal_id == deal_id)
    if activity_type:
        query = query.filter(Activity.type == activity_type)

    total = query.count()
    activities = (
        query.order_by(Activity.timestamp.desc(), Activity.id)
        .offset(offset)
        .limit(limit)
        .all()
    )
    names = _reference_names(activities)

    return {
        "items": [a.to_dict(names) for a in activities],
        "total": total,
        "pagination": _page(total, limit, offset),
    }


# ──────────────────────────────────────────────
# Search
# ──────────────────────────────────────────────

def _contains_pattern(q):
    """LIKE pattern for a substring match, with % and _ in ``q`` taken literally."""
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search(q):
    """Case-insensitive substring search across leads, clients and deals.

    Returns at most SEARCH_LIMIT results per group. Queries shorter than
    SEARCH_MIN_LENGTH return empty groups.
    """
    q = (q or "").strip()
    if len(q) < SEARCH_MIN_LENGTH:
        return {"leads": [], "clients": [], "deals": [], "total": 0, "query": q}

    pattern = _contains_pattern(q)

    leads = (
        Lead.active()
        .filter(or_(
            Lead.full_name.ilike(pattern, escape="\\"),
            Lead.email.ilike(pattern, escape="\\"),
            Lead.phone.ilike(pattern, escape="\\"),
            Lead.description.ilike(pattern, escape="\\"),
            Lead.original_message.ilike(pattern, escape="\\"),
            Lead.internal_notes.ilike(pattern, escape="\\"),
        ))
        .order_by(Lead.received_at.desc())
        .limit(SEARCH_LIMIT)
        .all()
    )

    clients = (
        Client.query
        .filter(or_(
            Client.full_name.ilike(pattern, escape="\\"),
            Client.email.ilike(pattern, escape="\\"),
            Client.phone.ilike(pattern, escape="\\"),
            Client.address.ilike(pattern, escape="\\"),
            Client.internal_notes.ilike(pattern, escape="\\"),
        ))
        .order_by(Client.client_since.desc())
        .limit(SEARCH_LIMIT)
        .all()
    )
    aggregates = _client_aggregates([c.id for c in clients])

    deals = (
        Deal.query
        .filter(or_(
            Deal.title.ilike(pattern, escape="\\"),
            Deal.description.ilike(pattern, escape="\\"),
            Deal.project_address.ilike(pattern, escape="\\"),
            Deal.permit_number.ilike(pattern, escape="\\"),
            Deal.internal_notes.ilike(pattern, escape="\\"),
        ))
        .order_by(Deal.start_date.desc(), Deal.created_at.desc())
        .limit(SEARCH_LIMIT)
        .all()
    )

    results = {
        "leads": [
            {
                "id": lead.id,
                "full_name": lead.full_name,
                "email": lead.email or "",
                "phone": lead.phone or "",
                "service_type": lead.service_type or "",
                "status": lead.status,
                "origin": lead.origin,
                "estimated_value": lead.estimated_value,
                "received_at": iso(lead.received_at),
            }
            for lead in leads
        ],
        "clients": [
            {
                "id": client.id,
                "full_name": client.full_name,
                "email": client.email or "",
                "phone": client.phone or "",
                "status": client.status,
                "deal_count": aggregates.get(client.id, (0, 0.0))[0],
            }
            for client in clients
        ],
        "deals": [
            {
                "id": deal.id,
                "title": deal.title,
                "client_name": deal.client.full_name if deal.client else None,
                "deal_type": deal.deal_type or "",
                "value": deal.value,
                "status": deal.status,
            }
            for deal in deals
        ],
        "query": q,
    }
    results["total"] = len(results["leads"]) + len(results["clients"]) + len(results["deals"])
    return results
