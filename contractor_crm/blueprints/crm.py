"""CRM blueprint — /api/crm/*

JSON admin API for leads, clients, deals (projects), activities, search
and CRM settings. Every route requires an admin session
(@admin_api_required). Handlers stay thin: parse + validate the body,
call crm_service / crm_query_service, serialize. CrmError subclasses
propagate to the app-level JSON error handlers.

Route Map:
  GET    /api/crm/leads              — List leads (?status=&limit=&offset=)
  POST   /api/crm/leads              — Create lead (manual)
  PUT    /api/crm/leads              — Replace lead fields (id in body)
  PATCH  /api/crm/leads              — Update submitted lead fields (id in body)
  DELETE /api/crm/leads?id=          — Soft-delete lead
  GET    /api/crm/leads/<id>         — Lead detail
  GET    /api/crm/clients            — List clients with deal aggregates
  POST   /api/crm/clients            — Create client / convert lead (sourceLeadId)
  PUT    /api/crm/clients            — Update client (id in body)
  DELETE /api/crm/clients?id=        — Delete client (only without deals)
  GET    /api/crm/clients/<id>       — Client detail
  GET    /api/crm/deals              — List deals (?status=&client_id=)
  POST   /api/crm/deals              — Create deal
  PUT    /api/crm/deals              — Update deal (id in body)
  DELETE /api/crm/deals?id=          — Delete deal + its activities
  GET    /api/crm/deals/<id>         — Deal detail
  GET    /api/crm/activities         — Timeline (?lead_id=&client_id=&deal_id=&type=)
  POST   /api/crm/activities         — Log a manual activity
  DELETE /api/crm/activities?id=     — Remove an activity orphaned by a deleted deal
  GET    /api/crm/search?q=          — Search leads, clients, deals
  GET    /api/crm/settings           — Effective CRM settings
  PUT    /api/crm/settings           — Update CRM settings
  POST   /api/crm/settings           — Initialize settings with defaults
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user

from contractor_crm.decorators import admin_api_required
from contractor_crm.errors import ValidationFailed, field_error
from contractor_crm.extensions import limiter
from contractor_crm.schemas import (
    ActivityInput,
    ClientInput,
    CrmSettingsInput,
    DealInput,
    LeadInput,
    LeadPatch,
    is_valid_id,
    validate,
)
from contractor_crm.services import crm_query_service, crm_service, crm_settings_service

crm_bp = Blueprint("crm", __name__, url_prefix="/api/crm")

ADMIN_RATE_LIMIT = "120 per minute"


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailed(
            "Validation failed",
            details=[field_error("body", "Expected a JSON object.")],
        )
    return data


def _require_id(value):
    if not is_valid_id(value):
        raise ValidationFailed("Invalid id")
    return value


def _update_id(payload):
    if not payload.id:
        raise ValidationFailed("Missing id for update")
    return payload.id


def _actor():
    return current_user.email


# ══════════════════════════════════════════════
#  LEADS
# ══════════════════════════════════════════════

@crm_bp.route("/leads", methods=["GET"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def list_leads():
    return jsonify(crm_query_service.list_leads(
        status=request.args.get("status"),
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    ))


@crm_bp.route("/leads/<lead_id>", methods=["GET"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def get_lead(lead_id):
    lead = crm_service.get_lead(_require_id(lead_id))
    return jsonify(crm_query_service.lead_to_dict(lead))


@crm_bp.route("/leads", methods=["POST"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def create_lead():
    payload = validate(LeadInput, _json_body())
    lead = crm_service.create_lead(payload.model_dump(), _actor())
    return jsonify(crm_query_service.lead_to_dict(lead)), 201


@crm_bp.route("/leads", methods=["PUT"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def update_lead():
    payload = validate(LeadInput, _json_body())
    lead = crm_service.update_lead(_update_id(payload), payload.model_dump(), _actor())
    return jsonify(crm_query_service.lead_to_dict(lead))


@crm_bp.route("/leads", methods=["PATCH"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def patch_lead():
    payload = validate(LeadPatch, _json_body())
    fields = payload.model_dump(exclude_unset=True, exclude={"id"})
    lead = crm_service.patch_lead(payload.id, fields, _actor())
    return jsonify(crm_query_service.lead_to_dict(lead))


@crm_bp.route("/leads", methods=["DELETE"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def delete_lead():
    lead_id = _require_id(request.args.get("id"))
    crm_service.soft_delete_lead(lead_id, _actor())
    return jsonify(success=True)


# ══════════════════════════════════════════════
#  CLIENTS
# ══════════════════════════════════════════════

@crm_bp.route("/clients", methods=["GET"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def list_clients():
    return jsonify(crm_query_service.list_clients(
        status=request.args.get("status"),
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    ))


@crm_bp.route("/clients/<client_id>", methods=["GET"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def get_client(client_id):
    client = crm_service.get_client(_require_id(client_id))
    return jsonify(crm_query_service.client_to_dict(client))


@crm_bp.route("/clients", methods=["POST"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def create_client():
    payload = validate(ClientInput, _json_body())
    client = crm_service.create_client(payload.model_dump(), _actor())
    return jsonify(crm_query_service.client_to_dict(client)), 201


@crm_bp.route("/clients", methods=["PUT"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def update_client():
    payload = validate(ClientInput, _json_body())
    client = crm_service.update_client(_update_id(payload), payload.model_dump(), _actor())
    return jsonify(crm_query_service.client_to_dict(client))


@crm_bp.route("/clients", methods=["DELETE"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def delete_client():
    crm_service.delete_client(_require_id(request.args.get("id")))
    return jsonify(success=True)


# ══════════════════════════════════════════════
#  DEALS (PROJECTS)
# ══════════════════════════════════════════════

@crm_bp.route("/deals", methods=["GET"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def list_deals():
    return jsonify(crm_query_service.list_deals(
        status=request.args.get("status"),
        client_id=request.args.get("client_id") or request.args.get("clientId"),
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    ))


@crm_bp.route("/deals/<deal_id>", methods=["GET"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def get_deal(deal_id):
    deal = crm_service.get_deal(_require_id(deal_id))
    return jsonify(deal.to_dict())


@crm_bp.route("/deals", methods=["POST"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def create_deal():
    payload = validate(DealInput, _json_body())
    deal = crm_service.create_deal(payload.model_dump(), _actor())
    return jsonify(deal.to_dict()), 201


@crm_bp.route("/deals", methods=["PUT"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def update_deal():
    payload = validate(DealInput, _json_body())
    deal = crm_service.update_deal(_update_id(payload), payload.model_dump(), _actor())
    return jsonify(deal.to_dict())


@crm_bp.route("/deals", methods=["DELETE"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def delete_deal():
    removed = crm_service.delete_deal(_require_id(request.args.get("id")))
    return jsonify(success=True, activities_deleted=removed)


# ══════════════════════════════════════════════
#  ACTIVITIES
# ══════════════════════════════════════════════

@crm_bp.route("/activities", methods=["GET"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def list_activities():
    args = request.args
    return jsonify(crm_query_service.list_activities(
        lead_id=args.get("lead_id") or args.get("leadId"),
        client_id=args.get("client_id") or args.get("clientId"),
        deal_id=args.get("deal_id") or args.get("dealId"),
        activity_type=args.get("type"),
        limit=args.get("limit"),
        offset=args.get("offset"),
    ))


@crm_bp.route("/activities", methods=["POST"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def create_activity():
    payload = validate(ActivityInput, _json_body())
    activity = crm_service.create_activity(payload.model_dump(), _actor())
    return jsonify(activity.to_dict()), 201


@crm_bp.route("/activities", methods=["DELETE"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def delete_activity():
    crm_service.delete_activity(_require_id(request.args.get("id")))
    return jsonify(success=True)


# ══════════════════════════════════════════════
#  SEARCH
# ══════════════════════════════════════════════

@crm_bp.route("/search", methods=["GET"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def search():
    return jsonify(crm_query_service.search(request.args.get("q")))


# ══════════════════════════════════════════════
#  SETTINGS
# ══════════════════════════════════════════════

@crm_bp.route("/settings", methods=["GET"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def get_settings():
    return jsonify(crm_settings_service.get_settings())


@crm_bp.route("/settings", methods=["PUT"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def update_settings():
    payload = validate(CrmSettingsInput, _json_body())
    settings = crm_settings_service.update_settings(payload.model_dump(exclude_unset=True))
    return jsonify(settings)


@crm_bp.route("/settings", methods=["POST"])
@limiter.limit(ADMIN_RATE_LIMIT)
@admin_api_required
def initialize_settings():
    settings, created = crm_settings_service.initialize_settings()
    return jsonify(settings=settings, created=created), 201 if created else 200
