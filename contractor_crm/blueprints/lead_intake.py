"""Lead intake blueprint — /api/crm/lead

Public endpoint for the website contact form. Creates a Lead with
origin ``auto_website_form`` plus its ``lead_created_auto`` activity.
No login, CSRF-exempt, rate-limited per client IP. Never returns
internal error detail.

Route Map:
  POST    /api/crm/lead  — Submit the contact form
  OPTIONS /api/crm/lead  — CORS preflight
"""

import logging

from flask import Blueprint, jsonify, make_response, request

from contractor_crm.extensions import limiter
from contractor_crm.schemas import LeadWebForm, validate
from contractor_crm.services import crm_service, email_service, turnstile_service

lead_intake_bp = Blueprint("lead_intake", __name__, url_prefix="/api/crm")

logger = logging.getLogger(__name__)

FORM_RATE_LIMIT = "5 per minute"


def _cors_response(response):
    """Add CORS headers so cross-origin JS submissions work."""
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return response


@lead_intake_bp.route("/lead", methods=["OPTIONS"])
def submit_preflight():
    """Handle CORS preflight requests."""
    return _cors_response(make_response("", 204))


@lead_intake_bp.route("/lead", methods=["POST"])
@limiter.limit(FORM_RATE_LIMIT)
def submit_lead():
    """
    Accept a contact form submission and file it as a new lead.

    Accepts JSON or a standard HTML form POST.

    Required fields: full_name (or name), and email or phone
    Optional fields: service_type, message, form_id, turnstile token

    Returns: { success: true, lead_id, message } or { error, details }
    """
    if request.is_json:
        data = request.get_json(silent=True) or {}
    else:
        data = request.form.to_dict()

    form = validate(LeadWebForm, data)

    if not turnstile_service.verify(form.turnstile_token, request.remote_addr):
        return _cors_response(jsonify(error="Bot verification failed.")), 403

    lead = crm_service.create_web_lead(form.model_dump())
    email_service.notify_new_lead(lead)

    return _cors_response(jsonify(
        success=True,
        lead_id=lead.id,
        message="Thank you! We will be in touch soon.",
    ))
