"""Health blueprint — /api/health

Readiness for operators and load balancers. Access requires an admin
session or the X-Health-Token header matching INTERNAL_HEALTH_TOKEN.
Responses carry check codes only, never configuration values.

Route Map:
  GET  /api/health?mode=full|quick  — Readiness (503 when not ready)
  HEAD /api/health                  — Quick probe (200 / 503)
"""

import hmac

from flask import Blueprint, current_app, jsonify, make_response, request
from flask_login import current_user

from contractor_crm.decorators import is_crm_admin
from contractor_crm.services import readiness_service

health_bp = Blueprint("health", __name__, url_prefix="/api")


def _has_health_token():
    expected = current_app.config.get("INTERNAL_HEALTH_TOKEN")
    supplied = request.headers.get("X-Health-Token", "")
    return bool(expected) and hmac.compare_digest(supplied.encode(), expected.encode())


@health_bp.route("/health", methods=["GET", "HEAD"])
def health():
    if request.method == "HEAD":
        return _probe()

    if not (_has_health_token() or is_crm_admin(current_user)):
        return jsonify(error="Unauthorized"), 401

    if request.args.get("mode") == "quick":
        return jsonify(readiness_service.check_health())

    readiness = readiness_service.check_readiness()
    return jsonify(readiness), 200 if readiness["status"] == "ready" else 503


def _probe():
    """Quick probe for load balancers; only the token is checked."""
    expected = current_app.config.get("INTERNAL_HEALTH_TOKEN")
    if expected and not _has_health_token():
        return make_response("", 401)

    health = readiness_service.check_health()
    return make_response("", 200 if health["status"] == "healthy" else 503)
