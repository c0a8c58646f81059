"""Admin blueprint — /api/admin/*

Asset uploads for project galleries and CRM attachments.

Route Map:
  POST /api/admin/upload  — Upload an image or video (multipart field "file")
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from contractor_crm.decorators import admin_api_required
from contractor_crm.extensions import limiter
from contractor_crm.services import storage_service

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

logger = logging.getLogger(__name__)


def _upload_rate_key():
    """Rate-limit uploads per admin, not per IP."""
    if current_user.is_authenticated:
        return f"user:{current_user.id}"
    return request.remote_addr or "anonymous"


@admin_bp.route("/upload", methods=["POST"])
@limiter.limit("10 per minute", key_func=_upload_rate_key)
@admin_api_required
def upload():
    """Validate and store one asset. Returns {asset_id, url, type, filename}."""
    file = request.files.get("file")
    kind, error = storage_service.validate_file(file)
    if error:
        return jsonify(error=error), 400

    asset = storage_service.upload_asset(file, kind)
    logger.info(f"Asset {asset['asset_id']} uploaded by {current_user.email}")
    return jsonify(asset), 201
