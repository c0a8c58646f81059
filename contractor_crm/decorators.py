"""
Custom route decorators for access control.

- admin_api_required: JSON API gate. 401 when there is no session, 403 when
  the user is not an admin or not on the ADMIN_EMAILS allowlist.
"""

from functools import wraps

from flask import current_app, jsonify
from flask_login import current_user


def is_crm_admin(user):
    """True if ``user`` may use the CRM admin API."""
    if not user.is_authenticated or not user.is_admin:
        return False
    allowlist = current_app.config.get("ADMIN_EMAILS") or []
    if allowlist and (user.email or "").lower() not in allowlist:
        return False
    return True


def admin_api_required(f):
    """Require an authenticated admin session; answer in JSON otherwise."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify(error="Unauthorized"), 401
        if not is_crm_admin(current_user):
            return jsonify(error="Forbidden"), 403
        return f(*args, **kwargs)

    return decorated
