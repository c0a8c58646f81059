"""Auth blueprint — /auth/*

Session login for the CRM admin UI. Responses are JSON; the session
cookie set by Flask-Login is what the admin API checks.

Route Map:
  POST /auth/login       — Email + password login
  POST /auth/logout      — End the session
  GET  /auth/me          — Current admin identity
  GET  /auth/csrf-token  — CSRF token for X-CSRFToken on state-changing calls
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash

from contractor_crm.decorators import is_crm_admin
from contractor_crm.extensions import limiter
from contractor_crm.models.user import User

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

logger = logging.getLogger(__name__)


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    """Log in with email + password (JSON body or form POST)."""
    data = request.get_json(silent=True) if request.is_json else request.form.to_dict()
    data = data or {}

    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""
    remember = bool(data.get("remember"))

    if not email or not password:
        return jsonify(error="Email and password are required."), 400

    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        logger.warning(f"Failed login attempt for {email}")
        return jsonify(error="Invalid email or password."), 401

    if not user.is_active:
        return jsonify(error="This account has been deactivated."), 403

    login_user(user, remember=remember)
    logger.info(f"User {user.email} logged in")
    return jsonify(ok=True, user=user.to_dict(), is_crm_admin=is_crm_admin(user))


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify(ok=True)


@auth_bp.route("/me")
@login_required
def me():
    return jsonify(user=current_user.to_dict(), is_crm_admin=is_crm_admin(current_user))


@auth_bp.route("/csrf-token")
def csrf_token():
    return jsonify(csrf_token=generate_csrf())
