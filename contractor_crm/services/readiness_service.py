"""Readiness and health checks for /api/health.

The system reports ``ready`` or ``not_ready`` deterministically: every
required check must pass. Optional checks only degrade. Results carry
machine-readable codes and never include configuration values.
"""

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from contractor_crm.extensions import db
from contractor_crm.services import turnstile_service

logger = logging.getLogger(__name__)

# (config key, code prefix, required, description)
CONFIG_CHECKS = [
    ("SECRET_KEY", "SECRET_KEY", True, "Session signing secret"),
    ("SQLALCHEMY_DATABASE_URI", "DATABASE_URL", True, "Database connection URL"),
    ("APP_BASE_URL", "APP_BASE_URL", False, "Public base URL for links in emails"),
    ("ADMIN_EMAILS", "ADMIN_EMAILS", False, "Admin allowlist (any is_admin user passes when empty)"),
    ("MAIL_USERNAME", "MAIL", False, "SMTP credentials for lead notifications"),
    ("SUPABASE_URL", "SUPABASE", False, "Asset storage (local disk fallback when unset)"),
]


def _check(name, code, required, status, message=None):
    return {
        "name": name,
        "code": code,
        "required": required,
        "status": status,
        "message": message,
    }


def _config_checks():
    checks = []
    for key, code, required, description in CONFIG_CHECKS:
        value = current_app.config.get(key)
        if isinstance(value, str):
            value = value.strip()
        if not value:
            checks.append(_check(
                key, f"{code}_MISSING", required,
                "fail" if required else "degraded", description,
            ))
        else:
            checks.append(_check(key, f"{code}_OK", required, "pass"))
    return checks


def _secret_strength_check():
    secret = current_app.config.get("SECRET_KEY") or ""
    if secret and len(secret) < 16:
        return _check(
            "SECRET_KEY", "SECRET_KEY_INVALID", True, "fail",
            "Secret too short (min 16 chars)",
        )
    return None


def _turnstile_check():
    production = not current_app.debug and not current_app.testing
    if turnstile_service.is_enabled():
        return _check("Turnstile", "TURNSTILE_CONFIG_OK", production, "pass")
    if production:
        return _check(
            "Turnstile", "TURNSTILE_CONFIG_MISSING_PRODUCTION", True, "fail",
            "Turnstile secret key required in production",
        )
    return _check(
        "Turnstile", "TURNSTILE_CONFIG_MISSING_DEV", False, "degraded",
        "Bot protection disabled outside production",
    )


def _database_check():
    try:
        db.session.execute(text("SELECT 1"))
        return _check("Database", "DATABASE_OK", True, "pass")
    except SQLAlchemyError as e:
        logger.error(f"Health check database ping failed: {e}")
        db.session.rollback()
        return _check(
            "Database", "DATABASE_UNREACHABLE", True, "fail", "Database ping failed"
        )


def check_health():
    """Quick probe: is the database reachable?"""
    database = _database_check()
    return {
        "status": "healthy" if database["status"] == "pass" else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": [database],
    }


def check_readiness():
    """Full readiness scan of configuration and dependencies."""
    checks = _config_checks()
    strength = _secret_strength_check()
    if strength:
        checks.append(strength)
    checks.append(_turnstile_check())
    checks.append(_database_check())

    failed_required = [c["code"] for c in checks if c["required"] and c["status"] == "fail"]
    failed_optional = [c["code"] for c in checks if not c["required"] and c["status"] != "pass"]
    status = "not_ready" if failed_required else "ready"

    if failed_required:
        logger.warning(f"System NOT READY: {', '.join(failed_required)}")

    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
        "failed_required": failed_required,
        "failed_optional": failed_optional,
        "summary": (
            f"System READY ({len(failed_optional)} optional degraded)"
            if status == "ready"
            else f"System NOT READY: {', '.join(failed_required)}"
        ),
    }
