"""CRM error taxonomy and the JSON error handlers.

Services raise these; blueprints let them propagate and the handlers
registered in create_app() turn them into ``{"error", "error_code"}``
responses. Store failures and unexpected exceptions are logged with
context and answered with a generic message, never the internal one.
"""

import logging

from flask import jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class CrmError(Exception):
    """Base class for CRM domain errors."""

    status_code = 500
    error_code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message=None, details=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self):
        body = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailed(CrmError):
    """Malformed input or a value outside the configured vocabulary."""

    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class NotFound(CrmError):
    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Not found"


class AlreadyDeleted(CrmError):
    status_code = 400
    error_code = "ALREADY_DELETED"
    default_message = "Lead is already deleted"


class ReferentialIntegrityError(CrmError):
    status_code = 400
    error_code = "REFERENTIAL_INTEGRITY"
    default_message = "Cannot delete client with existing deals. Delete deals first."


class StoreError(CrmError):
    """The document store rejected or failed a write; nothing was committed."""

    status_code = 502
    error_code = "STORE_ERROR"
    default_message = "Storage service error"


def field_error(field, message):
    """One entry of a ValidationFailed ``details`` list."""
    return {"field": field, "message": message}


def register_error_handlers(app):
    """Attach JSON error handlers for CRM errors and unexpected failures."""

    @app.errorhandler(CrmError)
    def handle_crm_error(e):
        if e.status_code >= 500:
            logger.error(f"{e.error_code} on {request.method} {request.path}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_store_error(e):
        logger.error(f"Store failure on {request.method} {request.path}: {e}")
        return jsonify(StoreError().to_dict()), StoreError.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        # Let werkzeug's own 4xx/5xx (404 routing, 405, 429 rate limit) through.
        if isinstance(e, HTTPException):
            if request.path.startswith("/api/") or request.path.startswith("/auth/"):
                return jsonify(error=e.description, error_code=e.name.upper().replace(" ", "_")), e.code
            return e
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return jsonify(error="Internal server error", error_code="INTERNAL_ERROR"), 500
