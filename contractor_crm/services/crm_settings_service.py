"""CRM settings service — singleton vocabulary + validation gate.

The CrmSettings row is read on every Lead and Deal mutation. When it is
absent, or a list in it is empty, the compiled-in defaults apply, so a
fresh install validates against the standard pipeline.

Validation is fail-closed: a status outside the pipeline stages, or a
non-empty source / service type outside the configured lists, rejects the
whole write before anything is staged.
"""

import logging
import re

from contractor_crm.errors import ValidationFailed, field_error
from contractor_crm.extensions import db
from contractor_crm.models.crm_settings import DEFAULTS, SETTINGS_ID, CrmSettings
from contractor_crm.services.unit_of_work import atomic

logger = logging.getLogger(__name__)

# Sources the system itself writes; always valid regardless of settings.
SYSTEM_LEAD_SOURCES = {"website_form", "landing_page"}


def slugify(value):
    """'Deck / Patio' -> 'deck_patio'. Used to match labels against keys."""
    value = (value or "").lower()
    value = re.sub(r"[^a-z0-9]+", "_", value)
    return value.strip("_")


def get_settings():
    """Return the effective settings as a plain dict (stored values over defaults)."""
    row = db.session.get(CrmSettings, SETTINGS_ID)
    effective = {key: (list(value) if isinstance(value, list) else value)
                 for key, value in DEFAULTS.items()}
    if row is None:
        return effective

    for key in DEFAULTS:
        value = getattr(row, key)
        # Empty lists and blank strings fall back to the defaults.
        if value in (None, "", []):
            continue
        effective[key] = value
    return effective


def initialize_settings():
    """Create the singleton with defaults if it does not exist yet.

    Returns:
        (settings_dict, created) tuple.
    """
    if db.session.get(CrmSettings, SETTINGS_ID) is not None:
        return get_settings(), False

    with atomic():
        db.session.add(CrmSettings(id=SETTINGS_ID, **DEFAULTS))
    logger.info("CRM settings initialized with defaults")
    return get_settings(), True


def update_settings(data):
    """Patch the singleton with the submitted fields, creating it if needed.

    Args:
        data: Dict of validated fields (from CrmSettingsInput, unset fields omitted).
    """
    with atomic():
        row = db.session.get(CrmSettings, SETTINGS_ID)
        if row is None:
            row = CrmSettings(id=SETTINGS_ID, **DEFAULTS)
            db.session.add(row)
        for key, value in data.items():
            setattr(row, key, value)
    logger.info(f"CRM settings updated: {', '.join(sorted(data)) or 'no fields'}")
    return get_settings()


# --- Vocabulary helpers ---

def pipeline_stage_keys(settings=None):
    settings = settings or get_settings()
    return [stage["key"] for stage in settings["pipeline_stages"]]


def deal_status_keys(settings=None):
    settings = settings or get_settings()
    return [stage["key"] for stage in settings["deal_statuses"]]


def _in_vocabulary(value, vocabulary):
    """Exact entry or slug match ('phone_call' matches 'Phone Call')."""
    if value in vocabulary:
        return True
    slug = slugify(value)
    return any(slugify(entry) == slug for entry in vocabulary)


def validate_lead_vocabulary(status=None, source=None, service_type=None, settings=None):
    """Reject lead values outside the configured vocabulary.

    Only the arguments that are not None are checked, so PATCH can pass
    just the submitted fields.

    Raises:
        ValidationFailed: With a detail per offending field.
    """
    settings = settings or get_settings()
    errors = []

    if status is not None:
        keys = pipeline_stage_keys(settings)
        if status not in keys:
            errors.append(field_error(
                "status",
                f"Invalid status '{status}'. Must be one of: {', '.join(keys)}",
            ))

    if source and source not in SYSTEM_LEAD_SOURCES:
        if not _in_vocabulary(source, settings["lead_sources"]):
            errors.append(field_error("source", f"Unknown lead source '{source}'."))

    if service_type and not _in_vocabulary(service_type, settings["service_types"]):
        errors.append(field_error(
            "service_type", f"Unknown service type '{service_type}'."
        ))

    if errors:
        raise ValidationFailed("Validation failed", details=errors)


def validate_deal_status(status, settings=None):
    """Raises ValidationFailed if ``status`` is not a configured deal status."""
    keys = deal_status_keys(settings)
    if status not in keys:
        raise ValidationFailed("Validation failed", details=[field_error(
            "status",
            f"Invalid status '{status}'. Must be one of: {', '.join(keys)}",
        )])
