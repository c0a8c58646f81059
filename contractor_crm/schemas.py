"""Request schemas for the CRM API (pydantic).

Bodies may use snake_case or the camelCase keys the admin UI sends
(``fullName``, ``sourceLeadId``). All free text is stripped of HTML with
bleach before it reaches a service. Structural checks live here;
vocabulary checks (pipeline stages, sources, service types) need the
stored CrmSettings and are done in crm_settings_service.
"""

import re
from datetime import date
from typing import Annotated, Literal, Optional

import bleach
from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from contractor_crm.errors import ValidationFailed, field_error
from contractor_crm.models.activity import Activity
from contractor_crm.models.crm_settings import CONVERTED_LEAD_STATUS

ID_RE = re.compile(r"^[a-zA-Z0-9._-]+$")
# Sanity check only, not RFC 5322
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
KEY_RE = re.compile(r"^[a-z0-9_]+$")


def _sanitize(value):
    """Strip all HTML tags from user input."""
    if not isinstance(value, str):
        return value
    return bleach.clean(value, tags=[], strip=True).strip()


def is_valid_id(value):
    return bool(value) and bool(ID_RE.match(value))


Text = Annotated[str, BeforeValidator(_sanitize)]
DocId = Annotated[str, Field(pattern=ID_RE.pattern, max_length=100)]


class CrmSchema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class _ContactFields(CrmSchema):
    email: Optional[Text] = Field(default=None, max_length=255)
    phone: Optional[Text] = Field(default=None, max_length=50)

    @field_validator("email")
    @classmethod
    def _check_email(cls, v):
        if v and not EMAIL_RE.match(v):
            raise ValueError("A valid email is required.")
        return v


# ──────────────────────────────────────────────
# Leads
# ──────────────────────────────────────────────

class LeadInput(_ContactFields):
    """Full lead body for POST (create) and PUT (replace).

    ``status`` left out keeps the current stage on PUT and means ``new`` on
    create.
    """

    id: Optional[DocId] = Field(default=None, validation_alias=AliasChoices("id", "_id"))
    full_name: Text = Field(min_length=1, max_length=200)
    origin: Literal["auto_website_form", "auto_landing_page", "manual"] = "manual"
    source: Optional[Text] = Field(default=None, max_length=100)
    service_type: Optional[Text] = Field(default=None, max_length=100)
    estimated_value: Optional[float] = Field(default=None, ge=0)
    priority: Optional[Literal["high", "medium", "low"]] = None
    status: Optional[Text] = Field(default=None, min_length=1, max_length=50)
    referred_by: Optional[Text] = Field(default=None, max_length=200)
    original_message: Optional[Text] = Field(default=None, max_length=5000)
    description: Optional[Text] = Field(default=None, max_length=5000)
    internal_notes: Optional[Text] = Field(default=None, max_length=10000)


class LeadPatch(_ContactFields):
    """Partial lead body for PATCH. Only submitted fields are applied."""

    id: DocId = Field(validation_alias=AliasChoices("id", "_id"))
    full_name: Optional[Text] = Field(default=None, min_length=1, max_length=200)
    source: Optional[Text] = Field(default=None, max_length=100)
    service_type: Optional[Text] = Field(default=None, max_length=100)
    estimated_value: Optional[float] = Field(default=None, ge=0)
    priority: Optional[Literal["high", "medium", "low"]] = None
    status: Optional[Text] = Field(default=None, min_length=1, max_length=50)
    referred_by: Optional[Text] = Field(default=None, max_length=200)
    description: Optional[Text] = Field(default=None, max_length=5000)
    internal_notes: Optional[Text] = Field(default=None, max_length=10000)


class LeadWebForm(_ContactFields):
    """Public contact form submission."""

    full_name: Text = Field(
        min_length=1,
        max_length=200,
        validation_alias=AliasChoices("full_name", "fullName", "name"),
    )
    service_type: Optional[Text] = Field(default=None, max_length=100)
    message: Optional[Text] = Field(default=None, max_length=5000)
    form_id: Optional[Text] = Field(default=None, max_length=100)
    turnstile_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "turnstile_token", "turnstileToken", "cf-turnstile-response"
        ),
    )

    @model_validator(mode="after")
    def _need_a_way_to_reply(self):
        if not self.email and not self.phone:
            raise ValueError("An email or phone number is required.")
        return self


# ──────────────────────────────────────────────
# Clients
# ──────────────────────────────────────────────

class ClientInput(_ContactFields):
    id: Optional[DocId] = Field(default=None, validation_alias=AliasChoices("id", "_id"))
    full_name: Text = Field(min_length=1, max_length=200)
    address: Optional[Text] = Field(default=None, max_length=500)
    status: Optional[Literal["active", "past"]] = None
    preferred_contact: Optional[Literal["phone", "email", "text"]] = None
    property_type: Optional[
        Literal["single_family", "condo_townhouse", "multi_family", "commercial", "other"]
    ] = None
    internal_notes: Optional[Text] = Field(default=None, max_length=10000)
    source_lead_id: Optional[DocId] = None

    @field_validator("preferred_contact", "property_type", mode="before")
    @classmethod
    def _blank_is_none(cls, v):
        return v or None


# ──────────────────────────────────────────────
# Deals
# ──────────────────────────────────────────────

class DealInput(CrmSchema):
    id: Optional[DocId] = Field(default=None, validation_alias=AliasChoices("id", "_id"))
    title: Text = Field(min_length=1, max_length=200)
    client_id: DocId
    deal_type: Optional[Text] = Field(default=None, max_length=100)
    value: Optional[float] = Field(default=None, ge=0)
    status: Optional[Text] = Field(default=None, min_length=1, max_length=50)
    project_address: Optional[Text] = Field(default=None, max_length=500)
    permit_number: Optional[Text] = Field(default=None, max_length=100)
    estimated_duration: Optional[Text] = Field(default=None, max_length=100)
    scope: list[Text] = Field(default_factory=list, max_length=50)
    contract_signed_date: Optional[date] = None
    start_date: Optional[date] = None
    expected_end_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    description: Optional[Text] = Field(default=None, max_length=5000)
    internal_notes: Optional[Text] = Field(default=None, max_length=10000)

    @field_validator(
        "contract_signed_date", "start_date", "expected_end_date", "actual_end_date",
        mode="before",
    )
    @classmethod
    def _blank_date(cls, v):
        return v or None

    @field_validator("scope")
    @classmethod
    def _drop_blank_scope_items(cls, v):
        return [item for item in v if item]


# ──────────────────────────────────────────────
# Activities
# ──────────────────────────────────────────────

class ActivityInput(CrmSchema):
    type: Literal[tuple(Activity.TYPES)]
    description: Optional[Text] = Field(default=None, max_length=5000)
    lead_id: Optional[DocId] = None
    client_id: Optional[DocId] = None
    deal_id: Optional[DocId] = None
    metadata: Optional[dict] = None

    @model_validator(mode="after")
    def _needs_reference(self):
        if not (self.lead_id or self.client_id or self.deal_id):
            raise ValueError("Activity must be linked to a lead, client, or deal")
        return self


# ──────────────────────────────────────────────
# CRM settings
# ──────────────────────────────────────────────

class StageInput(CrmSchema):
    key: str = Field(min_length=1, max_length=50)
    label: Text = Field(min_length=1, max_length=100)
    color: str

    @field_validator("key")
    @classmethod
    def _check_key(cls, v):
        if not KEY_RE.match(v):
            raise ValueError("Key may only contain lowercase letters, digits and underscores.")
        return v

    @field_validator("color")
    @classmethod
    def _check_color(cls, v):
        if not HEX_COLOR_RE.match(v):
            raise ValueError("Color must be a hex value like #1a2b3c.")
        return v.lower()


class CrmSettingsInput(CrmSchema):
    pipeline_stages: Optional[list[StageInput]] = Field(default=None, min_length=1)
    deal_statuses: Optional[list[StageInput]] = Field(default=None, min_length=1)
    lead_sources: Optional[list[Text]] = None
    service_types: Optional[list[Text]] = None
    default_priority: Optional[Literal["high", "medium", "low"]] = None
    currency: Optional[Text] = Field(default=None, max_length=10)
    industry_label: Optional[Text] = Field(default=None, max_length=100)
    deal_label: Optional[Text] = Field(default=None, max_length=100)
    leads_page_size: Optional[int] = Field(default=None, ge=5, le=100)

    @field_validator("pipeline_stages", "deal_statuses")
    @classmethod
    def _unique_keys(cls, v):
        if v is None:
            return v
        keys = [stage.key for stage in v]
        if len(keys) != len(set(keys)):
            raise ValueError("Stage keys must be unique.")
        return v

    @field_validator("pipeline_stages")
    @classmethod
    def _keeps_converted_stage(cls, v):
        # Lead conversion moves the lead to this stage
        if v is not None and CONVERTED_LEAD_STATUS not in [stage.key for stage in v]:
            raise ValueError(f'Pipeline must include the "{CONVERTED_LEAD_STATUS}" stage.')
        return v

    @field_validator("lead_sources", "service_types")
    @classmethod
    def _clean_vocabulary(cls, v):
        if v is None:
            return v
        seen = []
        for item in v:
            if item and item not in seen:
                seen.append(item)
        return seen


def validate(schema, data):
    """Parse a request body into ``schema``.

    Raises:
        ValidationFailed: With one ``{field, message}`` detail per problem.
    """
    if not isinstance(data, dict):
        raise ValidationFailed(
            "Validation failed", details=[field_error("body", "Expected a JSON object.")]
        )
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        details = [
            field_error(
                ".".join(str(part) for part in err["loc"]) or "body",
                err["msg"].removeprefix("Value error, "),
            )
            for err in e.errors()
        ]
        raise ValidationFailed("Validation failed", details=details) from e
