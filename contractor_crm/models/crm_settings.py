"""CrmSettings model — the singleton CRM vocabulary.

Holds the configurable pipeline stages, deal statuses, lead sources and
service types. There is exactly one row (id ``crmSettings``); when it is
missing or a list is empty, the compiled-in defaults below apply.
"""

from contractor_crm.extensions import db
from contractor_crm.models.mixins import TimestampMixin, iso

SETTINGS_ID = "crmSettings"

DEFAULT_PIPELINE_STAGES = [
    {"key": "new", "label": "New", "color": "#fe5557"},
    {"key": "contacted", "label": "Contacted", "color": "#8b5cf6"},
    {"key": "site_visit", "label": "Site Visit", "color": "#6366f1"},
    {"key": "quoted", "label": "Quoted", "color": "#f59e0b"},
    {"key": "negotiating", "label": "Negotiating", "color": "#f97316"},
    {"key": "won", "label": "Won", "color": "#10b981"},
    {"key": "lost", "label": "Lost", "color": "#6b7280"},
]

DEFAULT_DEAL_STATUSES = [
    {"key": "planning", "label": "Planning", "color": "#f59e0b"},
    {"key": "permitting", "label": "Permitting", "color": "#6366f1"},
    {"key": "in_progress", "label": "In Progress", "color": "#10b981"},
    {"key": "inspection", "label": "Inspection", "color": "#14b8a6"},
    {"key": "completed", "label": "Completed", "color": "#059669"},
    {"key": "warranty", "label": "Warranty", "color": "#6b7280"},
    {"key": "paused", "label": "Paused", "color": "#ef4444"},
    {"key": "cancelled", "label": "Cancelled", "color": "#374151"},
]

# Deal statuses whose value counts toward the open pipeline.
ACTIVE_DEAL_STATUSES = ["planning", "permitting", "in_progress", "inspection"]

# Stage a lead moves to when it is converted to a client.
CONVERTED_LEAD_STATUS = "won"

DEFAULT_LEAD_SOURCES = [
    "Phone Call",
    "Referral",
    "Walk-in",
    "Yard Sign",
    "Home Show",
    "Returning Client",
    "Nextdoor",
    "Social Media",
    "Other",
]

DEFAULT_SERVICE_TYPES = [
    "Kitchen Remodel",
    "Bathroom Remodel",
    "Home Addition",
    "Deck / Patio",
    "Full Renovation",
    "ADU / Guest House",
    "Roofing",
    "Flooring",
    "Exterior / Siding",
    "Garage",
    "Basement Finish",
    "Commercial",
    "Other",
]

DEFAULTS = {
    "pipeline_stages": DEFAULT_PIPELINE_STAGES,
    "deal_statuses": DEFAULT_DEAL_STATUSES,
    "lead_sources": DEFAULT_LEAD_SOURCES,
    "service_types": DEFAULT_SERVICE_TYPES,
    "default_priority": "medium",
    "currency": "$",
    "industry_label": "Contractor",
    "deal_label": "Project",
    "leads_page_size": 20,
}


class CrmSettings(TimestampMixin, db.Model):
    __tablename__ = "crm_settings"

    id = db.Column(db.String(36), primary_key=True, default=SETTINGS_ID)
    pipeline_stages = db.Column(db.JSON, nullable=True)  # [{key, label, color}]
    deal_statuses = db.Column(db.JSON, nullable=True)  # [{key, label, color}]
    lead_sources = db.Column(db.JSON, nullable=True)  # [str]
    service_types = db.Column(db.JSON, nullable=True)  # [str]
    default_priority = db.Column(db.String(20), nullable=True)
    currency = db.Column(db.String(10), nullable=True)
    industry_label = db.Column(db.String(100), nullable=True)
    deal_label = db.Column(db.String(100), nullable=True)
    leads_page_size = db.Column(db.Integer, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "pipeline_stages": self.pipeline_stages,
            "deal_statuses": self.deal_statuses,
            "lead_sources": self.lead_sources,
            "service_types": self.service_types,
            "default_priority": self.default_priority,
            "currency": self.currency,
            "industry_label": self.industry_label,
            "deal_label": self.deal_label,
            "leads_page_size": self.leads_page_size,
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<CrmSettings {self.id}>"
