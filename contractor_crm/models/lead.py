"""Lead model.

A prospective customer, either captured by the public website form or
entered by an admin. Pipeline status keys come from CrmSettings
(defaults: new -> contacted -> site_visit -> quoted -> negotiating -> won | lost).

Leads are never hard-deleted: DELETE sets ``deleted`` and every read path
filters on ``Lead.active()``.
"""

from contractor_crm.extensions import db
from contractor_crm.models.mixins import TimestampMixin, iso, new_id


class Lead(TimestampMixin, db.Model):
    __tablename__ = "leads"

    ORIGINS = ["auto_website_form", "auto_landing_page", "manual"]
    PRIORITIES = ["high", "medium", "low"]

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    full_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    origin = db.Column(db.String(50), nullable=False, default="manual")
    source = db.Column(db.String(100), nullable=True)  # e.g. referral, website_form
    service_type = db.Column(db.String(100), nullable=True)
    estimated_value = db.Column(db.Float, nullable=True)
    priority = db.Column(db.String(20), nullable=False, default="medium")
    status = db.Column(db.String(50), nullable=False, default="new", index=True)
    referred_by = db.Column(db.String(255), nullable=True)
    original_message = db.Column(db.Text, nullable=True)  # verbatim form message
    description = db.Column(db.Text, nullable=True)
    internal_notes = db.Column(db.Text, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    form_id = db.Column(db.String(100), nullable=True)  # which site form captured it
    # Weak reference: no FK, so deleting the client never breaks the lead.
    converted_to_client_id = db.Column(db.String(36), nullable=True)
    deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @classmethod
    def active(cls):
        """Query over leads that have not been soft-deleted."""
        return cls.query.filter(cls.deleted.is_(False))

    def to_dict(self, converted_to_client=None):
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email or "",
            "phone": self.phone or "",
            "origin": self.origin,
            "source": self.source or "",
            "service_type": self.service_type or "",
            "estimated_value": self.estimated_value,
            "priority": self.priority,
            "status": self.status,
            "referred_by": self.referred_by or "",
            "original_message": self.original_message or "",
            "description": self.description or "",
            "internal_notes": self.internal_notes or "",
            "received_at": iso(self.received_at),
            "form_id": self.form_id,
            "converted_to_client": converted_to_client,
            "converted_to_client_id": self.converted_to_client_id,
            "deleted": bool(self.deleted),
            "deleted_at": iso(self.deleted_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Lead {self.full_name} ({self.status})>"
