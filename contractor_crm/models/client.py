"""Client model.

A customer with at least one signed or expected project. Usually created
by converting a Lead (``source_lead_id``), sometimes entered directly.
Deal count and total value are aggregated at query time, never stored.
"""

from contractor_crm.extensions import db
from contractor_crm.models.mixins import TimestampMixin, iso, new_id


class Client(TimestampMixin, db.Model):
    __tablename__ = "clients"

    STATUSES = ["active", "past"]
    PREFERRED_CONTACTS = ["phone", "email", "text"]
    PROPERTY_TYPES = [
        "single_family",
        "condo_townhouse",
        "multi_family",
        "commercial",
        "other",
    ]

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    full_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="active", index=True)
    client_since = db.Column(db.DateTime(timezone=True), nullable=True)
    preferred_contact = db.Column(db.String(20), nullable=True)  # phone | email | text
    property_type = db.Column(db.String(50), nullable=True)
    internal_notes = db.Column(db.Text, nullable=True)
    source_lead_id = db.Column(
        db.String(36), db.ForeignKey("leads.id"), nullable=True, index=True
    )

    # --- Relationships ---
    source_lead = db.relationship("Lead", foreign_keys=[source_lead_id])
    deals = db.relationship("Deal", back_populates="client", lazy="dynamic")

    def to_dict(self, deal_count=None, total_value=None):
        lead = self.source_lead
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email or "",
            "phone": self.phone or "",
            "address": self.address or "",
            "status": self.status,
            "client_since": iso(self.client_since),
            "preferred_contact": self.preferred_contact,
            "property_type": self.property_type or "",
            "internal_notes": self.internal_notes or "",
            "source_lead": (
                {"id": lead.id, "full_name": lead.full_name} if lead else None
            ),
            "deal_count": deal_count,
            "total_value": total_value,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Client {self.full_name} ({self.status})>"
