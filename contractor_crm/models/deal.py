"""Deal model (shown as "Project" in the admin UI).

Each deal belongs to exactly one Client. Status keys come from
CrmSettings.deal_statuses. Deleting a deal also deletes every Activity
that references it; nothing else in the CRM cascades.
"""

from contractor_crm.extensions import db
from contractor_crm.models.mixins import TimestampMixin, iso, new_id


class Deal(TimestampMixin, db.Model):
    __tablename__ = "deals"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(255), nullable=False)
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id"), nullable=False, index=True
    )
    deal_type = db.Column(db.String(100), nullable=True)  # service type key
    value = db.Column(db.Float, nullable=True)
    status = db.Column(db.String(50), nullable=False, default="planning", index=True)
    project_address = db.Column(db.Text, nullable=True)
    permit_number = db.Column(db.String(100), nullable=True)
    estimated_duration = db.Column(db.String(100), nullable=True)  # e.g. "6-8 weeks"
    scope = db.Column(db.JSON, default=list)  # ordered list of scope items
    contract_signed_date = db.Column(db.Date, nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    expected_end_date = db.Column(db.Date, nullable=True)
    actual_end_date = db.Column(db.Date, nullable=True)
    description = db.Column(db.Text, nullable=True)
    internal_notes = db.Column(db.Text, nullable=True)

    # --- Relationships ---
    client = db.relationship("Client", back_populates="deals")

    def to_dict(self):
        client = self.client
        return {
            "id": self.id,
            "title": self.title,
            "client": (
                {"id": client.id, "full_name": client.full_name} if client else None
            ),
            "client_id": self.client_id,
            "deal_type": self.deal_type or "",
            "value": self.value,
            "status": self.status,
            "project_address": self.project_address or "",
            "permit_number": self.permit_number or "",
            "estimated_duration": self.estimated_duration or "",
            "scope": list(self.scope or []),
            "contract_signed_date": iso(self.contract_signed_date),
            "start_date": iso(self.start_date),
            "expected_end_date": iso(self.expected_end_date),
            "actual_end_date": iso(self.actual_end_date),
            "description": self.description or "",
            "internal_notes": self.internal_notes or "",
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Deal {self.title} ({self.status})>"
