"""Activity model — immutable CRM timeline entries.

Every status change, conversion, creation and manual log entry on a Lead,
Client or Deal is recorded here. Rows are append-only: the only delete
path is the Deal cascade.

Entity references are plain indexed columns (no FK) so that history
outlives a deleted client and survives lead soft-deletes.
"""

from contractor_crm.extensions import db
from contractor_crm.models.mixins import iso, new_id


class Activity(db.Model):
    __tablename__ = "activities"

    TYPES = [
        "lead_created_auto",
        "lead_created_manual",
        "status_changed",
        "call_logged",
        "email_sent",
        "email_received",
        "note_added",
        "site_visit_scheduled",
        "site_visit_completed",
        "quote_sent",
        "quote_accepted",
        "quote_rejected",
        "converted_to_client",
        "client_created_manual",
        "lead_converted",
        "lead_deleted",
        "deal_created",
        "deal_completed",
        "auto_reply_sent",
        "notification_sent",
        "custom",
    ]

    # Most specific first: a deal activity is shown on the deal timeline.
    REFERENCE_KINDS = ["deal", "client", "lead"]

    __table_args__ = (
        db.CheckConstraint(
            "lead_id IS NOT NULL OR client_id IS NOT NULL OR deal_id IS NOT NULL",
            name="ck_activities_has_reference",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    type = db.Column(db.String(50), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    lead_id = db.Column(db.String(36), nullable=True, index=True)
    client_id = db.Column(db.String(36), nullable=True, index=True)
    deal_id = db.Column(db.String(36), nullable=True, index=True)
    performed_by = db.Column(db.String(255), nullable=False)  # admin email or "system"
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # named metadata_ to avoid the declarative attribute clash

    @property
    def references(self):
        """All populated references as [{"kind", "id"}], most specific first."""
        refs = []
        for kind in self.REFERENCE_KINDS:
            ref_id = getattr(self, f"{kind}_id")
            if ref_id:
                refs.append({"kind": kind, "id": ref_id})
        return refs

    @property
    def subject(self):
        """The single entity this activity belongs to on a timeline."""
        refs = self.references
        return refs[0] if refs else None

    def to_dict(self, names=None):
        """Serialize. ``names`` maps (kind, id) to a display name, if resolved."""
        names = names or {}

        def ref(kind):
            ref_id = getattr(self, f"{kind}_id")
            if not ref_id:
                return None
            return {"id": ref_id, "name": names.get((kind, ref_id))}

        return {
            "id": self.id,
            "type": self.type,
            "description": self.description or "",
            "timestamp": iso(self.timestamp),
            "lead": ref("lead"),
            "client": ref("client"),
            "deal": ref("deal"),
            "subject": self.subject,
            "performed_by": self.performed_by,
            "metadata": self.metadata_ or {},
        }

    def __repr__(self):
        return f"<Activity {self.type} {self.subject}>"
