"""User model.

Admin accounts for the CRM back office.
Flask-Login integration via UserMixin.
"""

from flask_login import UserMixin

from contractor_crm.extensions import db
from contractor_crm.models.mixins import TimestampMixin, new_id


class User(UserMixin, TimestampMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    is_admin = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "is_admin": bool(self.is_admin),
        }

    def __repr__(self):
        return f"<User {self.email}>"
