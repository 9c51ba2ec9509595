from datetime import datetime, timezone

from fulfil import db


def utcnow():
    """Naive UTC timestamp, matching how the DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserCreatedBase(db.Model):
    """Abstract base class for all user-created records with audit trail"""

    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    created_by_user_id = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    updated_by_user_id = db.Column(db.String(64), nullable=True)

    def stamp(self, user_id):
        """Record the acting user on the audit columns."""
        if self.created_by_user_id is None and self.id is None:
            self.created_by_user_id = user_id
        self.updated_by_user_id = user_id

    def audit_dict(self):
        return {
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'created_by_user_id': self.created_by_user_id,
        }
