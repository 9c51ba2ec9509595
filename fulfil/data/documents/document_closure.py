from fulfil import db
from fulfil.data.core.user_created_base import utcnow


class DocumentClosure(db.Model):
    """Audit record of an OPEN -> CLOSED transition, including any admin override"""
    __tablename__ = 'document_closures'

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    document_id = db.Column(db.Integer, nullable=False)
    closed_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    closed_by_user_id = db.Column(db.String(64), nullable=True)
    admin_override = db.Column(db.Boolean, nullable=False, default=False)
    override_reason = db.Column(db.Text, nullable=True)
    # Snapshot of the line items that still had remaining quantity when closed
    unfulfilled_line_items = db.Column(db.JSON, nullable=False, default=list)
    request_id = db.Column(db.String(128), nullable=True)

    __table_args__ = (
        db.UniqueConstraint('document_type', 'document_id', name='uq_document_closures_document'),
    )

    def __repr__(self):
        flag = ' (override)' if self.admin_override else ''
        return f'<DocumentClosure {self.document_type}:{self.document_id}{flag}>'

    def to_dict(self):
        return {
            'document_type': self.document_type,
            'document_id': self.document_id,
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
            'closed_by_user_id': self.closed_by_user_id,
            'admin_override': self.admin_override,
            'override_reason': self.override_reason,
            'unfulfilled_line_items': self.unfulfilled_line_items,
        }
