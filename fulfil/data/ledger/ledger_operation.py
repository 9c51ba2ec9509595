from fulfil import db
from fulfil.data.core.user_created_base import utcnow


class LedgerOperation(db.Model):
    """Append-only journal of reserve/release calls; the idempotency key is unique."""
    __tablename__ = 'ledger_operations'

    RESERVE = 'reserve'
    RELEASE = 'release'

    id = db.Column(db.Integer, primary_key=True)
    ledger_entry_id = db.Column(db.Integer, db.ForeignKey('ledger_entries.id'), nullable=False, index=True)
    operation = db.Column(db.String(16), nullable=False)
    kind = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    idempotency_key = db.Column(db.String(255), nullable=False, unique=True)
    reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    created_by_user_id = db.Column(db.String(64), nullable=True)

    ledger_entry = db.relationship('LedgerEntry', back_populates='operations')

    def __repr__(self):
        return f'<LedgerOperation {self.operation} {self.kind} x{self.quantity} [{self.idempotency_key}]>'

    def to_dict(self):
        return {
            'id': self.id,
            'operation': self.operation,
            'kind': self.kind,
            'quantity': self.quantity,
            'reason': self.reason,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'created_by_user_id': self.created_by_user_id,
        }
