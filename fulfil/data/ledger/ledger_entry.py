"""
Per-line-item quantity counters.

One row exists for every line item that owns consumable quantity (PO line
items and Order line items). Counters are only ever changed through
conditional UPDATE statements issued by the ledger store, never by assigning
attributes on a loaded row.
"""
import enum

from fulfil import db
from fulfil.data.core.user_created_base import utcnow


class LineItemType(str, enum.Enum):
    PO_LINE_ITEM = 'po_line_item'
    ORDER_LINE_ITEM = 'order_line_item'


class LedgerKind(str, enum.Enum):
    ORDERED = 'ordered'
    DELIVERED = 'delivered'
    WAIVED = 'waived'

    @property
    def column_name(self):
        return f"{self.value}_quantity"


# Which counters each line item type may consume
ALLOWED_KINDS = {
    LineItemType.PO_LINE_ITEM: frozenset({LedgerKind.ORDERED, LedgerKind.WAIVED}),
    LineItemType.ORDER_LINE_ITEM: frozenset({LedgerKind.DELIVERED}),
}


class LedgerEntry(db.Model):
    __tablename__ = 'ledger_entries'

    id = db.Column(db.Integer, primary_key=True)
    line_item_type = db.Column(db.String(32), nullable=False)
    line_item_id = db.Column(db.Integer, nullable=False)

    capacity = db.Column(db.Integer, nullable=False)
    ordered_quantity = db.Column(db.Integer, nullable=False, default=0)
    delivered_quantity = db.Column(db.Integer, nullable=False, default=0)
    waived_quantity = db.Column(db.Integer, nullable=False, default=0)
    version = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    operations = db.relationship('LedgerOperation', back_populates='ledger_entry', lazy='dynamic',
                                 cascade='all, delete-orphan')

    __table_args__ = (
        db.UniqueConstraint('line_item_type', 'line_item_id', name='uq_ledger_entries_line_item'),
        db.CheckConstraint('capacity >= 0', name='ck_ledger_entries_capacity'),
        db.CheckConstraint('ordered_quantity >= 0 AND delivered_quantity >= 0 AND waived_quantity >= 0',
                           name='ck_ledger_entries_non_negative'),
        db.CheckConstraint('ordered_quantity + delivered_quantity + waived_quantity <= capacity',
                           name='ck_ledger_entries_conservation'),
    )

    def __repr__(self):
        return (f'<LedgerEntry {self.line_item_type}:{self.line_item_id} '
                f'cap={self.capacity} o={self.ordered_quantity} d={self.delivered_quantity} '
                f'w={self.waived_quantity}>')

    @classmethod
    def remaining_expression(cls):
        return cls.capacity - cls.ordered_quantity - cls.delivered_quantity - cls.waived_quantity

    @property
    def consumed_quantity(self):
        return self.ordered_quantity + self.delivered_quantity + self.waived_quantity

    @property
    def remaining_quantity(self):
        return self.capacity - self.consumed_quantity

    def to_dict(self):
        return {
            'line_item_type': self.line_item_type,
            'line_item_id': self.line_item_id,
            'original_quantity': self.capacity,
            'ordered_quantity': self.ordered_quantity,
            'delivered_quantity': self.delivered_quantity,
            'waived_quantity': self.waived_quantity,
            'remaining_quantity': self.remaining_quantity,
        }
