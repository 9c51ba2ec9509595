from fulfil import db
from fulfil.data.core.money import money_str
from fulfil.data.core.user_created_base import UserCreatedBase
from fulfil.data.documents.document_status import DocumentLifecycleMixin, DocumentType
from fulfil.data.ledger.ledger_entry import LineItemType
from fulfil.data.ledger.quantity_ledger import QuantityLedgerMixin


class PurchaseOrder(DocumentLifecycleMixin, UserCreatedBase):
    """Customer purchase order - the capacity orders are allocated from"""
    __tablename__ = 'purchase_orders'

    DOCUMENT_TYPE = DocumentType.PURCHASE_ORDER

    po_number = db.Column(db.String(100), unique=True, nullable=False)
    customer_id = db.Column(db.String(64), nullable=False, index=True)
    customer_name = db.Column(db.String(200), nullable=True)

    # Allocation sorts on start_date (oldest first, missing dates last)
    start_date = db.Column(db.Date, nullable=True)
    expiration_date = db.Column(db.Date, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    google_doc_url = db.Column(db.String(500), nullable=True)
    hubspot_url = db.Column(db.String(500), nullable=True)

    line_items = db.relationship('POLineItem', back_populates='purchase_order',
                                 cascade='all, delete-orphan', order_by='POLineItem.id')

    def __repr__(self):
        return f'<PurchaseOrder {self.po_number}: customer {self.customer_id} ({self.status})>'

    def to_dict(self):
        return {
            'id': self.id,
            'po_number': self.po_number,
            'customer_id': self.customer_id,
            'customer_name': self.customer_name,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'expiration_date': self.expiration_date.isoformat() if self.expiration_date else None,
            'notes': self.notes,
            'google_doc_url': self.google_doc_url,
            'hubspot_url': self.hubspot_url,
            'line_items': [line.to_dict() for line in self.line_items],
            **self.lifecycle_dict(),
            **self.audit_dict(),
        }


class POLineItem(QuantityLedgerMixin, UserCreatedBase):
    """Line item on a purchase order; owns the ordered/waived counters"""
    __tablename__ = 'po_line_items'

    LEDGER_LINE_ITEM_TYPE = LineItemType.PO_LINE_ITEM

    purchase_order_id = db.Column(db.Integer, db.ForeignKey('purchase_orders.id'), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey('items.id'), nullable=False, index=True)
    original_quantity = db.Column(db.Integer, nullable=False)
    price_per_unit = db.Column(db.Numeric(12, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    purchase_order = db.relationship('PurchaseOrder', back_populates='line_items')
    item = db.relationship('Item')
    order_line_items = db.relationship('OrderLineItem', back_populates='po_line_item', lazy='dynamic')

    __table_args__ = (
        db.CheckConstraint('original_quantity > 0', name='ck_po_line_items_quantity'),
    )

    def __repr__(self):
        return f'<POLineItem {self.id}: item {self.item_id} x{self.original_quantity}>'

    @property
    def ledger_capacity(self):
        return self.original_quantity

    def to_dict(self):
        return {
            'id': self.id,
            'item': self.item_id,
            'item_name': self.item.name if self.item else None,
            'item_version': self.item.version if self.item else None,
            'quantity': self.original_quantity,
            'price_per_unit': money_str(self.price_per_unit),
            'notes': self.notes,
        }
