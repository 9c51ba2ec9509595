from fulfil import db
from fulfil.data.core.money import money_str
from fulfil.data.core.user_created_base import UserCreatedBase
from fulfil.data.documents.document_status import DocumentLifecycleMixin, DocumentType
from fulfil.data.ledger.ledger_entry import LineItemType
from fulfil.data.ledger.quantity_ledger import QuantityLedgerMixin


class Order(DocumentLifecycleMixin, UserCreatedBase):
    """Customer order; line items draw from PO line items or are priced ad-hoc"""
    __tablename__ = 'orders'

    DOCUMENT_TYPE = DocumentType.ORDER

    order_number = db.Column(db.String(100), unique=True, nullable=False)
    customer_id = db.Column(db.String(64), nullable=False, index=True)
    customer_name = db.Column(db.String(200), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    line_items = db.relationship('OrderLineItem', back_populates='order',
                                 cascade='all, delete-orphan', order_by='OrderLineItem.id')

    def __repr__(self):
        return f'<Order {self.order_number}: customer {self.customer_id} ({self.status})>'

    def to_dict(self):
        return {
            'id': self.id,
            'order_number': self.order_number,
            'customer_id': self.customer_id,
            'customer_name': self.customer_name,
            'notes': self.notes,
            'line_items': [line.to_dict() for line in self.line_items],
            **self.lifecycle_dict(),
            **self.audit_dict(),
        }


class OrderLineItem(QuantityLedgerMixin, UserCreatedBase):
    """
    Line item on an order.

    Allocated line items reference the PO line item they draw from and carry
    the PO price frozen at allocation time. Ad-hoc line items have no PO link
    and an explicit price. Owns the delivered counter.
    """
    __tablename__ = 'order_line_items'

    LEDGER_LINE_ITEM_TYPE = LineItemType.ORDER_LINE_ITEM

    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey('items.id'), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_per_unit = db.Column(db.Numeric(12, 2), nullable=False)
    po_line_item_id = db.Column(db.Integer, db.ForeignKey('po_line_items.id'), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)
    override_reason = db.Column(db.Text, nullable=True)

    order = db.relationship('Order', back_populates='line_items')
    item = db.relationship('Item')
    po_line_item = db.relationship('POLineItem', back_populates='order_line_items')
    delivery_line_items = db.relationship('DeliveryLineItem', back_populates='order_line_item', lazy='dynamic')

    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='ck_order_line_items_quantity'),
    )

    def __repr__(self):
        source = f"PO line {self.po_line_item_id}" if self.po_line_item_id else "ad-hoc"
        return f'<OrderLineItem {self.id}: item {self.item_id} x{self.quantity} ({source})>'

    @property
    def is_allocated(self):
        return self.po_line_item_id is not None

    @property
    def ledger_capacity(self):
        return self.quantity

    def to_dict(self):
        po_line = self.po_line_item
        return {
            'id': self.id,
            'item': self.item_id,
            'item_name': self.item.name if self.item else None,
            'item_version': self.item.version if self.item else None,
            'quantity': self.quantity,
            'price_per_unit': money_str(self.price_per_unit),
            'po_line_item': self.po_line_item_id,
            'po_number': po_line.purchase_order.po_number if po_line else None,
            'notes': self.notes,
            'override_reason': self.override_reason,
        }
