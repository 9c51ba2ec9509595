from fulfil import db
from fulfil.data.core.money import money_str
from fulfil.data.core.user_created_base import UserCreatedBase
from fulfil.data.documents.document_status import DocumentLifecycleMixin, DocumentType


class Delivery(DocumentLifecycleMixin, UserCreatedBase):
    """Shipment of serialized units to a customer"""
    __tablename__ = 'deliveries'

    DOCUMENT_TYPE = DocumentType.DELIVERY

    delivery_number = db.Column(db.String(100), unique=True, nullable=False)
    customer_id = db.Column(db.String(64), nullable=False, index=True)
    customer_name = db.Column(db.String(200), nullable=True)
    ship_date = db.Column(db.Date, nullable=False)
    tracking_number = db.Column(db.String(200), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    line_items = db.relationship('DeliveryLineItem', back_populates='delivery',
                                 cascade='all, delete-orphan', order_by='DeliveryLineItem.id')

    def __repr__(self):
        return f'<Delivery {self.delivery_number}: customer {self.customer_id} ({self.status})>'

    def to_dict(self):
        return {
            'id': self.id,
            'delivery_number': self.delivery_number,
            'customer_id': self.customer_id,
            'customer_name': self.customer_name,
            'ship_date': self.ship_date.isoformat() if self.ship_date else None,
            'tracking_number': self.tracking_number,
            'notes': self.notes,
            'line_items': [line.to_dict() for line in self.line_items],
            **self.lifecycle_dict(),
            **self.audit_dict(),
        }


class DeliveryLineItem(UserCreatedBase):
    """One physical unit, identified by a serial number unique across all deliveries"""
    __tablename__ = 'delivery_line_items'

    delivery_id = db.Column(db.Integer, db.ForeignKey('deliveries.id'), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey('items.id'), nullable=False, index=True)
    serial_number = db.Column(db.String(200), nullable=False, unique=True)
    price_per_unit = db.Column(db.Numeric(12, 2), nullable=True)
    order_line_item_id = db.Column(db.Integer, db.ForeignKey('order_line_items.id'), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    delivery = db.relationship('Delivery', back_populates='line_items')
    item = db.relationship('Item')
    order_line_item = db.relationship('OrderLineItem', back_populates='delivery_line_items')

    def __repr__(self):
        return f'<DeliveryLineItem {self.id}: {self.serial_number}>'

    def to_dict(self):
        order_line = self.order_line_item
        return {
            'id': self.id,
            'item': self.item_id,
            'item_name': self.item.name if self.item else None,
            'item_version': self.item.version if self.item else None,
            'serial_number': self.serial_number,
            'price_per_unit': money_str(self.price_per_unit),
            'order_line_item': self.order_line_item_id,
            'order_number': order_line.order.order_number if order_line else None,
            'notes': self.notes,
        }
