from fulfil import db
from fulfil.data.core.money import money_str
from fulfil.data.core.user_created_base import UserCreatedBase


class Item(UserCreatedBase):
    """Catalog item. Read-only from the engine's point of view; price bounds are advisory."""
    __tablename__ = 'items'

    name = db.Column(db.String(200), nullable=False)
    version = db.Column(db.String(50), nullable=False, default='1')
    description = db.Column(db.Text, nullable=True)
    msrp = db.Column(db.Numeric(12, 2), nullable=False)
    min_price = db.Column(db.Numeric(12, 2), nullable=False)

    __table_args__ = (
        db.UniqueConstraint('name', 'version', name='uq_items_name_version'),
    )

    def __repr__(self):
        return f'<Item {self.id}: {self.name} v{self.version}>'

    def is_below_min_price(self, price):
        return price is not None and self.min_price is not None and price < self.min_price

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'version': self.version,
            'description': self.description,
            'msrp': money_str(self.msrp),
            'min_price': money_str(self.min_price),
            **self.audit_dict(),
        }
