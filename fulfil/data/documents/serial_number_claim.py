from fulfil import db
from fulfil.data.core.user_created_base import utcnow


class SerialNumberClaim(db.Model):
    """
    Registry of every serial number ever put on a delivery line item.

    Rows outlive the delivery line item that claimed them, so a serial number
    can never be reused even after its delivery is deleted.
    """
    __tablename__ = 'serial_number_claims'

    id = db.Column(db.Integer, primary_key=True)
    serial_number = db.Column(db.String(200), nullable=False, unique=True)
    delivery_line_item_id = db.Column(db.Integer, db.ForeignKey('delivery_line_items.id', ondelete='SET NULL'),
                                      nullable=True, index=True)
    claimed_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    claimed_by_user_id = db.Column(db.String(64), nullable=True)

    def __repr__(self):
        return f'<SerialNumberClaim {self.serial_number} -> {self.delivery_line_item_id}>'
