import enum

from fulfil import db


class DocumentStatus(str, enum.Enum):
    OPEN = 'OPEN'
    CLOSED = 'CLOSED'


class DocumentType(str, enum.Enum):
    PURCHASE_ORDER = 'purchase_order'
    ORDER = 'order'
    DELIVERY = 'delivery'


class DocumentLifecycleMixin:
    """Status columns shared by purchase orders, orders and deliveries."""

    DOCUMENT_TYPE = None

    status = db.Column(db.Enum(DocumentStatus, native_enum=False, length=10, validate_strings=True),
                       nullable=False, default=DocumentStatus.OPEN)
    closed_at = db.Column(db.DateTime, nullable=True)
    closed_by_user_id = db.Column(db.String(64), nullable=True)
    # Idempotency-Key of the request that created the document
    request_id = db.Column(db.String(128), nullable=True, unique=True)

    @property
    def is_open(self):
        return self.status == DocumentStatus.OPEN

    @property
    def is_closed(self):
        return self.status == DocumentStatus.CLOSED

    def lifecycle_dict(self):
        return {
            'status': self.status.value if self.status else None,
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
            'closed_by_user_id': self.closed_by_user_id,
        }
