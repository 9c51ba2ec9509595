"""
Data layer: SQLAlchemy models.

Importing this package registers every model with the shared ``db`` metadata.
"""
from fulfil.data.catalog import Item
from fulfil.data.ledger import LedgerEntry, LedgerOperation
from fulfil.data.documents import (
    PurchaseOrder,
    POLineItem,
    Order,
    OrderLineItem,
    Delivery,
    DeliveryLineItem,
    DocumentClosure,
    SerialNumberClaim,
)

__all__ = [
    'Item',
    'LedgerEntry',
    'LedgerOperation',
    'PurchaseOrder',
    'POLineItem',
    'Order',
    'OrderLineItem',
    'Delivery',
    'DeliveryLineItem',
    'DocumentClosure',
    'SerialNumberClaim',
]
