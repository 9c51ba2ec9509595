from fulfil.data.documents.document_status import DocumentStatus, DocumentType
from fulfil.data.documents.purchase_order import PurchaseOrder, POLineItem
from fulfil.data.documents.order import Order, OrderLineItem
from fulfil.data.documents.delivery import Delivery, DeliveryLineItem
from fulfil.data.documents.document_closure import DocumentClosure
from fulfil.data.documents.serial_number_claim import SerialNumberClaim

__all__ = [
    'DocumentStatus',
    'DocumentType',
    'PurchaseOrder',
    'POLineItem',
    'Order',
    'OrderLineItem',
    'Delivery',
    'DeliveryLineItem',
    'DocumentClosure',
    'SerialNumberClaim',
]
