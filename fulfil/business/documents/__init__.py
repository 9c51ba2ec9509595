from fulfil.business.documents.closing_workflow import ClosingWorkflow
from fulfil.business.documents.delivery_factory import DeliveryFactory
from fulfil.business.documents.document_context import (
    DeliveryContext,
    OrderContext,
    PurchaseOrderContext,
    context_for,
)
from fulfil.business.documents.order_factory import OrderFactory
from fulfil.business.documents.purchase_order_factory import PurchaseOrderFactory
from fulfil.business.documents.status_validator import DocumentStatusValidator

__all__ = [
    'ClosingWorkflow',
    'DeliveryFactory',
    'DeliveryContext',
    'OrderContext',
    'PurchaseOrderContext',
    'context_for',
    'OrderFactory',
    'PurchaseOrderFactory',
    'DocumentStatusValidator',
]
