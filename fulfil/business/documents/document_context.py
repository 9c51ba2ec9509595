from __future__ import annotations

from fulfil import db
from fulfil.business.documents.status_validator import DocumentStatusValidator
from fulfil.business.errors import NotFound
from fulfil.data.documents.delivery import Delivery, DeliveryLineItem
from fulfil.data.documents.document_status import DocumentType
from fulfil.data.documents.order import Order, OrderLineItem
from fulfil.data.documents.purchase_order import POLineItem, PurchaseOrder


class DocumentContext:
    """
    Business wrapper around one document and its line items.

    Subclasses bind the header and line item models.
    """

    MODEL = None
    LINE_MODEL = None
    LINE_FOREIGN_KEY = None
    LABEL = "document"

    def __init__(self, document_id: int):
        self.document_id = document_id
        self._document = None

    @property
    def document(self):
        if self._document is None:
            self._document = db.session.get(self.MODEL, self.document_id)
            if self._document is None:
                raise NotFound(f"{self.LABEL} {self.document_id} not found")
        return self._document

    @property
    def lines(self) -> list:
        return list(self.document.line_items)

    def line_item(self, line_item_id: int):
        line = db.session.get(self.LINE_MODEL, line_item_id)
        if line is None or getattr(line, self.LINE_FOREIGN_KEY) != self.document_id:
            raise NotFound(f"Line item {line_item_id} not found on {self.LABEL} {self.document_id}")
        return line

    def require_open(self, action: str = "modified") -> None:
        DocumentStatusValidator.require_open(self.document, action)


class PurchaseOrderContext(DocumentContext):
    MODEL = PurchaseOrder
    LINE_MODEL = POLineItem
    LINE_FOREIGN_KEY = 'purchase_order_id'
    LABEL = "Purchase order"

    @property
    def purchase_order(self) -> PurchaseOrder:
        return self.document


class OrderContext(DocumentContext):
    MODEL = Order
    LINE_MODEL = OrderLineItem
    LINE_FOREIGN_KEY = 'order_id'
    LABEL = "Order"

    @property
    def order(self) -> Order:
        return self.document


class DeliveryContext(DocumentContext):
    MODEL = Delivery
    LINE_MODEL = DeliveryLineItem
    LINE_FOREIGN_KEY = 'delivery_id'
    LABEL = "Delivery"

    @property
    def delivery(self) -> Delivery:
        return self.document


_CONTEXTS = {
    DocumentType.PURCHASE_ORDER: PurchaseOrderContext,
    DocumentType.ORDER: OrderContext,
    DocumentType.DELIVERY: DeliveryContext,
}


def context_for(document_type, document_id: int) -> DocumentContext:
    return _CONTEXTS[DocumentType(document_type)](document_id)
