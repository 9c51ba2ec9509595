from __future__ import annotations

from fulfil import db
from fulfil.business.errors import InvalidReference, NotFound
from fulfil.business.ledger.idempotency import IdempotencyKeys
from fulfil.business.ledger.ledger_store import LedgerStore, require_positive_quantity
from fulfil.data.documents.document_status import DocumentStatus
from fulfil.data.documents.purchase_order import POLineItem
from fulfil.data.ledger.ledger_entry import LedgerEntry, LedgerKind, LineItemType
from fulfil.logger import get_logger

logger = get_logger("fulfil.business.fulfillment.waive")


class WaiveManager:
    """
    Marks units of a PO line item as no longer expected to be ordered.

    A waive consumes capacity like an order does but records no downstream
    document; the reason is kept on the ledger operation for audit.
    """

    def __init__(self, ledger: LedgerStore | None = None):
        self.ledger = ledger or LedgerStore()

    def waive(self, po_line_item_id: int, quantity: int, reason: str | None = None, *,
              keys: IdempotencyKeys, actor_id: str | None = None,
              purchase_order_id: int | None = None) -> LedgerEntry:
        """
        Waive ``quantity`` remaining units of a PO line item.

        Args:
            po_line_item_id: Line item to waive against
            quantity: Units to waive (> 0)
            reason: Free-text justification
            keys: Idempotency key source of the current request
            actor_id: User performing the waive
            purchase_order_id: When given, the line item must belong to this PO

        Raises:
            InvalidQuantity: quantity is zero, negative or not a whole number
            NotFound: the line item does not exist (on the given PO)
            InvalidReference: the PO is CLOSED
            InsufficientRemaining: quantity exceeds the line item's remaining units
        """
        quantity = require_positive_quantity(quantity, "quantity_to_waive")

        line = db.session.get(POLineItem, po_line_item_id)
        if line is None or (purchase_order_id is not None and line.purchase_order_id != purchase_order_id):
            raise NotFound(f"PO line item {po_line_item_id} not found")
        if line.purchase_order.status != DocumentStatus.OPEN:
            raise InvalidReference(f"PO {line.purchase_order.po_number} is closed; line items cannot be waived")

        reason = (reason or "").strip() or None
        entry = self.ledger.reserve(
            LineItemType.PO_LINE_ITEM, line.id, LedgerKind.WAIVED, quantity,
            keys.next(LineItemType.PO_LINE_ITEM, line.id, "waive"),
            reason=reason,
            actor_id=actor_id,
        )
        logger.info(
            f"Waived {quantity} units on {line.purchase_order.po_number}/line {line.id} "
            f"by {actor_id or 'anonymous'} (remaining {entry.remaining_quantity}); reason: {reason!r}"
        )
        return entry
