"""
Allocation Engine

Turns "customer X wants N units of item Y" into reservations against that
customer's open purchase-order line items, oldest PO first.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import and_, select

from fulfil.business.errors import InsufficientRemaining, InvalidReference, NoCapacity, NotFound
from fulfil.business.ledger.idempotency import IdempotencyKeys
from fulfil.business.ledger.ledger_store import LedgerStore, require_positive_quantity
from fulfil.data.documents.document_status import DocumentStatus
from fulfil.data.documents.purchase_order import POLineItem, PurchaseOrder
from fulfil.data.ledger.ledger_entry import LedgerEntry, LedgerKind, LineItemType
from fulfil.logger import get_logger

logger = get_logger("fulfil.business.allocation")

# How many times one candidate is re-read after losing a race for its units
MAX_CONTENTION_RETRIES = 3


@dataclass(frozen=True)
class AllocationPlan:
    """Units reserved from one PO line item; becomes one order line item."""
    po_line_item_id: int
    purchase_order_id: int
    po_number: str
    item_id: int
    quantity: int
    price_per_unit: Decimal

    def to_dict(self):
        return {
            'po_line_item': self.po_line_item_id,
            'purchase_order': self.purchase_order_id,
            'po_number': self.po_number,
            'item': self.item_id,
            'quantity': self.quantity,
            'price_per_unit': str(self.price_per_unit),
        }


class AllocationEngine:
    """
    FIFO allocation of order quantities against open PO line items.

    Reservations go through the ledger store, so the engine itself holds no
    state between calls and is safe to share.
    """

    def __init__(self, ledger: LedgerStore | None = None):
        self.ledger = ledger or LedgerStore()
        self.session = self.ledger.session

    def candidates(self, customer_id: str, item_id: int) -> list[POLineItem]:
        """
        PO line items allocation may draw from, in consumption order.

        Open POs of the customer, line items for the item with remaining
        capacity, oldest PO start_date first (undated POs last), then PO id,
        then line item id.
        """
        stmt = (
            select(POLineItem)
            .join(PurchaseOrder, POLineItem.purchase_order_id == PurchaseOrder.id)
            .join(LedgerEntry, and_(
                LedgerEntry.line_item_type == LineItemType.PO_LINE_ITEM.value,
                LedgerEntry.line_item_id == POLineItem.id,
            ))
            .where(PurchaseOrder.customer_id == customer_id)
            .where(PurchaseOrder.status == DocumentStatus.OPEN)
            .where(POLineItem.item_id == item_id)
            .where(LedgerEntry.remaining_expression() > 0)
            .order_by(
                PurchaseOrder.start_date.is_(None),
                PurchaseOrder.start_date.asc(),
                PurchaseOrder.id.asc(),
                POLineItem.id.asc(),
            )
        )
        return list(self.session.execute(stmt).scalars())

    def available_quantity(self, customer_id: str, item_id: int) -> int:
        lines = self.candidates(customer_id, item_id)
        entries = self.ledger.entries_for(LineItemType.PO_LINE_ITEM, [line.id for line in lines])
        return sum(entry.remaining_quantity for entry in entries.values())

    def allocate(self, order_id: int | None, item_id: int, quantity: int, customer_id: str,
                 keys: IdempotencyKeys, *, actor_id: str | None = None) -> list[AllocationPlan]:
        """
        Reserve ``quantity`` ordered units of ``item_id`` across the customer's open PO line items.

        Args:
            order_id: Order the units are for (used in logs only; may be None before flush)
            item_id: Catalog item to allocate
            quantity: Units wanted (> 0)
            customer_id: Customer whose purchase orders may be drawn from
            keys: Idempotency key source of the current request
            actor_id: User performing the allocation

        Returns:
            One AllocationPlan per PO line item touched, in consumption order

        Raises:
            InvalidQuantity: quantity is not a positive whole number
            NoCapacity: the open PO line items cannot cover ``quantity``; every
                reservation made by this call has been released again
        """
        quantity = require_positive_quantity(quantity)
        plans: dict[int, AllocationPlan] = {}
        needed = quantity

        for line in self.candidates(customer_id, item_id):
            if needed == 0:
                break
            taken = self._take(line, needed, keys, actor_id)
            if not taken:
                continue
            needed -= taken
            previous = plans.get(line.id)
            plans[line.id] = AllocationPlan(
                po_line_item_id=line.id,
                purchase_order_id=line.purchase_order_id,
                po_number=line.purchase_order.po_number,
                item_id=line.item_id,
                quantity=taken + (previous.quantity if previous else 0),
                price_per_unit=line.price_per_unit,
            )

        result = list(plans.values())
        if needed > 0:
            self._rollback(result, keys, actor_id)
            available = quantity - needed
            logger.info(
                f"Allocation refused for order {order_id}: item {item_id} x{quantity} "
                f"requested, {available} available to customer {customer_id}"
            )
            raise NoCapacity(
                f"Insufficient PO capacity for item {item_id}: {quantity} requested, {available} available",
                item_id=item_id,
                requested=quantity,
                available=available,
            )

        logger.info(
            f"Allocated item {item_id} x{quantity} for order {order_id} from "
            + ", ".join(f"{plan.po_number}/line {plan.po_line_item_id} x{plan.quantity}" for plan in result)
        )
        return result

    def allocate_explicit(self, po_line_item_id: int, item_id: int, quantity: int, customer_id: str,
                          keys: IdempotencyKeys, *, actor_id: str | None = None) -> AllocationPlan:
        """
        Reserve units from one caller-chosen PO line item.

        Raises:
            NotFound: the PO line item does not exist
            InvalidReference: the PO belongs to another customer, is CLOSED, or holds another item
            InsufficientRemaining: the line item has fewer than ``quantity`` units left
        """
        quantity = require_positive_quantity(quantity)
        line = self.session.get(POLineItem, po_line_item_id)
        if line is None:
            raise NotFound(f"PO line item {po_line_item_id} not found")

        po = line.purchase_order
        if po.customer_id != customer_id:
            raise InvalidReference(
                f"PO line item {po_line_item_id} belongs to PO {po.po_number} of another customer"
            )
        if po.status != DocumentStatus.OPEN:
            raise InvalidReference(f"PO {po.po_number} is closed")
        if line.item_id != item_id:
            raise InvalidReference(f"PO line item {po_line_item_id} is for a different item")

        self.ledger.reserve(
            LineItemType.PO_LINE_ITEM, line.id, LedgerKind.ORDERED, quantity,
            keys.next(LineItemType.PO_LINE_ITEM, line.id, "allocate"),
            actor_id=actor_id,
        )
        logger.info(f"Allocated item {item_id} x{quantity} from {po.po_number}/line {line.id} (explicit)")
        return AllocationPlan(
            po_line_item_id=line.id,
            purchase_order_id=po.id,
            po_number=po.po_number,
            item_id=line.item_id,
            quantity=quantity,
            price_per_unit=line.price_per_unit,
        )

    def release(self, po_line_item_id: int, quantity: int, keys: IdempotencyKeys,
                *, actor_id: str | None = None, operation: str = "deallocate") -> None:
        """Give ordered units back to a PO line item (order line removed or reduced)."""
        self.ledger.release(
            LineItemType.PO_LINE_ITEM, po_line_item_id, LedgerKind.ORDERED, quantity,
            keys.next(LineItemType.PO_LINE_ITEM, po_line_item_id, operation),
            actor_id=actor_id,
        )

    def _take(self, line: POLineItem, needed: int, keys: IdempotencyKeys, actor_id: str | None) -> int:
        """Reserve as much of ``needed`` as ``line`` still has; returns the units taken."""
        remaining = self.ledger.get_entry(LineItemType.PO_LINE_ITEM, line.id).remaining_quantity
        for _ in range(MAX_CONTENTION_RETRIES):
            take = min(remaining, needed)
            if take <= 0:
                return 0
            try:
                self.ledger.reserve(
                    LineItemType.PO_LINE_ITEM, line.id, LedgerKind.ORDERED, take,
                    keys.next(LineItemType.PO_LINE_ITEM, line.id, "allocate"),
                    actor_id=actor_id,
                )
                return take
            except InsufficientRemaining as e:
                # Another request consumed part of this line since it was read
                logger.debug(f"Contention on PO line {line.id}: {take} wanted, {e.remaining} left")
                remaining = e.remaining
        return 0

    def _rollback(self, plans: list[AllocationPlan], keys: IdempotencyKeys, actor_id: str | None) -> None:
        for plan in reversed(plans):
            self.release(plan.po_line_item_id, plan.quantity, keys, actor_id=actor_id,
                         operation="allocate-rollback")
        if plans:
            logger.debug(f"Rolled back {len(plans)} partial reservation(s)")
