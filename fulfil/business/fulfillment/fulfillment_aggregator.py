"""
Fulfillment Aggregator

Read-only projections of the ledger into per-document fulfillment views.
Nothing here writes; the views are plain snapshots and may trail a write
that is still in flight in another request.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from fulfil import db
from fulfil.business.errors import NotFound
from fulfil.business.ledger.ledger_store import LedgerStore
from fulfil.data.core.money import money_str
from fulfil.data.documents.delivery import DeliveryLineItem
from fulfil.data.documents.order import Order, OrderLineItem
from fulfil.data.documents.purchase_order import PurchaseOrder
from fulfil.data.ledger.ledger_entry import LineItemType


def _percent(consumed: int, original: int) -> int:
    # Integer half-up rounding of consumed / original * 100
    pct = (consumed * 200 + original) // (2 * original)
    return min(max(pct, 1), 99)


def classify_po_line(original: int, ordered: int, waived: int) -> str:
    """Status label of a PO line item from its counters."""
    remaining = original - ordered - waived
    if remaining <= 0:
        return "Complete"
    if 0 < ordered < original:
        return f"{_percent(ordered, original)}% Ordered"
    if ordered == 0 and waived > 0:
        return "Partially Waived"
    return "Not Started"


def classify_order_line(original: int, delivered: int) -> str:
    """Status label of an order line item from its counters."""
    remaining = original - delivered
    if remaining <= 0:
        return "Fully Delivered"
    if 0 < delivered < original:
        return f"{_percent(delivered, original)}% Delivered"
    return "Not Started"


@dataclass
class POLineStatus:
    line_item_id: int
    item_id: int
    item_name: str | None
    original_quantity: int
    ordered_quantity: int
    waived_quantity: int
    remaining_quantity: int
    price_per_unit: Decimal
    status_label: str
    orders: list[dict] = field(default_factory=list)

    def to_dict(self):
        return {
            'line_item_id': self.line_item_id,
            'item_id': self.item_id,
            'item_name': self.item_name,
            'original_quantity': self.original_quantity,
            'ordered_quantity': self.ordered_quantity,
            'waived_quantity': self.waived_quantity,
            'remaining_quantity': self.remaining_quantity,
            'price_per_unit': money_str(self.price_per_unit),
            'status_label': self.status_label,
            'orders': list(self.orders),
        }


@dataclass
class POFulfillmentStatus:
    purchase_order_id: int
    po_number: str
    status: str
    line_items: list[POLineStatus]
    orders: list[dict]

    @property
    def is_fulfilled(self) -> bool:
        return all(line.remaining_quantity == 0 for line in self.line_items)

    def to_dict(self):
        return {
            'purchase_order_id': self.purchase_order_id,
            'po_number': self.po_number,
            'status': self.status,
            'is_fulfilled': self.is_fulfilled,
            'line_items': [line.to_dict() for line in self.line_items],
            'orders': list(self.orders),
        }


@dataclass
class OrderLineStatus:
    line_item_id: int
    item_id: int
    item_name: str | None
    original_quantity: int
    delivered_quantity: int
    remaining_quantity: int
    price_per_unit: Decimal
    status_label: str
    source_po: dict | None
    deliveries: list[dict] = field(default_factory=list)

    def to_dict(self):
        return {
            'line_item_id': self.line_item_id,
            'item_id': self.item_id,
            'item_name': self.item_name,
            'original_quantity': self.original_quantity,
            'delivered_quantity': self.delivered_quantity,
            'remaining_quantity': self.remaining_quantity,
            'price_per_unit': money_str(self.price_per_unit),
            'status_label': self.status_label,
            'source_po': self.source_po,
            'deliveries': list(self.deliveries),
        }


@dataclass
class OrderFulfillmentStatus:
    order_id: int
    order_number: str
    status: str
    line_items: list[OrderLineStatus]
    deliveries: list[dict]
    source_pos: list[dict]

    @property
    def is_fulfilled(self) -> bool:
        return all(line.remaining_quantity == 0 for line in self.line_items)

    def to_dict(self):
        return {
            'order_id': self.order_id,
            'order_number': self.order_number,
            'status': self.status,
            'is_fulfilled': self.is_fulfilled,
            'line_items': [line.to_dict() for line in self.line_items],
            'deliveries': list(self.deliveries),
            'source_pos': list(self.source_pos),
        }


def _unique(refs: list[dict], key: str) -> list[dict]:
    seen = set()
    result = []
    for ref in refs:
        if ref[key] in seen:
            continue
        seen.add(ref[key])
        result.append(ref)
    return result


class FulfillmentAggregator:
    """Builds fulfillment views of purchase orders and orders from their ledger entries."""

    def __init__(self, ledger: LedgerStore | None = None):
        self.ledger = ledger or LedgerStore()

    def po_status(self, po_id: int) -> POFulfillmentStatus:
        po = db.session.get(PurchaseOrder, po_id)
        if po is None:
            raise NotFound(f"Purchase order {po_id} not found")

        entries = self.ledger.entries_for(LineItemType.PO_LINE_ITEM, [line.id for line in po.line_items])
        lines = []
        all_orders = []
        for line in po.line_items:
            entry = entries.get(line.id)
            ordered = entry.ordered_quantity if entry else 0
            waived = entry.waived_quantity if entry else 0
            orders = _unique([
                {'order_id': order_line.order_id, 'order_number': order_line.order.order_number}
                for order_line in line.order_line_items.order_by(OrderLineItem.id)
            ], 'order_id')
            all_orders.extend(orders)
            lines.append(POLineStatus(
                line_item_id=line.id,
                item_id=line.item_id,
                item_name=line.item.name if line.item else None,
                original_quantity=line.original_quantity,
                ordered_quantity=ordered,
                waived_quantity=waived,
                remaining_quantity=line.original_quantity - ordered - waived,
                price_per_unit=line.price_per_unit,
                status_label=classify_po_line(line.original_quantity, ordered, waived),
                orders=orders,
            ))

        return POFulfillmentStatus(
            purchase_order_id=po.id,
            po_number=po.po_number,
            status=po.status.value,
            line_items=lines,
            orders=_unique(all_orders, 'order_id'),
        )

    def order_status(self, order_id: int) -> OrderFulfillmentStatus:
        order = db.session.get(Order, order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")

        entries = self.ledger.entries_for(LineItemType.ORDER_LINE_ITEM, [line.id for line in order.line_items])
        lines = []
        all_deliveries = []
        source_pos = []
        for line in order.line_items:
            entry = entries.get(line.id)
            delivered = entry.delivered_quantity if entry else 0
            deliveries = _unique([
                {'delivery_id': delivery_line.delivery_id,
                 'delivery_number': delivery_line.delivery.delivery_number}
                for delivery_line in line.delivery_line_items.order_by(DeliveryLineItem.id)
            ], 'delivery_id')
            all_deliveries.extend(deliveries)

            source_po = None
            if line.po_line_item is not None:
                po = line.po_line_item.purchase_order
                source_po = {'po_id': po.id, 'po_number': po.po_number, 'po_line_item_id': line.po_line_item_id}
                source_pos.append({'po_id': po.id, 'po_number': po.po_number})

            lines.append(OrderLineStatus(
                line_item_id=line.id,
                item_id=line.item_id,
                item_name=line.item.name if line.item else None,
                original_quantity=line.quantity,
                delivered_quantity=delivered,
                remaining_quantity=line.quantity - delivered,
                price_per_unit=line.price_per_unit,
                status_label=classify_order_line(line.quantity, delivered),
                source_po=source_po,
                deliveries=deliveries,
            ))

        return OrderFulfillmentStatus(
            order_id=order.id,
            order_number=order.order_number,
            status=order.status.value,
            line_items=lines,
            deliveries=_unique(all_deliveries, 'delivery_id'),
            source_pos=_unique(source_pos, 'po_id'),
        )
