from __future__ import annotations

from datetime import date
from uuid import uuid4

from fulfil import db
from fulfil.business.allocation.allocation_engine import AllocationEngine, AllocationPlan
from fulfil.business.documents.document_context import OrderContext
from fulfil.business.documents.purchase_order_factory import find_by_request_id, flush_new_document, require_item
from fulfil.business.documents.status_validator import DocumentStatusValidator
from fulfil.business.errors import FulfilError, HasDependents, InsufficientRemaining, ValidationFailed
from fulfil.business.ledger.idempotency import IdempotencyKeys
from fulfil.business.ledger.ledger_store import LedgerStore
from fulfil.data.documents.order import Order, OrderLineItem
from fulfil.data.ledger.ledger_entry import LineItemType
from fulfil.logger import get_logger

logger = get_logger("fulfil.business.documents.orders")

HEADER_FIELDS = ('customer_name', 'notes')


class OrderFactory:
    """
    Creates and edits orders.

    A requested line becomes order line items in one of three ways:
    - explicit: the client names the PO line item to draw from
    - allocated: ``allocate_from_po`` is set and the allocation engine picks
      PO line items oldest first, one order line item per PO line touched
    - ad-hoc: no PO link, the client supplies the price
    """

    def __init__(self, ledger: LedgerStore | None = None, engine: AllocationEngine | None = None):
        self.ledger = ledger or LedgerStore()
        self.engine = engine or AllocationEngine(self.ledger)

    @staticmethod
    def _generate_order_number() -> str:
        return f"ORD-{date.today().isoformat()}-{uuid4().hex[:8].upper()}"

    def create(self, header: dict, line_items: list[dict], *, allocate_from_po: bool = False,
               keys: IdempotencyKeys, actor_id: str | None = None) -> tuple[Order, bool]:
        """
        Create an order and allocate its line items.

        Returns:
            (order, created) - created is False for a replayed request
        """
        existing = find_by_request_id(Order, keys.request_id)
        if existing is not None:
            logger.info(f"Replayed create of order {existing.order_number} [{keys.request_id}]")
            return existing, False

        order = Order(
            order_number=self._generate_order_number(),
            customer_id=header['customer_id'],
            customer_name=header.get('customer_name'),
            notes=header.get('notes'),
            request_id=keys.request_id,
        )
        order.stamp(actor_id)
        db.session.add(order)
        flush_new_document(order, keys.request_id)
        logger.info(f"Created order header - ID: {order.id}, Order Number: {order.order_number}, "
                    f"Customer: {order.customer_id}, allocate_from_po={allocate_from_po}")

        for index, line_data in enumerate(line_items):
            self._add_lines(order, line_data, allocate_from_po, keys, actor_id, field_prefix=f"line_items[{index}].")

        logger.info(f"Order {order.id} ({order.order_number}) created with {len(order.line_items)} line item(s)")
        return order, True

    def update_header(self, order_id: int, changes: dict, *, actor_id: str | None = None) -> Order:
        context = OrderContext(order_id)
        context.require_open("modified")
        order = context.order
        for name in HEADER_FIELDS:
            if name in changes:
                setattr(order, name, changes[name])
        order.stamp(actor_id)
        db.session.flush()
        return order

    def add_line_item(self, order_id: int, line_data: dict, *, allocate_from_po: bool = False,
                      keys: IdempotencyKeys, actor_id: str | None = None) -> list[OrderLineItem]:
        context = OrderContext(order_id)
        context.require_open("modified")
        return self._add_lines(context.order, line_data, allocate_from_po, keys, actor_id, field_prefix="")

    def sync_line_items(self, order_id: int, line_items: list[dict], *, allocate_from_po: bool = False,
                        keys: IdempotencyKeys, actor_id: str | None = None) -> Order:
        """
        Make the order's line items match a full list sent by the client.

        Existing line items keep their quantity and source; only notes and
        override_reason change. New entries are allocated, missing ones removed.
        """
        context = OrderContext(order_id)
        context.require_open("modified")
        order = context.order

        keep_ids = {line['id'] for line in line_items if line.get('id')}
        for line in list(order.line_items):
            if line.id not in keep_ids:
                self.remove_line_item(order.id, line.id, keys=keys, actor_id=actor_id)

        for index, line_data in enumerate(line_items):
            prefix = f"line_items[{index}]."
            if not line_data.get('id'):
                self._add_lines(order, line_data, allocate_from_po, keys, actor_id, field_prefix=prefix)
                continue
            line = context.line_item(line_data['id'])
            if line_data.get('quantity', line.quantity) != line.quantity:
                raise ValidationFailed({f"{prefix}quantity": "quantity of an existing line item cannot change; "
                                                             "remove it and add a new one"})
            if line_data.get('item_id', line.item_id) != line.item_id:
                raise ValidationFailed({f"{prefix}item": "item of an existing line item cannot change"})
            for name in ('notes', 'override_reason'):
                if name in line_data:
                    setattr(line, name, line_data[name])
            line.stamp(actor_id)
        db.session.flush()
        return order

    def remove_line_item(self, order_id: int, line_item_id: int, *, keys: IdempotencyKeys,
                         actor_id: str | None = None) -> None:
        """Remove an order line item and give its units back to the PO line item it drew from."""
        context = OrderContext(order_id)
        context.require_open("modified")
        line = context.line_item(line_item_id)
        self._release_line(line, keys, actor_id)
        context.order.line_items.remove(line)
        db.session.flush()
        logger.info(f"Removed line item {line_item_id} from order {context.order.order_number} by {actor_id}")

    def delete(self, order_id: int, *, keys: IdempotencyKeys, actor_id: str | None = None) -> None:
        context = OrderContext(order_id)
        context.require_open("deleted")
        order = context.order
        for line in order.line_items:
            if line.delivery_line_items.count():
                raise HasDependents(f"Order {order.order_number} has deliveries and cannot be deleted")
        for line in list(order.line_items):
            self._release_line(line, keys, actor_id)
        db.session.delete(order)
        db.session.flush()
        logger.info(f"Deleted order {order.order_number} (ID: {order_id}) by {actor_id}")

    def _release_line(self, line: OrderLineItem, keys: IdempotencyKeys, actor_id: str | None) -> None:
        if line.delivery_line_items.count():
            raise HasDependents(f"Order line item {line.id} has deliveries and cannot be removed")
        if line.po_line_item_id is not None:
            DocumentStatusValidator.require_open(line.po_line_item.purchase_order,
                                                 "changed by removing an order drawn from it")
        self.ledger.drop_entry(LineItemType.ORDER_LINE_ITEM, line.id)
        if line.po_line_item_id is not None:
            self.engine.release(line.po_line_item_id, line.quantity, keys, actor_id=actor_id)

    def _add_lines(self, order: Order, line_data: dict, allocate_from_po: bool, keys: IdempotencyKeys,
                   actor_id: str | None, *, field_prefix: str) -> list[OrderLineItem]:
        item = require_item(line_data['item_id'], f"{field_prefix}item")
        quantity = line_data['quantity']

        if line_data.get('po_line_item_id'):
            try:
                plans = [self.engine.allocate_explicit(
                    line_data['po_line_item_id'], item.id, quantity, order.customer_id, keys, actor_id=actor_id,
                )]
            except InsufficientRemaining as e:
                raise e.at_field(f"{field_prefix}quantity")
            except FulfilError as e:
                raise e.at_field(f"{field_prefix}po_line_item")
        elif allocate_from_po:
            try:
                plans = self.engine.allocate(order.id, item.id, quantity, order.customer_id, keys, actor_id=actor_id)
            except FulfilError as e:
                raise e.at_field(f"{field_prefix}quantity")
        else:
            return [self._create_ad_hoc(order, item, line_data, actor_id, field_prefix=field_prefix)]
        return [self._create_allocated(order, plan, line_data, actor_id) for plan in plans]

    def _create_allocated(self, order: Order, plan: AllocationPlan, line_data: dict,
                          actor_id: str | None) -> OrderLineItem:
        line = OrderLineItem(
            item_id=plan.item_id,
            quantity=plan.quantity,
            price_per_unit=plan.price_per_unit,
            po_line_item_id=plan.po_line_item_id,
            notes=line_data.get('notes'),
            override_reason=line_data.get('override_reason'),
        )
        line.stamp(actor_id)
        order.line_items.append(line)
        db.session.flush()
        self.ledger.open_entry(LineItemType.ORDER_LINE_ITEM, line.id, line.quantity)
        logger.debug(f"  Order Line {line.id}: Item {line.item_id}, Qty {line.quantity} "
                     f"from {plan.po_number}/line {plan.po_line_item_id} at {line.price_per_unit}")
        return line

    def _create_ad_hoc(self, order: Order, item, line_data: dict, actor_id: str | None, *,
                       field_prefix: str) -> OrderLineItem:
        price = line_data.get('price_per_unit')
        if price is None:
            raise ValidationFailed({
                f"{field_prefix}price_per_unit": "price_per_unit is required for line items not allocated from a PO"
            })
        if item.is_below_min_price(price):
            # Advisory only; the line is still accepted
            logger.warning(f"Order {order.order_number}: item {item.id} priced at {price}, "
                           f"below minimum {item.min_price} (override_reason={line_data.get('override_reason')!r})")

        line = OrderLineItem(
            item_id=item.id,
            quantity=line_data['quantity'],
            price_per_unit=price,
            notes=line_data.get('notes'),
            override_reason=line_data.get('override_reason'),
        )
        line.stamp(actor_id)
        order.line_items.append(line)
        db.session.flush()
        self.ledger.open_entry(LineItemType.ORDER_LINE_ITEM, line.id, line.quantity)
        logger.debug(f"  Order Line {line.id}: Item {line.item_id}, Qty {line.quantity} ad-hoc at {price}")
        return line
