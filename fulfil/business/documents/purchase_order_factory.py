from __future__ import annotations

from datetime import date
from uuid import uuid4

from sqlalchemy.exc import IntegrityError

from fulfil import db
from fulfil.business.documents.document_context import PurchaseOrderContext
from fulfil.business.errors import FulfilError, HasDependents, IdempotencyConflict, InvalidReference
from fulfil.business.ledger.ledger_store import LedgerStore
from fulfil.data.catalog.item import Item
from fulfil.data.documents.purchase_order import POLineItem, PurchaseOrder
from fulfil.data.ledger.ledger_entry import LineItemType
from fulfil.logger import get_logger

logger = get_logger("fulfil.business.documents.purchase_orders")

HEADER_FIELDS = ('customer_name', 'start_date', 'expiration_date', 'notes', 'google_doc_url', 'hubspot_url')


def require_item(item_id: int, field: str) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise InvalidReference(f"Invalid item {item_id}", field=field)
    return item


def find_by_request_id(model, request_id: str | None):
    if not request_id:
        return None
    return model.query.filter_by(request_id=request_id).first()


def flush_new_document(document, request_id: str | None) -> None:
    """Flush a freshly added document, mapping a lost create race on request_id to IdempotencyConflict."""
    try:
        db.session.flush()
    except IntegrityError as e:
        if request_id:
            raise IdempotencyConflict(f"A request with id {request_id} is already being processed") from e
        raise


class PurchaseOrderFactory:
    """
    Creates and edits purchase orders.

    Every PO line item gets its ledger entry in the same transaction it is
    created in; edits go through the ledger so capacity never drops below
    what orders and waives already consumed.
    """

    def __init__(self, ledger: LedgerStore | None = None):
        self.ledger = ledger or LedgerStore()

    @staticmethod
    def _generate_po_number() -> str:
        return f"PO-{date.today().isoformat()}-{uuid4().hex[:8].upper()}"

    def create(self, header: dict, line_items: list[dict], *, actor_id: str | None = None,
               request_id: str | None = None) -> tuple[PurchaseOrder, bool]:
        """
        Create a purchase order with its line items.

        Args:
            header: Validated header fields (customer_id required)
            line_items: Validated line dicts (item_id, quantity, price_per_unit, notes)
            actor_id: User creating the PO
            request_id: Request identity; a repeat returns the PO created the first time

        Returns:
            (purchase_order, created) - created is False for a replayed request
        """
        existing = find_by_request_id(PurchaseOrder, request_id)
        if existing is not None:
            logger.info(f"Replayed create of PO {existing.po_number} [{request_id}]")
            return existing, False

        po = PurchaseOrder(
            po_number=self._generate_po_number(),
            customer_id=header['customer_id'],
            request_id=request_id,
            **{name: header.get(name) for name in HEADER_FIELDS},
        )
        po.stamp(actor_id)
        db.session.add(po)
        flush_new_document(po, request_id)
        logger.info(f"Created PO header - ID: {po.id}, PO Number: {po.po_number}, Customer: {po.customer_id}")

        for index, line_data in enumerate(line_items):
            self._add_line(po, line_data, actor_id, field_prefix=f"line_items[{index}].")

        logger.info(f"PO {po.id} ({po.po_number}) created with {len(line_items)} line item(s)")
        return po, True

    def update_header(self, po_id: int, changes: dict, *, actor_id: str | None = None) -> PurchaseOrder:
        context = PurchaseOrderContext(po_id)
        context.require_open("modified")
        po = context.purchase_order
        for name in HEADER_FIELDS:
            if name in changes:
                setattr(po, name, changes[name])
        po.stamp(actor_id)
        db.session.flush()
        logger.info(f"Updated PO {po.po_number} header fields: {sorted(set(changes) & set(HEADER_FIELDS))}")
        return po

    def sync_line_items(self, po_id: int, line_items: list[dict], *, actor_id: str | None = None) -> PurchaseOrder:
        """
        Make the PO's line items match a full list sent by the client.

        Entries with an ``id`` update that line item, entries without one are
        added, and line items missing from the list are removed.
        """
        context = PurchaseOrderContext(po_id)
        context.require_open("modified")
        po = context.purchase_order

        keep_ids = {line['id'] for line in line_items if line.get('id')}
        for line in list(po.line_items):
            if line.id not in keep_ids:
                self.remove_line_item(po.id, line.id, actor_id=actor_id)

        for index, line_data in enumerate(line_items):
            prefix = f"line_items[{index}]."
            if line_data.get('id'):
                self.update_line_item(po.id, line_data['id'], line_data, actor_id=actor_id, field_prefix=prefix)
            else:
                self._add_line(po, line_data, actor_id, field_prefix=prefix)
        return po

    def add_line_item(self, po_id: int, line_data: dict, *, actor_id: str | None = None) -> POLineItem:
        context = PurchaseOrderContext(po_id)
        context.require_open("modified")
        return self._add_line(context.purchase_order, line_data, actor_id, field_prefix="")

    def update_line_item(self, po_id: int, line_item_id: int, line_data: dict, *,
                         actor_id: str | None = None, field_prefix: str = "") -> POLineItem:
        context = PurchaseOrderContext(po_id)
        context.require_open("modified")
        line = context.line_item(line_item_id)

        if 'item_id' in line_data and line_data['item_id'] != line.item_id:
            if line.ledger.consumed_quantity:
                raise InvalidReference("item cannot change once units are ordered or waived",
                                       field=f"{field_prefix}item")
            line.item_id = require_item(line_data['item_id'], f"{field_prefix}item").id
        if 'quantity' in line_data and line_data['quantity'] != line.original_quantity:
            try:
                self.ledger.resize(LineItemType.PO_LINE_ITEM, line.id, line_data['quantity'])
            except FulfilError as e:
                raise e.at_field(f"{field_prefix}quantity")
            line.original_quantity = line_data['quantity']
        if 'price_per_unit' in line_data:
            line.price_per_unit = line_data['price_per_unit']
        if 'notes' in line_data:
            line.notes = line_data['notes']
        line.stamp(actor_id)
        db.session.flush()
        return line

    def remove_line_item(self, po_id: int, line_item_id: int, *, actor_id: str | None = None) -> None:
        context = PurchaseOrderContext(po_id)
        context.require_open("modified")
        line = context.line_item(line_item_id)
        if line.order_line_items.count():
            raise HasDependents(f"PO line item {line.id} is referenced by order line items and cannot be removed")

        self.ledger.drop_entry(LineItemType.PO_LINE_ITEM, line.id)
        context.purchase_order.line_items.remove(line)
        db.session.flush()
        logger.info(f"Removed line item {line_item_id} from PO {context.purchase_order.po_number} by {actor_id}")

    def delete(self, po_id: int, *, actor_id: str | None = None) -> None:
        """Delete a PO; refused while any of its line items has consumption or order references."""
        context = PurchaseOrderContext(po_id)
        context.require_open("deleted")
        po = context.purchase_order
        for line in po.line_items:
            if line.order_line_items.count():
                raise HasDependents(f"PO {po.po_number} has orders drawn from it and cannot be deleted")
        for line in po.line_items:
            self.ledger.drop_entry(LineItemType.PO_LINE_ITEM, line.id)
        db.session.delete(po)
        db.session.flush()
        logger.info(f"Deleted PO {po.po_number} (ID: {po_id}) by {actor_id}")

    def _add_line(self, po: PurchaseOrder, line_data: dict, actor_id: str | None, *, field_prefix: str) -> POLineItem:
        item = require_item(line_data['item_id'], f"{field_prefix}item")
        line = POLineItem(
            item_id=item.id,
            original_quantity=line_data['quantity'],
            price_per_unit=line_data['price_per_unit'],
            notes=line_data.get('notes'),
        )
        line.stamp(actor_id)
        po.line_items.append(line)
        db.session.flush()
        self.ledger.open_entry(LineItemType.PO_LINE_ITEM, line.id, line.original_quantity)
        logger.debug(f"  PO Line {line.id}: Item {item.id}, Qty {line.original_quantity}, Price {line.price_per_unit}")
        return line
