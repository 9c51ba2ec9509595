from __future__ import annotations

from collections import Counter
from datetime import date
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from fulfil import db
from fulfil.business.documents.document_context import DeliveryContext
from fulfil.business.documents.purchase_order_factory import find_by_request_id, flush_new_document, require_item
from fulfil.business.documents.status_validator import DocumentStatusValidator
from fulfil.business.errors import DuplicateSerialNumber, FulfilError, InvalidReference, ValidationFailed
from fulfil.business.ledger.idempotency import IdempotencyKeys
from fulfil.business.ledger.ledger_store import LedgerStore
from fulfil.data.documents.delivery import Delivery, DeliveryLineItem
from fulfil.data.documents.document_status import DocumentStatus
from fulfil.data.documents.order import OrderLineItem
from fulfil.data.documents.serial_number_claim import SerialNumberClaim
from fulfil.data.ledger.ledger_entry import LedgerKind, LineItemType
from fulfil.logger import get_logger

logger = get_logger("fulfil.business.documents.deliveries")

HEADER_FIELDS = ('customer_name', 'ship_date', 'tracking_number', 'notes')


class DeliveryFactory:
    """
    Creates and edits deliveries.

    Each delivery line item is one serialized unit. Serial numbers are checked
    for the whole request before anything is written: one duplicate, inside
    the request or against any serial ever delivered, rejects the request.
    Linking a unit to an order line item records one delivered unit on it.
    """

    def __init__(self, ledger: LedgerStore | None = None):
        self.ledger = ledger or LedgerStore()

    @staticmethod
    def _generate_delivery_number() -> str:
        return f"DEL-{date.today().isoformat()}-{uuid4().hex[:8].upper()}"

    def create(self, header: dict, line_items: list[dict], *, keys: IdempotencyKeys,
               actor_id: str | None = None) -> tuple[Delivery, bool]:
        existing = find_by_request_id(Delivery, keys.request_id)
        if existing is not None:
            logger.info(f"Replayed create of delivery {existing.delivery_number} [{keys.request_id}]")
            return existing, False

        self.check_serial_numbers(line_items)

        delivery = Delivery(
            delivery_number=self._generate_delivery_number(),
            customer_id=header['customer_id'],
            customer_name=header.get('customer_name'),
            ship_date=header['ship_date'],
            tracking_number=header.get('tracking_number'),
            notes=header.get('notes'),
            request_id=keys.request_id,
        )
        delivery.stamp(actor_id)
        db.session.add(delivery)
        flush_new_document(delivery, keys.request_id)
        logger.info(f"Created delivery header - ID: {delivery.id}, Delivery Number: {delivery.delivery_number}, "
                    f"Customer: {delivery.customer_id}")

        for index, line_data in enumerate(line_items):
            self._add_line(delivery, line_data, keys, actor_id, field_prefix=f"line_items[{index}].")

        logger.info(f"Delivery {delivery.id} ({delivery.delivery_number}) created with {len(line_items)} unit(s)")
        return delivery, True

    def update_header(self, delivery_id: int, changes: dict, *, actor_id: str | None = None) -> Delivery:
        context = DeliveryContext(delivery_id)
        context.require_open("modified")
        delivery = context.delivery
        for name in HEADER_FIELDS:
            if name in changes:
                setattr(delivery, name, changes[name])
        delivery.stamp(actor_id)
        db.session.flush()
        return delivery

    def add_line_item(self, delivery_id: int, line_data: dict, *, keys: IdempotencyKeys,
                      actor_id: str | None = None) -> DeliveryLineItem:
        context = DeliveryContext(delivery_id)
        context.require_open("modified")
        self.check_serial_numbers([line_data], field_format="{field}")
        return self._add_line(context.delivery, line_data, keys, actor_id, field_prefix="")

    def sync_line_items(self, delivery_id: int, line_items: list[dict], *, keys: IdempotencyKeys,
                        actor_id: str | None = None) -> Delivery:
        """
        Make the delivery's units match a full list sent by the client.

        Existing units keep their serial number and order link; only price and
        notes change. New entries are added, missing ones removed.
        """
        context = DeliveryContext(delivery_id)
        context.require_open("modified")
        delivery = context.delivery

        keep_ids = {line['id'] for line in line_items if line.get('id')}
        existing_lines = {line.id: line for line in delivery.line_items}
        for index, line_data in enumerate(line_items):
            line = existing_lines.get(line_data.get('id')) if line_data.get('id') else None
            if line_data.get('id') and line is None:
                raise ValidationFailed({f"line_items[{index}].id": f"Unknown line item {line_data['id']}"})
            if line is not None and line_data.get('serial_number', line.serial_number) != line.serial_number:
                raise ValidationFailed({f"line_items[{index}].serial_number":
                                        "serial number of a delivered unit cannot change"})

        self.check_serial_numbers(line_items, only=[index for index, line in enumerate(line_items) if not line.get('id')])

        for line in list(delivery.line_items):
            if line.id not in keep_ids:
                self.remove_line_item(delivery.id, line.id, keys=keys, actor_id=actor_id)

        for index, line_data in enumerate(line_items):
            if not line_data.get('id'):
                self._add_line(delivery, line_data, keys, actor_id, field_prefix=f"line_items[{index}].")
                continue
            line = existing_lines[line_data['id']]
            for name in ('price_per_unit', 'notes'):
                if name in line_data:
                    setattr(line, name, line_data[name])
            line.stamp(actor_id)
        db.session.flush()
        return delivery

    def remove_line_item(self, delivery_id: int, line_item_id: int, *, keys: IdempotencyKeys,
                         actor_id: str | None = None) -> None:
        context = DeliveryContext(delivery_id)
        context.require_open("modified")
        line = context.line_item(line_item_id)
        self._release_line(line, keys, actor_id)
        context.delivery.line_items.remove(line)
        db.session.flush()
        logger.info(f"Removed unit {line.serial_number} from delivery {context.delivery.delivery_number} by {actor_id}")

    def delete(self, delivery_id: int, *, keys: IdempotencyKeys, actor_id: str | None = None) -> None:
        context = DeliveryContext(delivery_id)
        context.require_open("deleted")
        delivery = context.delivery
        for line in list(delivery.line_items):
            self._release_line(line, keys, actor_id)
        db.session.delete(delivery)
        db.session.flush()
        logger.info(f"Deleted delivery {delivery.delivery_number} (ID: {delivery_id}) by {actor_id}")

    @staticmethod
    def check_serial_numbers(line_items: list[dict], *, only: list[int] | None = None,
                             field_format: str = "line_items[{index}].{field}") -> None:
        """
        Reject the request if any serial number repeats within it or was ever used before.

        Raises:
            DuplicateSerialNumber: with one field error per offending line item
        """
        indexes = range(len(line_items)) if only is None else only
        serials = {index: line_items[index]['serial_number'] for index in indexes}
        counts = Counter(serials.values())
        taken = set()
        if serials:
            taken = set(db.session.execute(
                select(SerialNumberClaim.serial_number)
                .where(SerialNumberClaim.serial_number.in_(set(serials.values())))
            ).scalars())

        field_errors = {}
        for index, serial in serials.items():
            field = field_format.format(index=index, field="serial_number")
            if counts[serial] > 1:
                field_errors[field] = f"Serial number {serial} appears more than once in this delivery"
            elif serial in taken:
                field_errors[field] = f"Serial number {serial} has already been delivered"
        if field_errors:
            logger.info(f"Rejected delivery units: duplicate serial numbers {sorted(set(field_errors.values()))}")
            raise DuplicateSerialNumber("Duplicate serial numbers", field_errors=field_errors)

    def _add_line(self, delivery: Delivery, line_data: dict, keys: IdempotencyKeys, actor_id: str | None, *,
                  field_prefix: str) -> DeliveryLineItem:
        order_line = None
        if line_data.get('order_line_item_id'):
            order_line = self._linkable_order_line(delivery, line_data, field_prefix)
            item_id = order_line.item_id
        elif line_data.get('item_id'):
            item_id = require_item(line_data['item_id'], f"{field_prefix}item").id
        else:
            raise ValidationFailed({f"{field_prefix}item": "item is required for units not linked to an order"})

        price = line_data.get('price_per_unit')
        if price is None and order_line is not None:
            price = order_line.price_per_unit

        line = DeliveryLineItem(
            item_id=item_id,
            serial_number=line_data['serial_number'],
            price_per_unit=price,
            order_line_item_id=order_line.id if order_line else None,
            notes=line_data.get('notes'),
        )
        line.stamp(actor_id)
        delivery.line_items.append(line)
        try:
            db.session.flush()
        except IntegrityError as e:
            raise DuplicateSerialNumber(f"Serial number {line.serial_number} has already been delivered",
                                        field=f"{field_prefix}serial_number") from e

        db.session.add(SerialNumberClaim(
            serial_number=line.serial_number,
            delivery_line_item_id=line.id,
            claimed_by_user_id=actor_id,
        ))
        try:
            db.session.flush()
        except IntegrityError as e:
            raise DuplicateSerialNumber(f"Serial number {line.serial_number} has already been delivered",
                                        field=f"{field_prefix}serial_number") from e

        if order_line is not None:
            try:
                self.ledger.reserve(
                    LineItemType.ORDER_LINE_ITEM, order_line.id, LedgerKind.DELIVERED, 1,
                    keys.next(LineItemType.ORDER_LINE_ITEM, order_line.id, "deliver"),
                    actor_id=actor_id,
                )
            except FulfilError as e:
                raise e.at_field(f"{field_prefix}order_line_item")
        logger.debug(f"  Delivery Line {line.id}: Item {item_id}, Serial {line.serial_number}, "
                     f"Order Line {line.order_line_item_id}")
        return line

    @staticmethod
    def _linkable_order_line(delivery: Delivery, line_data: dict, field_prefix: str) -> OrderLineItem:
        field = f"{field_prefix}order_line_item"
        order_line = db.session.get(OrderLineItem, line_data['order_line_item_id'])
        if order_line is None:
            raise InvalidReference(f"Order line item {line_data['order_line_item_id']} not found", field=field)
        order = order_line.order
        if order.customer_id != delivery.customer_id:
            raise InvalidReference(f"Order {order.order_number} belongs to another customer", field=field)
        if order.status != DocumentStatus.OPEN:
            raise InvalidReference(f"Order {order.order_number} is closed", field=field)
        if line_data.get('item_id') and line_data['item_id'] != order_line.item_id:
            raise InvalidReference(f"Order line item {order_line.id} is for a different item",
                                   field=f"{field_prefix}item")
        return order_line

    def _release_line(self, line: DeliveryLineItem, keys: IdempotencyKeys, actor_id: str | None) -> None:
        if line.order_line_item_id is not None:
            DocumentStatusValidator.require_open(line.order_line_item.order, "changed by removing a delivered unit")
            self.ledger.release(
                LineItemType.ORDER_LINE_ITEM, line.order_line_item_id, LedgerKind.DELIVERED, 1,
                keys.next(LineItemType.ORDER_LINE_ITEM, line.order_line_item_id, "undeliver"),
                actor_id=actor_id,
            )
        # The serial stays claimed; only the link to the removed unit goes
        claim = SerialNumberClaim.query.filter_by(delivery_line_item_id=line.id).first()
        if claim is not None:
            claim.delivery_line_item_id = None
            db.session.flush()
