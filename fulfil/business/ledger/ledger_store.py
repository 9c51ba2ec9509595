"""
Ledger Store

Durable per-line-item counters (ordered / delivered / waived) and the only
code allowed to change them. Every increment is a single conditional UPDATE
that re-checks the remaining capacity inside the statement, so two callers
racing for the same units cannot both succeed past the capacity: the loser's
UPDATE matches zero rows and the call fails without side effects.
"""
from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from fulfil import db
from fulfil.business.errors import (
    HasDependents,
    IdempotencyConflict,
    InsufficientRemaining,
    InvalidQuantity,
    NotFound,
)
from fulfil.data.ledger.ledger_entry import ALLOWED_KINDS, LedgerEntry, LedgerKind, LineItemType
from fulfil.data.ledger.ledger_operation import LedgerOperation
from fulfil.logger import get_logger

logger = get_logger("fulfil.business.ledger.store")


def require_positive_quantity(quantity, label: str = "quantity") -> int:
    """Return quantity as an int, raising InvalidQuantity unless it is a positive whole number."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity(f"{label} must be a whole number")
    if quantity <= 0:
        raise InvalidQuantity(f"{label} must be greater than 0")
    return quantity


class LedgerStore:
    """
    Reserve/release primitive over ledger_entries.

    All methods work inside the caller's session transaction and never
    commit; the request boundary commits or rolls back.
    """

    def __init__(self, session=None):
        self.session = session or db.session

    # ------------------------------------------------------------------ reads

    def get_entry(self, line_item_type, line_item_id: int) -> LedgerEntry:
        line_item_type = LineItemType(line_item_type)
        entry = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.line_item_type == line_item_type.value)
            .where(LedgerEntry.line_item_id == line_item_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise NotFound(f"No ledger entry for {line_item_type.value} {line_item_id}")
        return entry

    def entries_for(self, line_item_type, line_item_ids) -> dict[int, LedgerEntry]:
        """Batch read of ledger entries keyed by line item id."""
        line_item_type = LineItemType(line_item_type)
        ids = list(line_item_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.line_item_type == line_item_type.value)
            .where(LedgerEntry.line_item_id.in_(ids))
            .execution_options(populate_existing=True)
        ).scalars()
        return {entry.line_item_id: entry for entry in rows}

    def _reload(self, entry_id: int) -> LedgerEntry:
        return self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.id == entry_id)
            .execution_options(populate_existing=True)
        ).scalar_one()

    # -------------------------------------------------------------- lifecycle

    def open_entry(self, line_item_type, line_item_id: int, capacity: int) -> LedgerEntry:
        """Create the zeroed counter row for a freshly flushed line item."""
        line_item_type = LineItemType(line_item_type)
        if capacity is None or capacity < 0:
            raise InvalidQuantity("Ledger capacity cannot be negative")
        entry = LedgerEntry(
            line_item_type=line_item_type.value,
            line_item_id=line_item_id,
            capacity=capacity,
            ordered_quantity=0,
            delivered_quantity=0,
            waived_quantity=0,
            version=0,
        )
        self.session.add(entry)
        self.session.flush()
        logger.debug(f"Opened ledger entry for {line_item_type.value} {line_item_id} (capacity {capacity})")
        return entry

    def resize(self, line_item_type, line_item_id: int, new_capacity: int) -> LedgerEntry:
        """Change capacity; refused if it would drop below what is already consumed."""
        new_capacity = require_positive_quantity(new_capacity)
        entry = self.get_entry(line_item_type, line_item_id)
        consumed = (LedgerEntry.ordered_quantity + LedgerEntry.delivered_quantity
                    + LedgerEntry.waived_quantity)
        result = self.session.execute(
            update(LedgerEntry)
            .where(LedgerEntry.id == entry.id)
            .where(consumed <= new_capacity)
            .values(capacity=new_capacity, version=LedgerEntry.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self._reload(entry.id)
            raise InvalidQuantity(
                f"quantity cannot be reduced to {new_capacity}: "
                f"{current.consumed_quantity} already consumed"
            )
        logger.info(f"Resized ledger {entry.line_item_type}:{line_item_id} to capacity {new_capacity}")
        return self._reload(entry.id)

    def drop_entry(self, line_item_type, line_item_id: int) -> None:
        """Remove the counters of a line item that is being deleted; it must have no consumption."""
        entry = self.get_entry(line_item_type, line_item_id)
        if entry.consumed_quantity:
            raise HasDependents(
                f"Line item {line_item_id} has {entry.consumed_quantity} units consumed and cannot be removed"
            )
        self.session.delete(entry)
        self.session.flush()
        logger.debug(f"Dropped ledger entry for {entry.line_item_type} {line_item_id}")

    # -------------------------------------------------------------- mutations

    def reserve(self, line_item_type, line_item_id: int, kind, quantity: int, idempotency_key: str,
                *, reason: str | None = None, actor_id: str | None = None) -> LedgerEntry:
        """
        Atomically consume ``quantity`` units of ``kind`` from a line item.

        Args:
            line_item_type: LineItemType of the owning line item
            line_item_id: ID of the owning line item
            kind: LedgerKind to increment (must be legal for the line item type)
            quantity: Units to consume (> 0)
            idempotency_key: Unique key for this attempt; a replayed key is a no-op
            reason: Optional audit text (used by waives)
            actor_id: User performing the action

        Returns:
            The ledger entry as it stands after the reservation

        Raises:
            InvalidQuantity: quantity is not a positive whole number or kind is illegal
            InsufficientRemaining: quantity exceeds the remaining capacity
            IdempotencyConflict: the key was already used for a different mutation
        """
        line_item_type, kind = self._check_kind(line_item_type, kind)
        quantity = require_positive_quantity(quantity)
        entry = self.get_entry(line_item_type, line_item_id)

        if self._already_applied(entry, LedgerOperation.RESERVE, kind, quantity, idempotency_key):
            return entry

        column = getattr(LedgerEntry, kind.column_name)
        result = self.session.execute(
            update(LedgerEntry)
            .where(LedgerEntry.id == entry.id)
            .where(LedgerEntry.remaining_expression() >= quantity)
            .values({kind.column_name: column + quantity, 'version': LedgerEntry.version + 1})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self._reload(entry.id)
            logger.info(
                f"Reserve refused on {line_item_type.value} {line_item_id}: "
                f"{kind.value} {quantity} requested, {current.remaining_quantity} remaining"
            )
            raise InsufficientRemaining(
                f"Only {current.remaining_quantity} units remain on line item {line_item_id}; "
                f"cannot reserve {quantity}",
                requested=quantity,
                remaining=current.remaining_quantity,
            )

        self._journal(entry, LedgerOperation.RESERVE, kind, quantity, idempotency_key, reason, actor_id)
        entry = self._reload(entry.id)
        logger.info(
            f"Reserved {quantity} {kind.value} on {line_item_type.value} {line_item_id} "
            f"(remaining {entry.remaining_quantity})"
        )
        return entry

    def release(self, line_item_type, line_item_id: int, kind, quantity: int, idempotency_key: str,
                *, reason: str | None = None, actor_id: str | None = None) -> LedgerEntry:
        """
        Inverse of reserve: give ``quantity`` units of ``kind`` back to the line item.

        Raises:
            InvalidQuantity: quantity is not positive, or more than was consumed of that kind
        """
        line_item_type, kind = self._check_kind(line_item_type, kind)
        quantity = require_positive_quantity(quantity)
        entry = self.get_entry(line_item_type, line_item_id)

        if self._already_applied(entry, LedgerOperation.RELEASE, kind, quantity, idempotency_key):
            return entry

        column = getattr(LedgerEntry, kind.column_name)
        result = self.session.execute(
            update(LedgerEntry)
            .where(LedgerEntry.id == entry.id)
            .where(column >= quantity)
            .values({kind.column_name: column - quantity, 'version': LedgerEntry.version + 1})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self._reload(entry.id)
            raise InvalidQuantity(
                f"Cannot release {quantity} {kind.value} units from line item {line_item_id}: "
                f"only {getattr(current, kind.column_name)} recorded"
            )

        self._journal(entry, LedgerOperation.RELEASE, kind, quantity, idempotency_key, reason, actor_id)
        entry = self._reload(entry.id)
        logger.info(
            f"Released {quantity} {kind.value} on {line_item_type.value} {line_item_id} "
            f"(remaining {entry.remaining_quantity})"
        )
        return entry

    # ---------------------------------------------------------------- helpers

    @staticmethod
    def _check_kind(line_item_type, kind) -> tuple[LineItemType, LedgerKind]:
        line_item_type = LineItemType(line_item_type)
        kind = LedgerKind(kind)
        if kind not in ALLOWED_KINDS[line_item_type]:
            raise InvalidQuantity(f"{kind.value} quantity cannot be recorded against a {line_item_type.value}")
        return line_item_type, kind

    def _already_applied(self, entry: LedgerEntry, operation: str, kind: LedgerKind, quantity: int,
                         idempotency_key: str) -> bool:
        existing = self.session.execute(
            select(LedgerOperation).where(LedgerOperation.idempotency_key == idempotency_key)
        ).scalar_one_or_none()
        if existing is None:
            return False
        if (existing.ledger_entry_id != entry.id or existing.operation != operation
                or existing.kind != kind.value or existing.quantity != quantity):
            raise IdempotencyConflict(f"Idempotency key {idempotency_key} was already used for a different operation")
        logger.info(f"Replayed {operation} [{idempotency_key}] - ledger left unchanged")
        return True

    def _journal(self, entry, operation, kind, quantity, idempotency_key, reason, actor_id) -> None:
        self.session.add(LedgerOperation(
            ledger_entry_id=entry.id,
            operation=operation,
            kind=kind.value,
            quantity=quantity,
            idempotency_key=idempotency_key,
            reason=reason,
            created_by_user_id=actor_id,
        ))
        try:
            self.session.flush()
        except IntegrityError as e:
            raise IdempotencyConflict(f"Concurrent use of idempotency key {idempotency_key}") from e
