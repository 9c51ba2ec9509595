"""
Ledger store: conditional reserve/release, journaling and replay
"""
import pytest

from fulfil import db
from fulfil.business.errors import HasDependents, IdempotencyConflict, InsufficientRemaining, InvalidQuantity
from fulfil.business.ledger.idempotency import IdempotencyKeys, generate_idempotency_key, parse_idempotency_key
from fulfil.business.ledger.ledger_store import LedgerStore, require_positive_quantity
from fulfil.data.ledger.ledger_entry import LedgerKind, LineItemType
from fulfil.data.ledger.ledger_operation import LedgerOperation

PO_LINE = LineItemType.PO_LINE_ITEM


@pytest.fixture
def po_line(item, make_po):
    return make_po([(item, 10, '25.00')]).line_items[0]


def test_new_line_item_has_zeroed_entry(po_line):
    entry = LedgerStore().get_entry(PO_LINE, po_line.id)
    assert entry.capacity == 10
    assert entry.consumed_quantity == 0
    assert entry.remaining_quantity == 10


def test_reserve_and_release(po_line):
    store = LedgerStore()
    entry = store.reserve(PO_LINE, po_line.id, LedgerKind.ORDERED, 3, 'k1')
    assert entry.ordered_quantity == 3
    assert entry.remaining_quantity == 7

    entry = store.release(PO_LINE, po_line.id, LedgerKind.ORDERED, 2, 'k2')
    assert entry.ordered_quantity == 1
    assert entry.remaining_quantity == 9
    assert LedgerOperation.query.count() == 2


def test_reserve_beyond_remaining_changes_nothing(po_line):
    store = LedgerStore()
    store.reserve(PO_LINE, po_line.id, LedgerKind.ORDERED, 8, 'k1')

    with pytest.raises(InsufficientRemaining) as excinfo:
        store.reserve(PO_LINE, po_line.id, LedgerKind.WAIVED, 3, 'k2')

    assert excinfo.value.remaining == 2
    assert excinfo.value.requested == 3
    entry = store.get_entry(PO_LINE, po_line.id)
    assert (entry.ordered_quantity, entry.waived_quantity) == (8, 0)
    assert LedgerOperation.query.count() == 1


def test_replayed_key_is_applied_once(po_line):
    store = LedgerStore()
    store.reserve(PO_LINE, po_line.id, LedgerKind.ORDERED, 3, 'same-key')
    entry = store.reserve(PO_LINE, po_line.id, LedgerKind.ORDERED, 3, 'same-key')

    assert entry.ordered_quantity == 3
    assert LedgerOperation.query.filter_by(idempotency_key='same-key').count() == 1


def test_key_reused_for_different_mutation_conflicts(po_line):
    store = LedgerStore()
    store.reserve(PO_LINE, po_line.id, LedgerKind.ORDERED, 3, 'same-key')

    with pytest.raises(IdempotencyConflict):
        store.reserve(PO_LINE, po_line.id, LedgerKind.ORDERED, 2, 'same-key')


def test_release_more_than_recorded_is_refused(po_line):
    store = LedgerStore()
    store.reserve(PO_LINE, po_line.id, LedgerKind.ORDERED, 2, 'k1')

    with pytest.raises(InvalidQuantity):
        store.release(PO_LINE, po_line.id, LedgerKind.ORDERED, 3, 'k2')
    assert store.get_entry(PO_LINE, po_line.id).ordered_quantity == 2


def test_delivered_kind_not_allowed_on_po_line(po_line):
    with pytest.raises(InvalidQuantity):
        LedgerStore().reserve(PO_LINE, po_line.id, LedgerKind.DELIVERED, 1, 'k1')


@pytest.mark.parametrize('quantity', [0, -1, True, 1.5, '2', None])
def test_non_positive_or_non_integer_quantity_rejected(quantity):
    with pytest.raises(InvalidQuantity):
        require_positive_quantity(quantity)


def test_resize_cannot_drop_below_consumed(po_line):
    store = LedgerStore()
    store.reserve(PO_LINE, po_line.id, LedgerKind.ORDERED, 4, 'k1')

    with pytest.raises(InvalidQuantity):
        store.resize(PO_LINE, po_line.id, 3)

    entry = store.resize(PO_LINE, po_line.id, 4)
    assert entry.capacity == 4
    assert entry.remaining_quantity == 0


def test_drop_entry_refused_while_consumed(po_line):
    store = LedgerStore()
    store.reserve(PO_LINE, po_line.id, LedgerKind.WAIVED, 1, 'k1')

    with pytest.raises(HasDependents):
        store.drop_entry(PO_LINE, po_line.id)


def test_conservation_after_mixed_operations(po_line):
    store = LedgerStore()
    keys = IdempotencyKeys('req')
    store.reserve(PO_LINE, po_line.id, LedgerKind.ORDERED, 4, keys.next(PO_LINE, po_line.id, 'allocate'))
    store.reserve(PO_LINE, po_line.id, LedgerKind.WAIVED, 3, keys.next(PO_LINE, po_line.id, 'waive'))
    store.release(PO_LINE, po_line.id, LedgerKind.ORDERED, 1, keys.next(PO_LINE, po_line.id, 'deallocate'))
    db.session.commit()

    entry = store.get_entry(PO_LINE, po_line.id)
    assert entry.ordered_quantity + entry.waived_quantity + entry.remaining_quantity == entry.capacity
    assert entry.remaining_quantity == 4


def test_idempotency_keys_are_deterministic_per_request():
    first = IdempotencyKeys('abc')
    second = IdempotencyKeys('abc')
    keys = [first.next(PO_LINE, 7, 'allocate'), first.next(PO_LINE, 7, 'allocate')]

    assert keys == [second.next(PO_LINE, 7, 'allocate'), second.next(PO_LINE, 7, 'allocate')]
    assert keys[0] != keys[1]
    assert keys[0] == 'po_line_item:7:allocate:abc.1'


def test_parse_idempotency_key():
    key = generate_idempotency_key('order_line_item', 12, 'deliver', 'req-1.3')
    assert parse_idempotency_key(key) == ('order_line_item', 12, 'deliver', 'req-1.3')

    with pytest.raises(ValueError):
        parse_idempotency_key('not-a-key')
