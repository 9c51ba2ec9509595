"""
FIFO allocation of order quantities against open PO line items
"""
from datetime import date
from decimal import Decimal

import pytest

from fulfil import db
from fulfil.business.allocation.allocation_engine import AllocationEngine
from fulfil.business.documents.closing_workflow import ClosingWorkflow
from fulfil.business.documents.order_factory import OrderFactory
from fulfil.business.errors import InvalidReference, InvalidTransition, NoCapacity, ValidationFailed
from fulfil.business.ledger.idempotency import IdempotencyKeys
from fulfil.business.ledger.ledger_store import LedgerStore
from fulfil.data.documents.document_status import DocumentType
from fulfil.data.ledger.ledger_entry import LineItemType


def _ordered(po_line):
    return LedgerStore().get_entry(LineItemType.PO_LINE_ITEM, po_line.id).ordered_quantity


def test_oldest_po_is_consumed_first(item, make_po):
    # Created out of date order so id order and date order disagree
    feb = make_po([(item, 5, '12.00')], start_date=date(2026, 2, 1))
    jan = make_po([(item, 5, '10.00')], start_date=date(2026, 1, 1))

    plans = AllocationEngine().allocate(None, item.id, 7, 'cust-1', IdempotencyKeys())

    assert [(plan.purchase_order_id, plan.quantity) for plan in plans] == [(jan.id, 5), (feb.id, 2)]
    assert _ordered(jan.line_items[0]) == 5
    assert _ordered(feb.line_items[0]) == 2


def test_undated_po_comes_last(item, make_po):
    undated = make_po([(item, 5, '10.00')])
    dated = make_po([(item, 5, '10.00')], start_date=date(2026, 6, 1))

    plans = AllocationEngine().allocate(None, item.id, 3, 'cust-1', IdempotencyKeys())

    assert [plan.purchase_order_id for plan in plans] == [dated.id]
    assert _ordered(undated.line_items[0]) == 0


def test_only_open_pos_of_the_customer_are_candidates(item, make_po):
    other_customer = make_po([(item, 10, '10.00')], customer_id='cust-2')
    closed = make_po([(item, 10, '10.00')], start_date=date(2025, 1, 1))
    ClosingWorkflow().close(DocumentType.PURCHASE_ORDER, closed.id, True, "contract ended")
    mine = make_po([(item, 10, '10.00')], start_date=date(2026, 1, 1))

    engine = AllocationEngine()
    assert [line.purchase_order_id for line in engine.candidates('cust-1', item.id)] == [mine.id]
    assert engine.available_quantity('cust-1', item.id) == 10
    assert engine.available_quantity('cust-2', item.id) == 10
    assert _ordered(other_customer.line_items[0]) == 0


def test_shortfall_releases_partial_reservations(item, make_po):
    first = make_po([(item, 4, '10.00')], start_date=date(2026, 1, 1))
    second = make_po([(item, 6, '10.00')], start_date=date(2026, 2, 1))

    with pytest.raises(NoCapacity) as excinfo:
        AllocationEngine().allocate(None, item.id, 11, 'cust-1', IdempotencyKeys())

    assert excinfo.value.available == 10
    assert excinfo.value.requested == 11
    assert _ordered(first.line_items[0]) == 0
    assert _ordered(second.line_items[0]) == 0


def test_order_lines_freeze_po_price_per_source(item, make_po, make_order):
    make_po([(item, 5, '10.00')], start_date=date(2026, 1, 1))
    make_po([(item, 5, '12.00')], start_date=date(2026, 2, 1))

    order = make_order([(item, 7)])

    assert [(line.quantity, line.price_per_unit) for line in order.line_items] == [
        (5, Decimal('10.00')), (2, Decimal('12.00')),
    ]
    assert all(line.po_line_item_id for line in order.line_items)


def test_explicit_po_line_from_another_customer_is_rejected(item, make_po):
    po = make_po([(item, 5, '10.00')], customer_id='cust-2')

    with pytest.raises(InvalidReference):
        AllocationEngine().allocate_explicit(po.line_items[0].id, item.id, 1, 'cust-1', IdempotencyKeys())


def test_explicit_po_line_for_another_item_is_rejected(item, make_item, make_po):
    po = make_po([(item, 5, '10.00')])
    other = make_item()

    with pytest.raises(InvalidReference):
        AllocationEngine().allocate_explicit(po.line_items[0].id, other.id, 1, 'cust-1', IdempotencyKeys())


def test_removing_order_line_returns_units(item, make_po, make_order):
    po = make_po([(item, 10, '10.00')])
    order = make_order([(item, 4)])
    assert _ordered(po.line_items[0]) == 4

    OrderFactory().remove_line_item(order.id, order.line_items[0].id, keys=IdempotencyKeys())
    db.session.commit()

    assert _ordered(po.line_items[0]) == 0


def test_order_units_cannot_flow_back_into_closed_po(item, make_po, make_order):
    po = make_po([(item, 10, '10.00')])
    order = make_order([(item, 10)])
    ClosingWorkflow().close(DocumentType.PURCHASE_ORDER, po.id)
    db.session.commit()

    with pytest.raises(InvalidTransition):
        OrderFactory().remove_line_item(order.id, order.line_items[0].id, keys=IdempotencyKeys())
    with pytest.raises(InvalidTransition):
        OrderFactory().delete(order.id, keys=IdempotencyKeys())
    db.session.rollback()

    entry = LedgerStore().get_entry(LineItemType.PO_LINE_ITEM, po.line_items[0].id)
    assert (entry.ordered_quantity, entry.remaining_quantity) == (10, 0)
    assert len(order.line_items) == 1


def test_ad_hoc_line_requires_price(item):
    with pytest.raises(ValidationFailed) as excinfo:
        OrderFactory().create({'customer_id': 'cust-1'}, [{'item_id': item.id, 'quantity': 2}],
                              keys=IdempotencyKeys())

    assert 'line_items[0].price_per_unit' in excinfo.value.field_errors
    db.session.rollback()


def test_ad_hoc_line_does_not_touch_po_capacity(item, make_po, make_order):
    po = make_po([(item, 10, '10.00')])

    order = make_order([(item, 3, '9.50')], allocate_from_po=False)

    assert order.line_items[0].po_line_item_id is None
    assert order.line_items[0].price_per_unit == Decimal('9.50')
    assert _ordered(po.line_items[0]) == 0


class CompetingLedger(LedgerStore):
    """Lets another order take ``units`` from a line item just before the first reserve on it."""

    def __init__(self, units):
        super().__init__()
        self.units = units

    def reserve(self, line_item_type, line_item_id, kind, quantity, idempotency_key, **kwargs):
        if self.units:
            units, self.units = self.units, 0
            super().reserve(line_item_type, line_item_id, kind, units, "competing-order", **kwargs)
        return super().reserve(line_item_type, line_item_id, kind, quantity, idempotency_key, **kwargs)


def test_allocation_retries_a_line_taken_by_another_order(item, make_po):
    jan = make_po([(item, 5, '10.00')], start_date=date(2026, 1, 1))
    feb = make_po([(item, 5, '12.00')], start_date=date(2026, 2, 1))

    plans = AllocationEngine(CompetingLedger(3)).allocate(None, item.id, 7, 'cust-1', IdempotencyKeys())

    # 5 were read on jan, only 2 were left by the time the reserve ran
    assert [(plan.purchase_order_id, plan.quantity) for plan in plans] == [(jan.id, 2), (feb.id, 5)]
    assert _ordered(jan.line_items[0]) == 5
    assert _ordered(feb.line_items[0]) == 5
