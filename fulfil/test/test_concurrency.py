"""
Concurrent reservations and allocations never exceed ledger capacity
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from fulfil import db
from fulfil.business.allocation.allocation_engine import AllocationEngine
from fulfil.business.errors import InsufficientRemaining, NoCapacity
from fulfil.business.ledger.idempotency import IdempotencyKeys
from fulfil.business.ledger.ledger_store import LedgerStore
from fulfil.data.catalog.item import Item
from fulfil.data.documents.purchase_order import POLineItem, PurchaseOrder
from fulfil.data.ledger.ledger_entry import LedgerKind, LineItemType
from fulfil.data.ledger.ledger_operation import LedgerOperation

PO_LINE = LineItemType.PO_LINE_ITEM
THREADS = 8


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'ledger.db'}", connect_args={'timeout': 30})
    db.metadata.create_all(engine)
    with Session(engine) as session:
        LedgerStore(session).open_entry(PO_LINE, 1, 10)
        session.commit()
    yield engine
    engine.dispose()


def _race(engine, attempts):
    """Run each (kind, quantity) attempt on its own thread and session, all released at once."""
    barrier = threading.Barrier(len(attempts))

    def attempt(index):
        kind, quantity = attempts[index]
        with Session(engine) as session:
            store = LedgerStore(session)
            barrier.wait()
            try:
                store.reserve(PO_LINE, 1, kind, quantity, f"race-{index}")
                session.commit()
                return True
            except InsufficientRemaining:
                session.rollback()
                return False

    with ThreadPoolExecutor(max_workers=len(attempts)) as pool:
        return list(pool.map(attempt, range(len(attempts))))


def test_only_three_of_eight_reservations_fit(engine):
    results = _race(engine, [(LedgerKind.ORDERED, 3)] * THREADS)

    assert results.count(True) == 3
    with Session(engine) as session:
        entry = LedgerStore(session).get_entry(PO_LINE, 1)
        assert entry.ordered_quantity == 9
        assert entry.remaining_quantity == 1
        assert session.query(LedgerOperation).count() == 3


def test_orders_and_waives_share_capacity(engine):
    attempts = [(LedgerKind.ORDERED, 2), (LedgerKind.WAIVED, 2)] * (THREADS // 2)

    results = _race(engine, attempts)

    assert results.count(True) == 5
    with Session(engine) as session:
        entry = LedgerStore(session).get_entry(PO_LINE, 1)
        assert entry.ordered_quantity + entry.waived_quantity == 10
        assert entry.remaining_quantity == 0


@pytest.fixture
def stocked_engine(tmp_path):
    """File database with one item spread over two purchase orders of 6 and 4 units."""
    engine = create_engine(f"sqlite:///{tmp_path / 'allocation.db'}", connect_args={'timeout': 30})
    db.metadata.create_all(engine)
    with Session(engine) as session:
        item = Item(name='Field Sensor', version='1', msrp=Decimal('100.00'), min_price=Decimal('80.00'))
        session.add(item)
        lines = []
        for number, (start, quantity) in enumerate([(date(2026, 1, 1), 6), (date(2026, 2, 1), 4)], 1):
            po = PurchaseOrder(po_number=f"PO-RACE-{number}", customer_id='cust-1', start_date=start)
            line = POLineItem(item=item, original_quantity=quantity, price_per_unit=Decimal('10.00'))
            po.line_items.append(line)
            session.add(po)
            lines.append(line)
        session.flush()
        store = LedgerStore(session)
        for line in lines:
            store.open_entry(PO_LINE, line.id, line.original_quantity)
        session.commit()
        ids = (item.id, [line.id for line in lines])
    yield engine, ids
    engine.dispose()


def test_concurrent_allocations_never_oversell(stocked_engine):
    engine, (item_id, line_ids) = stocked_engine
    orders = 5
    barrier = threading.Barrier(orders)

    def allocate(index):
        with Session(engine) as session:
            allocator = AllocationEngine(LedgerStore(session))
            barrier.wait()
            try:
                plans = allocator.allocate(None, item_id, 3, 'cust-1', IdempotencyKeys(f"order-{index}"))
                session.commit()
                return sum(plan.quantity for plan in plans)
            except NoCapacity:
                session.rollback()
                return 0

    with ThreadPoolExecutor(max_workers=orders) as pool:
        allocated = list(pool.map(allocate, range(orders)))

    # 10 units cover three orders of 3; the rest are refused whole
    assert sorted(allocated) == [0, 0, 3, 3, 3]
    with Session(engine) as session:
        entries = LedgerStore(session).entries_for(PO_LINE, line_ids)
        assert sum(entry.ordered_quantity for entry in entries.values()) == 9
        assert all(entry.remaining_quantity >= 0 for entry in entries.values())
        assert entries[line_ids[0]].ordered_quantity == 6
