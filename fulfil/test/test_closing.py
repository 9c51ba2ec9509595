"""
Closing workflow: remaining-quantity guard, admin override and replay
"""
import pytest

from fulfil import db
from fulfil.business.documents.closing_workflow import ClosingWorkflow
from fulfil.business.documents.delivery_factory import DeliveryFactory
from fulfil.business.documents.order_factory import OrderFactory
from fulfil.business.documents.purchase_order_factory import PurchaseOrderFactory
from fulfil.business.errors import (
    InvalidTransition,
    OverrideReasonRequired,
    PermissionDenied,
    UnfulfilledLineItems,
)
from fulfil.business.fulfillment.waive_manager import WaiveManager
from fulfil.business.ledger.idempotency import IdempotencyKeys
from fulfil.data.documents.delivery import Delivery
from fulfil.data.documents.document_closure import DocumentClosure
from fulfil.data.documents.document_status import DocumentStatus, DocumentType
from fulfil.data.documents.order import Order
from fulfil.data.documents.purchase_order import PurchaseOrder

PO = DocumentType.PURCHASE_ORDER


def test_close_blocked_while_quantity_remains(item, make_po):
    po = make_po([(item, 10, '10.00')])

    with pytest.raises(UnfulfilledLineItems) as excinfo:
        ClosingWorkflow().close(PO, po.id)

    payload = excinfo.value.to_dict()
    assert payload['can_override'] is True
    assert payload['line_items'][0]['remaining_quantity'] == 10
    assert po.status == DocumentStatus.OPEN


def test_override_needs_reason(item, make_po):
    po = make_po([(item, 10, '10.00')])

    with pytest.raises(OverrideReasonRequired):
        ClosingWorkflow().close(PO, po.id, admin_override=True, override_reason="   ")


def test_override_refused_for_non_admin(item, make_po):
    po = make_po([(item, 10, '10.00')])

    with pytest.raises(PermissionDenied):
        ClosingWorkflow().close(PO, po.id, admin_override=True, override_reason="lapsed",
                                override_allowed=False)


def test_override_close_records_snapshot(item, make_po):
    po = make_po([(item, 10, '10.00')])

    closed = ClosingWorkflow().close(PO, po.id, admin_override=True, override_reason="contract ended",
                                     actor_id='admin-1')
    db.session.commit()

    assert closed.status == DocumentStatus.CLOSED
    assert closed.closed_by_user_id == 'admin-1'
    closure = DocumentClosure.query.one()
    assert closure.admin_override is True
    assert closure.override_reason == "contract ended"
    assert closure.unfulfilled_line_items[0]['remaining_quantity'] == 10


def test_fulfilled_po_closes_without_override(item, make_po, make_order):
    po = make_po([(item, 5, '10.00')])
    make_order([(item, 3)])
    WaiveManager().waive(po.line_items[0].id, 2, keys=IdempotencyKeys())

    closed = ClosingWorkflow().close(PO, po.id, override_allowed=False)
    db.session.commit()

    assert closed.status == DocumentStatus.CLOSED
    assert DocumentClosure.query.one().admin_override is False


def test_closed_document_cannot_close_again_or_change(item, make_po):
    po = make_po([(item, 1, '10.00')])
    WaiveManager().waive(po.line_items[0].id, 1, keys=IdempotencyKeys())
    ClosingWorkflow().close(PO, po.id, request_id='close-1')
    db.session.commit()

    # Same request is a no-op, a new one is an invalid transition
    assert ClosingWorkflow().close(PO, po.id, request_id='close-1').status == DocumentStatus.CLOSED
    with pytest.raises(InvalidTransition):
        ClosingWorkflow().close(PO, po.id, request_id='close-2')
    with pytest.raises(InvalidTransition):
        PurchaseOrderFactory().update_header(po.id, {'notes': 'late edit'})


def test_delivery_closes_on_status_alone(item, make_delivery):
    delivery = make_delivery([{'serial_number': 'SN-9', 'item_id': item.id}])

    closed = ClosingWorkflow().close(DocumentType.DELIVERY, delivery.id)

    assert closed.status == DocumentStatus.CLOSED


def test_order_close_blocked_until_delivered(item, make_po, make_order, make_delivery):
    make_po([(item, 2, '10.00')])
    order = make_order([(item, 1)])

    with pytest.raises(UnfulfilledLineItems):
        ClosingWorkflow().close(DocumentType.ORDER, order.id)

    make_delivery([{'serial_number': 'SN-1', 'order_line_item_id': order.line_items[0].id}])
    assert ClosingWorkflow().close(DocumentType.ORDER, order.id).status == DocumentStatus.CLOSED


def test_closed_po_cannot_be_deleted(item, make_po):
    po = make_po([(item, 1, '10.00')])
    WaiveManager().waive(po.line_items[0].id, 1, keys=IdempotencyKeys())
    ClosingWorkflow().close(PO, po.id)
    db.session.commit()

    with pytest.raises(InvalidTransition):
        PurchaseOrderFactory().delete(po.id)

    assert db.session.get(PurchaseOrder, po.id).status == DocumentStatus.CLOSED
    assert DocumentClosure.query.count() == 1


def test_closed_order_cannot_be_deleted(item, make_po, make_order):
    make_po([(item, 10, '10.00')])
    order = make_order([(item, 4)])
    ClosingWorkflow().close(DocumentType.ORDER, order.id, admin_override=True, override_reason="cancelled")
    db.session.commit()

    with pytest.raises(InvalidTransition):
        OrderFactory().delete(order.id, keys=IdempotencyKeys())

    assert db.session.get(Order, order.id).status == DocumentStatus.CLOSED
    assert DocumentClosure.query.one().admin_override is True


def test_closed_delivery_cannot_be_deleted(item, make_delivery):
    delivery = make_delivery([{'serial_number': 'SN-40', 'item_id': item.id}])
    ClosingWorkflow().close(DocumentType.DELIVERY, delivery.id)
    db.session.commit()

    with pytest.raises(InvalidTransition):
        DeliveryFactory().delete(delivery.id, keys=IdempotencyKeys())
    with pytest.raises(InvalidTransition):
        DeliveryFactory().remove_line_item(delivery.id, delivery.line_items[0].id, keys=IdempotencyKeys())

    assert len(db.session.get(Delivery, delivery.id).line_items) == 1
