"""
Order routes
CRUD, line items and close
"""

from flask import jsonify, request

from fulfil import limiter
from fulfil.business.documents.closing_workflow import ClosingWorkflow
from fulfil.business.documents.document_context import OrderContext
from fulfil.business.documents.order_factory import OrderFactory
from fulfil.business.fulfillment.fulfillment_aggregator import FulfillmentAggregator
from fulfil.business.unit_of_work import unit_of_work
from fulfil.data.documents.document_status import DocumentType
from fulfil.logger import get_logger
from fulfil.presentation.request_context import current_actor_id, idempotency_keys, is_admin, request_id
from fulfil.presentation.routes import (
    document_response,
    fulfil_bp,
    reject_customer_change,
    workflow_limit,
)
from fulfil.presentation.validation import PayloadValidator
from fulfil.services.documents.document_search_service import DocumentSearchService

logger = get_logger("fulfil.routes.orders")


def _order_payload(order):
    """Order with its embedded fulfillment status"""
    return {**order.to_dict(), 'fulfillment_status': FulfillmentAggregator().order_status(order.id).to_dict()}


@fulfil_bp.route('/orders/', methods=['GET'])
def list_orders():
    """List orders, filtered by status / customer_id"""
    filters = DocumentSearchService.parse_filters(request.args)
    logger.debug(f"Listing orders with {filters}")
    return jsonify([order.to_dict() for order in DocumentSearchService.orders(filters)])


@fulfil_bp.route('/orders/', methods=['POST'])
def create_order():
    """
    Create an order.

    Line items naming a ``po_line_item`` draw from it; with ``allocate_from_po``
    the rest are allocated oldest PO first; otherwise they are ad-hoc and need
    a price.
    """
    header, lines, allocate_from_po = PayloadValidator(request.get_json(silent=True)).order()
    with unit_of_work("create order"):
        order, created = OrderFactory().create(
            header, lines, allocate_from_po=allocate_from_po,
            keys=idempotency_keys(), actor_id=current_actor_id(),
        )
    return document_response(_order_payload(order), created)


@fulfil_bp.route('/orders/<int:order_id>/', methods=['GET'])
def get_order(order_id):
    """Get an order with its fulfillment status"""
    return jsonify(_order_payload(OrderContext(order_id).order))


@fulfil_bp.route('/orders/<int:order_id>/', methods=['PATCH', 'PUT'])
def update_order(order_id):
    """Update header fields and, when sent, the full list of line items"""
    header, lines, allocate_from_po = PayloadValidator(request.get_json(silent=True), partial=True).order()
    factory = OrderFactory()
    actor_id = current_actor_id()
    with unit_of_work(f"update order {order_id}"):
        reject_customer_change(OrderContext(order_id).order, header)
        order = factory.update_header(order_id, header, actor_id=actor_id)
        if lines is not None:
            factory.sync_line_items(order_id, lines, allocate_from_po=allocate_from_po,
                                    keys=idempotency_keys(), actor_id=actor_id)
    return jsonify(_order_payload(order))


@fulfil_bp.route('/orders/<int:order_id>/', methods=['DELETE'])
def delete_order(order_id):
    """Delete an order without deliveries, returning its units to the POs"""
    with unit_of_work(f"delete order {order_id}"):
        OrderFactory().delete(order_id, keys=idempotency_keys(), actor_id=current_actor_id())
    return '', 204


@fulfil_bp.route('/orders/<int:order_id>/line-items/', methods=['POST'])
def add_order_line_item(order_id):
    """Add a line item to an open order (same allocation rules as create)"""
    payload = request.get_json(silent=True)
    validator = PayloadValidator(payload)
    line = validator.single_line('order')
    with unit_of_work(f"add line item to order {order_id}"):
        OrderFactory().add_line_item(
            order_id, line, allocate_from_po=validator.boolean(validator.data, "allocate_from_po"),
            keys=idempotency_keys(), actor_id=current_actor_id(),
        )
    return jsonify(_order_payload(OrderContext(order_id).order)), 201


@fulfil_bp.route('/orders/<int:order_id>/line-items/<int:line_item_id>/', methods=['DELETE'])
def remove_order_line_item(order_id, line_item_id):
    """Remove an undelivered line item, releasing its PO allocation"""
    with unit_of_work(f"remove line item {line_item_id} from order {order_id}"):
        OrderFactory().remove_line_item(order_id, line_item_id, keys=idempotency_keys(),
                                        actor_id=current_actor_id())
    return jsonify(_order_payload(OrderContext(order_id).order))


@fulfil_bp.route('/orders/<int:order_id>/close/', methods=['POST'])
@limiter.limit(workflow_limit)
def close_order(order_id):
    """Close an order; undelivered quantity needs an admin override with a reason"""
    admin_override, override_reason = PayloadValidator(request.get_json(silent=True)).close()
    with unit_of_work(f"close order {order_id}"):
        order = ClosingWorkflow().close(
            DocumentType.ORDER, order_id, admin_override, override_reason,
            actor_id=current_actor_id(), request_id=request_id(), override_allowed=is_admin(),
        )
    return jsonify(_order_payload(order))
