"""
Purchase order routes
CRUD, line items, close and waive
"""

from flask import jsonify, request

from fulfil import limiter
from fulfil.business.documents.closing_workflow import ClosingWorkflow
from fulfil.business.documents.document_context import PurchaseOrderContext
from fulfil.business.documents.purchase_order_factory import PurchaseOrderFactory
from fulfil.business.fulfillment.fulfillment_aggregator import FulfillmentAggregator
from fulfil.business.fulfillment.waive_manager import WaiveManager
from fulfil.business.unit_of_work import unit_of_work
from fulfil.data.documents.document_status import DocumentType
from fulfil.logger import get_logger
from fulfil.presentation.request_context import (
    current_actor_id,
    idempotency_keys,
    is_admin,
    request_id,
    require_admin,
)
from fulfil.presentation.routes import (
    document_response,
    fulfil_bp,
    reject_customer_change,
    workflow_limit,
)
from fulfil.presentation.validation import PayloadValidator
from fulfil.services.documents.document_search_service import DocumentSearchService

logger = get_logger("fulfil.routes.purchase_orders")


def _po_payload(po):
    """Purchase order with its embedded fulfillment status"""
    return {**po.to_dict(), 'fulfillment_status': FulfillmentAggregator().po_status(po.id).to_dict()}


@fulfil_bp.route('/purchase-orders/', methods=['GET'])
def list_purchase_orders():
    """List purchase orders, filtered by status / customer_id"""
    filters = DocumentSearchService.parse_filters(request.args)
    logger.debug(f"Listing purchase orders with {filters}")
    return jsonify([po.to_dict() for po in DocumentSearchService.purchase_orders(filters)])


@fulfil_bp.route('/purchase-orders/', methods=['POST'])
def create_purchase_order():
    """Create a purchase order with its line items"""
    header, lines = PayloadValidator(request.get_json(silent=True)).purchase_order()
    with unit_of_work("create purchase order"):
        po, created = PurchaseOrderFactory().create(
            header, lines, actor_id=current_actor_id(), request_id=request_id()
        )
    return document_response(_po_payload(po), created)


@fulfil_bp.route('/purchase-orders/<int:po_id>/', methods=['GET'])
def get_purchase_order(po_id):
    """Get a purchase order with its fulfillment status"""
    return jsonify(_po_payload(PurchaseOrderContext(po_id).purchase_order))


@fulfil_bp.route('/purchase-orders/<int:po_id>/', methods=['PATCH', 'PUT'])
def update_purchase_order(po_id):
    """Update header fields and, when sent, the full list of line items"""
    validator = PayloadValidator(request.get_json(silent=True), partial=True)
    header, lines = validator.purchase_order()
    factory = PurchaseOrderFactory()
    actor_id = current_actor_id()
    with unit_of_work(f"update purchase order {po_id}"):
        reject_customer_change(PurchaseOrderContext(po_id).purchase_order, header)
        po = factory.update_header(po_id, header, actor_id=actor_id)
        if lines is not None:
            factory.sync_line_items(po_id, lines, actor_id=actor_id)
    return jsonify(_po_payload(po))


@fulfil_bp.route('/purchase-orders/<int:po_id>/', methods=['DELETE'])
def delete_purchase_order(po_id):
    """Delete a purchase order nothing has consumed yet"""
    with unit_of_work(f"delete purchase order {po_id}"):
        PurchaseOrderFactory().delete(po_id, actor_id=current_actor_id())
    return '', 204


@fulfil_bp.route('/purchase-orders/<int:po_id>/line-items/', methods=['POST'])
def add_purchase_order_line_item(po_id):
    """Add a line item to an open purchase order"""
    line = PayloadValidator(request.get_json(silent=True)).single_line('purchase_order')
    with unit_of_work(f"add line item to purchase order {po_id}"):
        PurchaseOrderFactory().add_line_item(po_id, line, actor_id=current_actor_id())
    return jsonify(_po_payload(PurchaseOrderContext(po_id).purchase_order)), 201


@fulfil_bp.route('/purchase-orders/<int:po_id>/line-items/<int:line_item_id>/', methods=['DELETE'])
def remove_purchase_order_line_item(po_id, line_item_id):
    """Remove an unconsumed line item from an open purchase order"""
    with unit_of_work(f"remove line item {line_item_id} from purchase order {po_id}"):
        PurchaseOrderFactory().remove_line_item(po_id, line_item_id, actor_id=current_actor_id())
    return jsonify(_po_payload(PurchaseOrderContext(po_id).purchase_order))


@fulfil_bp.route('/purchase-orders/<int:po_id>/close/', methods=['POST'])
@limiter.limit(workflow_limit)
def close_purchase_order(po_id):
    """Close a purchase order; remaining quantity needs an admin override with a reason"""
    admin_override, override_reason = PayloadValidator(request.get_json(silent=True)).close()
    with unit_of_work(f"close purchase order {po_id}"):
        po = ClosingWorkflow().close(
            DocumentType.PURCHASE_ORDER, po_id, admin_override, override_reason,
            actor_id=current_actor_id(), request_id=request_id(), override_allowed=is_admin(),
        )
    return jsonify(_po_payload(po))


@fulfil_bp.route('/purchase-orders/<int:po_id>/waive/', methods=['POST'])
@limiter.limit(workflow_limit)
def waive_purchase_order_line_item(po_id):
    """Waive remaining units of one PO line item"""
    line_item_id, quantity, reason = PayloadValidator(request.get_json(silent=True)).waive()
    actor_id = require_admin("waive line items")
    with unit_of_work(f"waive on purchase order {po_id}"):
        entry = WaiveManager().waive(
            line_item_id, quantity, reason,
            keys=idempotency_keys(), actor_id=actor_id, purchase_order_id=po_id,
        )
    return jsonify({
        "message": f"Waived {quantity} unit(s); {entry.remaining_quantity} remaining",
        "line_item": entry.to_dict(),
    })
