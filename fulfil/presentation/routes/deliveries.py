"""
Delivery routes
CRUD, line items, close and serial number search
"""

from flask import jsonify, request

from fulfil import limiter
from fulfil.business.documents.closing_workflow import ClosingWorkflow
from fulfil.business.documents.delivery_factory import DeliveryFactory
from fulfil.business.documents.document_context import DeliveryContext
from fulfil.business.unit_of_work import unit_of_work
from fulfil.data.documents.document_status import DocumentType
from fulfil.logger import get_logger
from fulfil.presentation.request_context import current_actor_id, idempotency_keys, request_id
from fulfil.presentation.routes import (
    document_response,
    fulfil_bp,
    reject_customer_change,
    workflow_limit,
)
from fulfil.presentation.validation import PayloadValidator
from fulfil.services.documents.document_search_service import DocumentSearchService

logger = get_logger("fulfil.routes.deliveries")


@fulfil_bp.route('/deliveries/', methods=['GET'])
def list_deliveries():
    """List deliveries, filtered by status / customer_id"""
    filters = DocumentSearchService.parse_filters(request.args)
    logger.debug(f"Listing deliveries with {filters}")
    return jsonify([delivery.to_dict() for delivery in DocumentSearchService.deliveries(filters)])


@fulfil_bp.route('/deliveries/search_serial/', methods=['GET'])
def search_serial():
    """Find the delivery holding a serial number"""
    delivery = DocumentSearchService.find_delivery_by_serial(request.args.get('serial_number'))
    return jsonify(delivery.to_dict())


@fulfil_bp.route('/deliveries/', methods=['POST'])
def create_delivery():
    """Create a delivery; every serial number must be new or nothing is created"""
    header, lines = PayloadValidator(request.get_json(silent=True)).delivery()
    with unit_of_work("create delivery"):
        delivery, created = DeliveryFactory().create(
            header, lines, keys=idempotency_keys(), actor_id=current_actor_id()
        )
    return document_response(delivery.to_dict(), created)


@fulfil_bp.route('/deliveries/<int:delivery_id>/', methods=['GET'])
def get_delivery(delivery_id):
    """Get a delivery"""
    return jsonify(DeliveryContext(delivery_id).delivery.to_dict())


@fulfil_bp.route('/deliveries/<int:delivery_id>/', methods=['PATCH', 'PUT'])
def update_delivery(delivery_id):
    """Update header fields and, when sent, the full list of units"""
    header, lines = PayloadValidator(request.get_json(silent=True), partial=True).delivery()
    factory = DeliveryFactory()
    actor_id = current_actor_id()
    with unit_of_work(f"update delivery {delivery_id}"):
        reject_customer_change(DeliveryContext(delivery_id).delivery, header)
        delivery = factory.update_header(delivery_id, header, actor_id=actor_id)
        if lines is not None:
            factory.sync_line_items(delivery_id, lines, keys=idempotency_keys(), actor_id=actor_id)
    return jsonify(delivery.to_dict())


@fulfil_bp.route('/deliveries/<int:delivery_id>/', methods=['DELETE'])
def delete_delivery(delivery_id):
    """Delete a delivery, taking its units off the orders they fulfilled"""
    with unit_of_work(f"delete delivery {delivery_id}"):
        DeliveryFactory().delete(delivery_id, keys=idempotency_keys(), actor_id=current_actor_id())
    return '', 204


@fulfil_bp.route('/deliveries/<int:delivery_id>/line-items/', methods=['POST'])
def add_delivery_line_item(delivery_id):
    """Add one serialized unit to an open delivery"""
    line = PayloadValidator(request.get_json(silent=True)).single_line('delivery')
    with unit_of_work(f"add unit to delivery {delivery_id}"):
        DeliveryFactory().add_line_item(delivery_id, line, keys=idempotency_keys(), actor_id=current_actor_id())
    return jsonify(DeliveryContext(delivery_id).delivery.to_dict()), 201


@fulfil_bp.route('/deliveries/<int:delivery_id>/line-items/<int:line_item_id>/', methods=['DELETE'])
def remove_delivery_line_item(delivery_id, line_item_id):
    """Remove a unit from an open delivery; its serial number stays used"""
    with unit_of_work(f"remove unit {line_item_id} from delivery {delivery_id}"):
        DeliveryFactory().remove_line_item(delivery_id, line_item_id, keys=idempotency_keys(),
                                           actor_id=current_actor_id())
    return jsonify(DeliveryContext(delivery_id).delivery.to_dict())


@fulfil_bp.route('/deliveries/<int:delivery_id>/close/', methods=['POST'])
@limiter.limit(workflow_limit)
def close_delivery(delivery_id):
    """Close a delivery (status only)"""
    with unit_of_work(f"close delivery {delivery_id}"):
        delivery = ClosingWorkflow().close(
            DocumentType.DELIVERY, delivery_id, actor_id=current_actor_id(), request_id=request_id(),
        )
    return jsonify(delivery.to_dict())
