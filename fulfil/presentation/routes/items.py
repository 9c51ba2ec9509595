"""
Catalog item routes (read-only)
"""

from flask import jsonify, request

from fulfil.presentation.routes import fulfil_bp
from fulfil.services.catalog.item_service import ItemService


@fulfil_bp.route('/items/', methods=['GET'])
def list_items():
    """List catalog items"""
    return jsonify([item.to_dict() for item in ItemService.list_items(request.args)])


@fulfil_bp.route('/items/<int:item_id>/', methods=['GET'])
def get_item(item_id):
    """Get one catalog item"""
    return jsonify(ItemService.get_item(item_id).to_dict())
