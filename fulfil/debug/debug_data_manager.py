#!/usr/bin/env python3
"""
Debug Data Manager
Seeds a small catalog and a couple of purchase orders for local use

Handles:
- Loading debug_data.json
- Skipping the insert when the catalog is already populated
- Fail-fast error handling
"""

from datetime import date
from decimal import Decimal
from pathlib import Path
import json

from fulfil import db
from fulfil.logger import get_logger

logger = get_logger("fulfil.debug_data_manager")

DEBUG_DATA_FILE = Path(__file__).parent / 'debug_data.json'


def insert_debug_data(enabled=True, data_file=DEBUG_DATA_FILE):
    """
    Insert the debug catalog and purchase orders

    Args:
        enabled (bool): Whether to insert debug data (default: True)
        data_file (Path): JSON file to load

    Returns:
        dict: Summary of inserted data

    Raises:
        Exception: If any insertion fails (fail-fast)
    """
    if not enabled:
        logger.info("Debug data insertion is disabled")
        return {}

    debug_data = _load_debug_data_file(data_file)
    if _check_debug_data_present(debug_data):
        logger.info("Debug data already present, skipping")
        return {'status': 'skipped', 'reason': 'data_present'}

    actor_id = debug_data.get('actor_id')
    try:
        items = _insert_items(debug_data.get('Items', []), actor_id)
        po_count = _insert_purchase_orders(debug_data.get('PurchaseOrders', []), items, actor_id)
        db.session.commit()
    except Exception as e:
        logger.error(f"Failed to insert debug data: {e}")
        db.session.rollback()
        raise

    logger.info(f"Debug data inserted: {len(items)} item(s), {po_count} purchase order(s)")
    return {'status': 'inserted', 'items': len(items), 'purchase_orders': po_count}


def _load_debug_data_file(data_file):
    try:
        with open(data_file, 'r') as f:
            data = json.load(f)
        logger.debug(f"Loaded debug data file: {data_file}")
        return data
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in {data_file}: {e}")
        raise


def _check_debug_data_present(debug_data):
    from fulfil.data.catalog.item import Item

    names = [item['name'] for item in debug_data.get('Items', [])]
    return bool(names) and Item.query.filter(Item.name.in_(names)).count() == len(names)


def _insert_items(items_data, actor_id):
    from fulfil.data.catalog.item import Item

    items = {}
    for item_data in items_data:
        item = Item.query.filter_by(name=item_data['name'], version=item_data.get('version', '1')).first()
        if item is None:
            item = Item(
                name=item_data['name'],
                version=item_data.get('version', '1'),
                description=item_data.get('description'),
                msrp=Decimal(item_data['msrp']),
                min_price=Decimal(item_data['min_price']),
            )
            item.stamp(actor_id)
            db.session.add(item)
            db.session.flush()
            logger.debug(f"Created item {item.name} v{item.version}")
        items[item.name] = item
    return items


def _insert_purchase_orders(po_data_list, items, actor_id):
    from fulfil.business.documents.purchase_order_factory import PurchaseOrderFactory

    factory = PurchaseOrderFactory()
    for po_data in po_data_list:
        header = {
            'customer_id': po_data['customer_id'],
            'customer_name': po_data.get('customer_name'),
            'notes': po_data.get('notes'),
        }
        for name in ('start_date', 'expiration_date'):
            if po_data.get(name):
                header[name] = date.fromisoformat(po_data[name])
        line_items = [
            {
                'item_id': items[line['item']].id,
                'quantity': line['quantity'],
                'price_per_unit': Decimal(line['price_per_unit']),
                'notes': line.get('notes'),
            }
            for line in po_data.get('line_items', [])
        ]
        factory.create(header, line_items, actor_id=actor_id)
    return len(po_data_list)
