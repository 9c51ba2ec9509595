from fulfil.business.fulfillment.fulfillment_aggregator import (
    FulfillmentAggregator,
    OrderFulfillmentStatus,
    POFulfillmentStatus,
    classify_order_line,
    classify_po_line,
)
from fulfil.business.fulfillment.waive_manager import WaiveManager

__all__ = [
    'FulfillmentAggregator',
    'OrderFulfillmentStatus',
    'POFulfillmentStatus',
    'classify_order_line',
    'classify_po_line',
    'WaiveManager',
]
