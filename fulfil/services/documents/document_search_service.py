"""
Document Search Service

Filtering and lookup of purchase orders, orders and deliveries for the list
endpoints and the serial number search.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import exists, select
from sqlalchemy.orm import Query

from fulfil.business.errors import NotFound, ValidationFailed
from fulfil.data.documents.delivery import Delivery, DeliveryLineItem
from fulfil.data.documents.document_status import DocumentStatus
from fulfil.data.documents.order import Order, OrderLineItem
from fulfil.data.documents.purchase_order import POLineItem, PurchaseOrder
from fulfil.logger import get_logger

logger = get_logger("fulfil.services.documents.search")


@dataclass(frozen=True)
class DocumentSearchFilters:
    """Filter options shared by the document list endpoints."""
    status: Optional[DocumentStatus] = None
    customer_id: Optional[str] = None
    item_id: Optional[int] = None
    search_term: Optional[str] = None


class DocumentSearchService:
    """Search utilities for fulfillment documents."""

    @staticmethod
    def parse_filters(args: Any) -> DocumentSearchFilters:
        """
        Parse filter args from a Flask `request.args`-like mapping.

        Raises:
            ValidationFailed: status or item_id is not a legal value
        """
        errors = {}

        status = None
        raw_status = (args.get("status") or "").strip().upper()
        if raw_status:
            try:
                status = DocumentStatus(raw_status)
            except ValueError:
                errors["status"] = f"status must be one of {', '.join(s.value for s in DocumentStatus)}"

        item_id = None
        raw_item = (args.get("item_id") or args.get("item") or "").strip()
        if raw_item:
            try:
                item_id = int(raw_item)
            except ValueError:
                errors["item_id"] = "item_id must be an integer"

        if errors:
            raise ValidationFailed(errors)

        return DocumentSearchFilters(
            status=status,
            customer_id=(args.get("customer_id") or "").strip() or None,
            item_id=item_id,
            search_term=(args.get("search_term") or args.get("search") or "").strip() or None,
        )

    @staticmethod
    def _apply_common(query: Query, model, number_column, filters: DocumentSearchFilters) -> Query:
        if filters.status:
            query = query.filter(model.status == filters.status)
        if filters.customer_id:
            query = query.filter(model.customer_id == filters.customer_id)
        if filters.search_term:
            query = query.filter(
                number_column.ilike(f"%{filters.search_term}%")
                | model.customer_name.ilike(f"%{filters.search_term}%")
            )
        return query

    @staticmethod
    def purchase_orders(filters: DocumentSearchFilters) -> list[PurchaseOrder]:
        query = DocumentSearchService._apply_common(
            PurchaseOrder.query, PurchaseOrder, PurchaseOrder.po_number, filters
        )
        if filters.item_id:
            query = query.filter(exists(
                select(1).select_from(POLineItem)
                .where(POLineItem.purchase_order_id == PurchaseOrder.id)
                .where(POLineItem.item_id == filters.item_id)
            ))
        return query.order_by(PurchaseOrder.id.desc()).all()

    @staticmethod
    def orders(filters: DocumentSearchFilters) -> list[Order]:
        query = DocumentSearchService._apply_common(Order.query, Order, Order.order_number, filters)
        if filters.item_id:
            query = query.filter(exists(
                select(1).select_from(OrderLineItem)
                .where(OrderLineItem.order_id == Order.id)
                .where(OrderLineItem.item_id == filters.item_id)
            ))
        return query.order_by(Order.id.desc()).all()

    @staticmethod
    def deliveries(filters: DocumentSearchFilters) -> list[Delivery]:
        query = DocumentSearchService._apply_common(
            Delivery.query, Delivery, Delivery.delivery_number, filters
        )
        if filters.item_id:
            query = query.filter(exists(
                select(1).select_from(DeliveryLineItem)
                .where(DeliveryLineItem.delivery_id == Delivery.id)
                .where(DeliveryLineItem.item_id == filters.item_id)
            ))
        return query.order_by(Delivery.id.desc()).all()

    @staticmethod
    def find_delivery_by_serial(serial_number: str | None) -> Delivery:
        """
        Delivery holding the unit with this serial number.

        Raises:
            ValidationFailed: no serial number given
            NotFound: no delivered unit carries the serial number
        """
        serial_number = (serial_number or "").strip()
        if not serial_number:
            raise ValidationFailed({"serial_number": "serial_number query parameter is required"})

        line = DeliveryLineItem.query.filter_by(serial_number=serial_number).first()
        if line is None:
            logger.debug(f"Serial search miss: {serial_number}")
            raise NotFound(f"No delivery found with serial number {serial_number}")
        return line.delivery
