"""
Request payload validation for the JSON API.

Validators turn a decoded JSON body into the plain dicts the business layer
takes (``item`` becomes ``item_id``, money becomes Decimal, dates become
``date``) and collect every problem before raising, keyed the way the client
renders them: ``customer_id``, ``line_items[2].quantity``.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation

from fulfil.business.errors import ValidationFailed
from fulfil.data.core.money import quantize_money

REQUIRED = "This field is required."


class PayloadValidator:
    """Collects field errors for one request body."""

    def __init__(self, data, *, partial: bool = False):
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValidationFailed({"non_field_errors": "Request body must be a JSON object"})
        self.data = data
        self.partial = partial
        self.errors: dict[str, str] = {}

    def raise_if_invalid(self) -> None:
        if self.errors:
            raise ValidationFailed(self.errors)

    # ------------------------------------------------------------ primitives

    def string(self, source: dict, key: str, field: str, *, required: bool = False,
               max_length: int | None = None) -> str | None:
        value = source.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            if required:
                self.errors[field] = REQUIRED if value is None else "This field may not be blank."
            return None
        if not isinstance(value, (str, int)):
            self.errors[field] = "Not a valid string."
            return None
        value = str(value).strip()
        if max_length and len(value) > max_length:
            self.errors[field] = f"Ensure this field has no more than {max_length} characters."
            return None
        return value

    def integer(self, source: dict, key: str, field: str, *, required: bool = False,
                min_value: int | None = None) -> int | None:
        value = source.get(key)
        if value is None or value == "":
            if required:
                self.errors[field] = REQUIRED
            return None
        if isinstance(value, bool):
            self.errors[field] = "A valid integer is required."
            return None
        if isinstance(value, float):
            if not value.is_integer():
                self.errors[field] = "A valid integer is required."
                return None
            value = int(value)
        try:
            value = int(value)
        except (TypeError, ValueError):
            self.errors[field] = "A valid integer is required."
            return None
        if min_value is not None and value < min_value:
            self.errors[field] = f"Ensure this value is greater than or equal to {min_value}."
            return None
        return value

    def money(self, source: dict, key: str, field: str, *, required: bool = False) -> Decimal | None:
        value = source.get(key)
        if value is None or value == "":
            if required:
                self.errors[field] = REQUIRED
            return None
        if isinstance(value, bool):
            self.errors[field] = "A valid number is required."
            return None
        try:
            amount = quantize_money(value)
        except (InvalidOperation, ValueError):
            self.errors[field] = "A valid number is required."
            return None
        if not amount.is_finite() or amount < 0:
            self.errors[field] = "Ensure this value is greater than or equal to 0."
            return None
        return amount

    def iso_date(self, source: dict, key: str, field: str, *, required: bool = False) -> date | None:
        value = source.get(key)
        if value is None or value == "":
            if required:
                self.errors[field] = REQUIRED
            return None
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            self.errors[field] = "Date has wrong format. Use YYYY-MM-DD."
            return None

    def boolean(self, source: dict, key: str) -> bool:
        value = source.get(key)
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes", "on")
        return bool(value)

    def line_items(self, *, required: bool) -> list[dict] | None:
        value = self.data.get("line_items")
        if value is None:
            if required:
                self.errors["line_items"] = REQUIRED
            return None
        if not isinstance(value, list):
            self.errors["line_items"] = "Expected a list of line items."
            return None
        lines = []
        for index, raw in enumerate(value):
            if not isinstance(raw, dict):
                self.errors[f"line_items[{index}]"] = "Expected an object."
                lines.append({})
            else:
                lines.append(raw)
        return lines

    # ------------------------------------------------------------- documents

    def _customer_header(self, clean: dict) -> None:
        data = self.data
        if self.partial:
            if "customer_id" in data and data.get("customer_id") not in (None, ""):
                clean['customer_id'] = self.string(data, "customer_id", "customer_id", max_length=64)
        else:
            clean['customer_id'] = self.string(data, "customer_id", "customer_id", required=True, max_length=64)
        clean['customer_name'] = self.string(data, "customer_name", "customer_name", max_length=200)
        clean['notes'] = self.string(data, "notes", "notes")

    def purchase_order(self) -> tuple[dict, list[dict] | None]:
        data = self.data
        header = {}
        self._customer_header(header)
        header['start_date'] = self.iso_date(data, "start_date", "start_date")
        header['expiration_date'] = self.iso_date(data, "expiration_date", "expiration_date")
        header['google_doc_url'] = self.string(data, "google_doc_url", "google_doc_url", max_length=500)
        header['hubspot_url'] = self.string(data, "hubspot_url", "hubspot_url", max_length=500)
        if header['start_date'] and header['expiration_date'] and header['expiration_date'] < header['start_date']:
            self.errors["expiration_date"] = "expiration_date cannot be before start_date."
        self._keep_sent(header, data)

        raw_lines = self.line_items(required=not self.partial)
        lines = None
        if raw_lines is not None:
            lines = [self.po_line(raw, f"line_items[{index}].") for index, raw in enumerate(raw_lines)]
        self.raise_if_invalid()
        return header, lines

    def po_line(self, raw: dict, prefix: str = "") -> dict:
        line = {
            'item_id': self.integer(raw, "item", f"{prefix}item", required=True),
            'quantity': self.integer(raw, "quantity", f"{prefix}quantity", required=True, min_value=1),
            'price_per_unit': self.money(raw, "price_per_unit", f"{prefix}price_per_unit", required=True),
            'notes': self.string(raw, "notes", f"{prefix}notes"),
        }
        line_id = self.integer(raw, "id", f"{prefix}id")
        if line_id:
            line['id'] = line_id
        return line

    def order(self) -> tuple[dict, list[dict] | None, bool]:
        header = {}
        self._customer_header(header)
        self._keep_sent(header, self.data)
        allocate_from_po = self.boolean(self.data, "allocate_from_po")

        raw_lines = self.line_items(required=not self.partial)
        lines = None
        if raw_lines is not None:
            lines = [self.order_line(raw, f"line_items[{index}].") for index, raw in enumerate(raw_lines)]
        self.raise_if_invalid()
        return header, lines, allocate_from_po

    def order_line(self, raw: dict, prefix: str = "") -> dict:
        line = {
            'item_id': self.integer(raw, "item", f"{prefix}item", required=True),
            'quantity': self.integer(raw, "quantity", f"{prefix}quantity", required=True, min_value=1),
            'price_per_unit': self.money(raw, "price_per_unit", f"{prefix}price_per_unit"),
            'po_line_item_id': self.integer(raw, "po_line_item", f"{prefix}po_line_item"),
            'notes': self.string(raw, "notes", f"{prefix}notes"),
            'override_reason': self.string(raw, "override_reason", f"{prefix}override_reason"),
        }
        line_id = self.integer(raw, "id", f"{prefix}id")
        if line_id:
            line['id'] = line_id
        return line

    def delivery(self) -> tuple[dict, list[dict] | None]:
        data = self.data
        header = {}
        self._customer_header(header)
        header['ship_date'] = self.iso_date(data, "ship_date", "ship_date", required=not self.partial)
        header['tracking_number'] = self.string(data, "tracking_number", "tracking_number", max_length=200)
        if self.partial and "ship_date" in data and header['ship_date'] is None and "ship_date" not in self.errors:
            self.errors["ship_date"] = "This field may not be null."
        self._keep_sent(header, data)

        raw_lines = self.line_items(required=not self.partial)
        lines = None
        if raw_lines is not None:
            lines = [self.delivery_line(raw, f"line_items[{index}].") for index, raw in enumerate(raw_lines)]
        self.raise_if_invalid()
        return header, lines

    def delivery_line(self, raw: dict, prefix: str = "") -> dict:
        line = {
            'item_id': self.integer(raw, "item", f"{prefix}item"),
            'serial_number': self.string(raw, "serial_number", f"{prefix}serial_number",
                                         required=not raw.get("id"), max_length=200),
            'price_per_unit': self.money(raw, "price_per_unit", f"{prefix}price_per_unit"),
            'order_line_item_id': self.integer(raw, "order_line_item", f"{prefix}order_line_item"),
            'notes': self.string(raw, "notes", f"{prefix}notes"),
        }
        line_id = self.integer(raw, "id", f"{prefix}id")
        if line_id:
            line['id'] = line_id
            if line['serial_number'] is None:
                line.pop('serial_number')
        if not line['item_id'] and not line['order_line_item_id'] and not line_id \
                and f"{prefix}item" not in self.errors:
            self.errors[f"{prefix}item"] = "item is required for units not linked to an order."
        return line

    def single_line(self, kind: str) -> dict:
        builders = {'purchase_order': self.po_line, 'order': self.order_line, 'delivery': self.delivery_line}
        line = builders[kind](self.data)
        self.raise_if_invalid()
        return line

    def _keep_sent(self, header: dict, source: dict) -> None:
        # PATCH only touches the fields the client actually sent
        if not self.partial:
            return
        for name in list(header):
            if name not in source:
                header.pop(name)

    # ------------------------------------------------------------- workflows

    def close(self) -> tuple[bool, str | None]:
        admin_override = self.boolean(self.data, "admin_override")
        override_reason = self.string(self.data, "override_reason", "override_reason")
        self.raise_if_invalid()
        return admin_override, override_reason

    def waive(self) -> tuple[int, int, str | None]:
        line_item_id = self.integer(self.data, "line_item_id", "line_item_id", required=True)
        quantity = self.integer(self.data, "quantity_to_waive", "quantity_to_waive", required=True)
        reason = self.string(self.data, "reason", "reason")
        self.raise_if_invalid()
        return line_item_id, quantity, reason
