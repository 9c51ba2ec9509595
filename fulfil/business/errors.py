"""
Typed errors raised by the fulfillment engine.

Every error carries a machine-readable ``code`` and the HTTP status the API
boundary maps it to. Callers catch by type; the presentation layer turns any
FulfilError into a JSON body with ``error``/``detail``/``code`` and, where the
error concerns specific request fields, one key per field
(``line_items[2].serial_number``).

    FulfilError
    +-- ValidationFailed
    +-- InvalidQuantity
    +-- InsufficientRemaining
    +-- NoCapacity
    +-- InvalidReference
    +-- DuplicateSerialNumber
    +-- NotFound
    +-- UnfulfilledLineItems
    +-- OverrideReasonRequired
    +-- InvalidTransition
    +-- HasDependents
    +-- IdempotencyConflict
    +-- PermissionDenied
"""
from __future__ import annotations


class FulfilError(Exception):
    code = "FULFIL_ERROR"
    http_status = 400

    def __init__(self, message: str, *, field: str | None = None,
                 field_errors: dict[str, str] | None = None):
        super().__init__(message)
        self.message = message
        self.field_errors = dict(field_errors or {})
        if field:
            self.field_errors.setdefault(field, message)

    def at_field(self, field: str) -> "FulfilError":
        """Attach the request field this error concerns; returns self for re-raising."""
        self.field_errors.setdefault(field, self.message)
        return self

    def extra_payload(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "detail": self.message, "code": self.code}
        payload.update(self.field_errors)
        payload.update(self.extra_payload())
        return payload


class ValidationFailed(FulfilError):
    code = "VALIDATION_FAILED"

    def __init__(self, field_errors: dict[str, str], message: str = "Invalid request data"):
        super().__init__(message, field_errors=field_errors)


class InvalidQuantity(FulfilError):
    code = "INVALID_QUANTITY"


class InsufficientRemaining(FulfilError):
    code = "INSUFFICIENT_REMAINING"

    def __init__(self, message: str, *, requested: int, remaining: int, field: str | None = None):
        super().__init__(message, field=field)
        self.requested = requested
        self.remaining = remaining


class NoCapacity(FulfilError):
    code = "NO_CAPACITY"

    def __init__(self, message: str, *, item_id: int, requested: int, available: int,
                 field: str | None = None):
        super().__init__(message, field=field)
        self.item_id = item_id
        self.requested = requested
        self.available = available


class InvalidReference(FulfilError):
    code = "INVALID_REFERENCE"


class DuplicateSerialNumber(FulfilError):
    code = "DUPLICATE_SERIAL_NUMBER"


class NotFound(FulfilError):
    code = "NOT_FOUND"
    http_status = 404


class UnfulfilledLineItems(FulfilError):
    code = "UNFULFILLED_LINE_ITEMS"
    http_status = 409

    def __init__(self, message: str, line_items: list[dict]):
        super().__init__(message)
        self.line_items = line_items
        self.can_override = True

    def extra_payload(self) -> dict:
        return {"can_override": self.can_override, "line_items": self.line_items}


class OverrideReasonRequired(FulfilError):
    code = "OVERRIDE_REASON_REQUIRED"

    def __init__(self, message: str = "override_reason is required when admin_override is set"):
        super().__init__(message, field="override_reason")


class InvalidTransition(FulfilError):
    code = "INVALID_TRANSITION"
    http_status = 409


class HasDependents(FulfilError):
    code = "HAS_DEPENDENTS"
    http_status = 409


class IdempotencyConflict(FulfilError):
    code = "IDEMPOTENCY_CONFLICT"
    http_status = 409


class PermissionDenied(FulfilError):
    code = "PERMISSION_DENIED"
    http_status = 403
