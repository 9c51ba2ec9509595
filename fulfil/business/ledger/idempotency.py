"""
Idempotency keys for ledger mutations.

A key names one reservation or release: the line item it touches, the
operation, and the request that issued it plus a per-request step number.
Replaying the same request produces the same keys in the same order, so a
retried call finds its earlier operations already journaled instead of
counting them twice.
"""
from __future__ import annotations

from uuid import uuid4


def generate_idempotency_key(line_item_type: str, line_item_id: int, operation: str, request_id: str) -> str:
    """
    Format: line_item_type:line_item_id:operation:request_id

    Example:
        >>> generate_idempotency_key("po_line_item", 7, "allocate", "c0ffee.1")
        'po_line_item:7:allocate:c0ffee.1'
    """
    return f"{line_item_type}:{line_item_id}:{operation}:{request_id}"


def parse_idempotency_key(key: str) -> tuple[str, int, str, str]:
    parts = key.split(":", 3)
    if len(parts) != 4:
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], int(parts[1]), parts[2], parts[3]


class IdempotencyKeys:
    """Monotonic key source scoped to one request."""

    def __init__(self, request_id: str | None = None):
        self.request_id = request_id or uuid4().hex
        self._step = 0

    def next(self, line_item_type, line_item_id: int, operation: str) -> str:
        self._step += 1
        type_value = getattr(line_item_type, "value", line_item_type)
        return generate_idempotency_key(type_value, line_item_id, operation, f"{self.request_id}.{self._step}")
