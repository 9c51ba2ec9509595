from __future__ import annotations

from flask import request
from flask_login import current_user

from fulfil.business.errors import PermissionDenied
from fulfil.business.ledger.idempotency import IdempotencyKeys


def current_actor_id() -> str | None:
    """ID of the calling user, or None for anonymous requests."""
    if current_user and current_user.is_authenticated:
        return current_user.id
    return None


def is_admin() -> bool:
    return bool(current_user and current_user.is_authenticated and current_user.is_admin)


def require_admin(action: str) -> str:
    """Return the admin actor's ID, raising PermissionDenied for anyone else."""
    if not is_admin():
        raise PermissionDenied(f"Only administrators can {action}")
    return current_user.id


def request_id() -> str | None:
    """Client-supplied request identity used for replay detection."""
    value = request.headers.get('Idempotency-Key') or request.headers.get('X-Request-Id')
    value = (value or '').strip()
    return value[:128] or None


def idempotency_keys() -> IdempotencyKeys:
    return IdempotencyKeys(request_id())
