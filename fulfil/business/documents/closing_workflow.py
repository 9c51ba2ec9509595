"""
Closing Workflow

OPEN -> CLOSED for purchase orders, orders and deliveries. Purchase orders and
orders may only close once every line item has nothing left to fulfil, unless
an admin overrides with a reason. Deliveries carry no remaining quantity and
close on status alone.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from fulfil import db
from fulfil.business.documents.document_context import context_for
from fulfil.business.documents.status_validator import DocumentStatusValidator
from fulfil.business.errors import (
    InvalidTransition,
    OverrideReasonRequired,
    PermissionDenied,
    UnfulfilledLineItems,
)
from fulfil.business.ledger.ledger_store import LedgerStore
from fulfil.data.core.user_created_base import utcnow
from fulfil.data.documents.document_closure import DocumentClosure
from fulfil.data.documents.document_status import DocumentStatus, DocumentType
from fulfil.logger import get_logger

logger = get_logger("fulfil.business.documents.closing")


class ClosingWorkflow:

    def __init__(self, ledger: LedgerStore | None = None):
        self.ledger = ledger or LedgerStore()

    def unfulfilled_line_items(self, document_type, document) -> list[dict]:
        """Line items that still have remaining quantity, as plain dicts."""
        document_type = DocumentType(document_type)
        if document_type == DocumentType.DELIVERY:
            return []

        lines = list(document.line_items)
        line_type = lines[0].LEDGER_LINE_ITEM_TYPE if lines else None
        entries = self.ledger.entries_for(line_type, [line.id for line in lines]) if lines else {}

        unfulfilled = []
        for line in lines:
            entry = entries.get(line.id)
            remaining = entry.remaining_quantity if entry else line.ledger_capacity
            if remaining > 0:
                unfulfilled.append({
                    'line_item_id': line.id,
                    'item_id': line.item_id,
                    'item_name': line.item.name if line.item else None,
                    'original_quantity': line.ledger_capacity,
                    'remaining_quantity': remaining,
                })
        return unfulfilled

    def close(self, document_type, document_id: int, admin_override: bool = False,
              override_reason: str | None = None, *, actor_id: str | None = None,
              request_id: str | None = None, override_allowed: bool = True):
        """
        Close a document.

        Args:
            document_type: DocumentType of the document
            document_id: ID of the document
            admin_override: Close even though line items still have remaining quantity
            override_reason: Required (non-empty) when the override is actually needed
            actor_id: User closing the document
            request_id: Request identity; a retry with the same id is a no-op
            override_allowed: Whether the caller may use the admin override

        Returns:
            The closed document

        Raises:
            NotFound: unknown document
            InvalidTransition: the document is already CLOSED (by another request)
            UnfulfilledLineItems: remaining quantity and no override
            OverrideReasonRequired: override requested without a reason
            PermissionDenied: the override is needed but the caller may not use it
        """
        document_type = DocumentType(document_type)
        context = context_for(document_type, document_id)
        document = context.document

        if document.status == DocumentStatus.CLOSED:
            closure = DocumentClosure.query.filter_by(
                document_type=document_type.value, document_id=document.id
            ).first()
            if request_id and closure is not None and closure.request_id == request_id:
                logger.info(f"Replayed close of {document_type.value} {document.id} [{request_id}]")
                return document
        DocumentStatusValidator.require_transition(document, DocumentStatus.CLOSED)

        unfulfilled = self.unfulfilled_line_items(document_type, document)
        override_used = False
        reason = (override_reason or "").strip() or None
        if unfulfilled:
            if not admin_override:
                logger.info(
                    f"Close of {document_type.value} {document.id} blocked: "
                    f"{len(unfulfilled)} line item(s) unfulfilled"
                )
                raise UnfulfilledLineItems(
                    f"Cannot close {document_type.value} with {len(unfulfilled)} unfulfilled line item(s)",
                    line_items=unfulfilled,
                )
            if not override_allowed:
                raise PermissionDenied("Only administrators can override a close with unfulfilled line items")
            if reason is None:
                raise OverrideReasonRequired()
            override_used = True

        now = utcnow()
        document.status = DocumentStatus.CLOSED
        document.closed_at = now
        document.closed_by_user_id = actor_id
        document.stamp(actor_id)
        db.session.add(DocumentClosure(
            document_type=document_type.value,
            document_id=document.id,
            closed_at=now,
            closed_by_user_id=actor_id,
            admin_override=override_used,
            override_reason=reason if override_used else None,
            unfulfilled_line_items=unfulfilled,
            request_id=request_id,
        ))
        try:
            db.session.flush()
        except IntegrityError as e:
            raise InvalidTransition(f"{document_type.value} {document.id} was closed by another request") from e

        if override_used:
            logger.warning(
                f"{document_type.value} {document.id} closed with admin override by {actor_id}: "
                f"{len(unfulfilled)} line item(s) unfulfilled; reason: {reason!r}"
            )
        else:
            logger.info(f"{document_type.value} {document.id} closed by {actor_id}")
        return document
