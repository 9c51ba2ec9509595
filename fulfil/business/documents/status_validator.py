from __future__ import annotations

from fulfil.business.errors import InvalidTransition
from fulfil.data.documents.document_status import DocumentStatus


class DocumentStatusValidator:
    """
    Status transition rules shared by purchase orders, orders and deliveries.

    CLOSED is terminal; there is no reopen.
    """

    _NEXT = {
        DocumentStatus.OPEN: {DocumentStatus.CLOSED},
        DocumentStatus.CLOSED: set(),
    }

    @classmethod
    def can_transition(cls, current_status: DocumentStatus, new_status: DocumentStatus) -> bool:
        allowed = cls._NEXT.get(DocumentStatus(current_status))
        if allowed is None:
            return False
        return DocumentStatus(new_status) in allowed

    @classmethod
    def require_transition(cls, document, new_status: DocumentStatus) -> None:
        if not cls.can_transition(document.status, new_status):
            raise InvalidTransition(
                f"{document.DOCUMENT_TYPE.value} {document.id} cannot move from "
                f"{DocumentStatus(document.status).value} to {DocumentStatus(new_status).value}"
            )

    @staticmethod
    def require_open(document, action: str = "modified") -> None:
        """Raise InvalidTransition unless the document is still OPEN."""
        if document.status != DocumentStatus.OPEN:
            raise InvalidTransition(
                f"{document.DOCUMENT_TYPE.value} {document.id} is {DocumentStatus(document.status).value} "
                f"and cannot be {action}"
            )
