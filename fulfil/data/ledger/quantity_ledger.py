from fulfil.data.ledger.ledger_entry import LedgerEntry


class QuantityLedgerMixin:
    """
    Capability shared by line item records that own a ledger entry.

    Subclasses set LEDGER_LINE_ITEM_TYPE and implement ``ledger_capacity``.
    """

    LEDGER_LINE_ITEM_TYPE = None

    @property
    def ledger_capacity(self) -> int:
        raise NotImplementedError

    @property
    def ledger(self) -> LedgerEntry | None:
        if self.id is None:
            return None
        return (
            LedgerEntry.query
            .filter_by(line_item_type=self.LEDGER_LINE_ITEM_TYPE.value, line_item_id=self.id)
            .populate_existing()
            .one_or_none()
        )

    @property
    def remaining_quantity(self) -> int:
        entry = self.ledger
        return entry.remaining_quantity if entry is not None else self.ledger_capacity
