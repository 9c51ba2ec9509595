from fulfil.data.ledger.ledger_entry import LedgerEntry, LedgerKind, LineItemType
from fulfil.data.ledger.ledger_operation import LedgerOperation
from fulfil.data.ledger.quantity_ledger import QuantityLedgerMixin

__all__ = ['LedgerEntry', 'LedgerKind', 'LineItemType', 'LedgerOperation', 'QuantityLedgerMixin']
