from fulfil.business.ledger.idempotency import IdempotencyKeys, generate_idempotency_key
from fulfil.business.ledger.ledger_store import LedgerStore

__all__ = ['IdempotencyKeys', 'generate_idempotency_key', 'LedgerStore']
