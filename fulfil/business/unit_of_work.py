from __future__ import annotations

from contextlib import contextmanager

from fulfil import db
from fulfil.business.errors import FulfilError
from fulfil.logger import get_logger

logger = get_logger("fulfil.business.unit_of_work")


@contextmanager
def unit_of_work(description: str):
    """
    Commit the session when the block succeeds; roll back and re-raise when it fails.

    Usage:
        with unit_of_work("create purchase order"):
            po, created = PurchaseOrderFactory.create(...)
    """
    try:
        yield db.session
        db.session.commit()
    except FulfilError as e:
        db.session.rollback()
        logger.info(f"{description} rejected ({e.code}): {e.message}")
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"{description} failed: {e}", exc_info=True)
        raise
