# Overview: Retry helpers and atomic conditional counters for contended columns.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locks) and StaleDataError
    (optimistic locking conflicts on Order.version_id).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def conditional_decrement(model, row_id: int, column: str, amount: int) -> bool:
    """
    Atomically subtract `amount` from `column` only if the row holds at least
    that much.

        UPDATE <table> SET <column> = <column> - :amount
        WHERE id = :row_id AND <column> >= :amount

    Returns False when no row matched (missing row or insufficient value).
    Does not commit; the caller owns the transaction.
    """
    col = getattr(model, column)
    result = db.session.execute(
        update(model)
        .where(model.id == row_id, col >= amount)
        .values({column: col - amount})
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def increment(model, row_id: int, column: str, amount: int) -> bool:
    """Atomic `column = column + amount`. Does not commit."""
    col = getattr(model, column)
    result = db.session.execute(
        update(model)
        .where(model.id == row_id)
        .values({column: col + amount})
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
