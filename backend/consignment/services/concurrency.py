# Overview: Transaction helpers for ledger services: row locking and bounded retry on conflicts.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import TransactionConflict


# Concurrency-related failures: lock timeouts/deadlocks, optimistic version
# conflicts, and unique-key races (e.g. the same barcode submitted twice at once)
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id columns still turn a lost update into a
    StaleDataError, which run_in_transaction retries.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Any exception rolls the session back, so a failed operation never leaves
    pending writes behind. Concurrency failures are retried with exponential
    backoff; once the budget is spent they surface as TransactionConflict.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF_SECONDS", 0.1)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                break
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

    current_app.logger.warning(
        "Ledger transaction gave up after %s attempts: %s", attempts, last_exc
    )
    raise TransactionConflict(
        "Concurrent update detected; the operation was rolled back and may be retried"
    ) from last_exc


def run_in_transaction(func, **retry_kwargs):
    """Run func and commit as one unit of work, retrying on conflicts."""
    def _op():
        result = func()
        db.session.commit()
        return result
    return run_with_retry(_op, **retry_kwargs)
