# Overview: Service-layer helpers for transactions, locking and retries.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class StorageError(RuntimeError):
    """
    Transaction or connection failure.

    Raised after the session has been rolled back, so nothing from the
    failed unit of work was kept. Callers may retry the whole operation.
    """


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise StorageError(str(exc)) from exc
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise StorageError(str(last_exc)) from last_exc


def run_in_transaction(func):
    """
    Run func and commit once; roll everything back on any failure.

    Database errors surface as StorageError, domain errors propagate as-is.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(str(exc)) from exc
    except Exception:
        db.session.rollback()
        raise
