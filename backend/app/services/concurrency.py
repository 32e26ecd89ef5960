# Overview: Transaction boundaries, row locking and retry for multi-step inventory work.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import InternalError, ServiceError, TransactionTimeoutError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (it serializes writers per
    database instead); PostgreSQL/MySQL honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    if attempts is None:
        attempts = current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 3)

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


def run_in_transaction(
    func,
    *,
    commit: bool = True,
    attempts: int | None = None,
    timeout_seconds: float | None = None,
):
    """
    Run func as one unit of work.

    commit=True: func runs in its own transaction; commit on success,
    rollback on any exception, retry on lock/stale errors, and roll back
    with TransactionTimeoutError once the deadline passes.

    commit=False: func runs inline in the caller's open transaction and the
    caller owns commit/rollback. Used to compose ledger, reservation and
    order writes into one atomic order creation.
    """
    if not commit:
        return func()

    if timeout_seconds is None:
        timeout_seconds = current_app.config.get("TRANSACTION_TIMEOUT_SECONDS", 10)
    deadline = time.monotonic() + timeout_seconds if timeout_seconds else None

    def _op():
        if deadline is not None and time.monotonic() > deadline:
            raise TransactionTimeoutError()
        try:
            result = func()
            if deadline is not None and time.monotonic() > deadline:
                raise TransactionTimeoutError()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError):
            raise
        except ServiceError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Backing store failure")
            raise InternalError() from exc
        except Exception:
            db.session.rollback()
            raise

    try:
        return run_with_retry(_op, attempts=attempts)
    except (OperationalError, StaleDataError) as exc:
        current_app.logger.exception("Transaction failed after retries")
        raise InternalError() from exc


def dialect_insert():
    """
    INSERT construct with ON CONFLICT support for the bound dialect, or None.

    Used for create-if-missing rows keyed by a unique constraint, so concurrent
    creators collapse onto one row instead of failing the whole transaction.
    """
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None
