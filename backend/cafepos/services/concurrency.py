# Overview: Transaction, locking and retry helpers shared by every mutating service.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite, writers are serialized by BEGIN IMMEDIATE instead.
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
                raise
            current_app.logger.warning("Retrying after concurrency failure (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def begin_immediate() -> None:
    """
    Take the SQLite write lock up front.

    Skipped when the connection already holds an open transaction, or on
    other dialects where row locks do the job.
    """
    if db.engine.dialect.name != "sqlite":
        return
    conn = db.session.connection()
    dbapi_conn = conn.connection.dbapi_connection
    if not getattr(dbapi_conn, "in_transaction", False):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run ``func`` as one unit of work.

    Commits when ``func`` returns, rolls back on any exception, and retries
    the whole unit on lock/stale-version failures.
    """
    def _op():
        try:
            begin_immediate()
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError):
            raise
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
