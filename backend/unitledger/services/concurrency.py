# Overview: Service-layer helpers for transactional safety; row locks, accumulator updates and retries.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# OperationalError: deadlocks / "database is locked"
# StaleDataError: optimistic version conflict (another transaction moved the row)
# IntegrityError: unique race (serial, consignment number) - re-evaluated on retry
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def increment(instance, **deltas: int) -> None:
    """
    Apply accumulator updates (col = col + delta) in a single UPDATE,
    then reload those columns on the instance.

    Never read-modify-write a cached value: concurrent transactions each
    add their own delta to whatever is committed.
    """
    model = type(instance)
    values = {name: getattr(model, name) + delta for name, delta in deltas.items() if delta}
    if not values:
        return
    stmt = (
        update(model)
        .where(model.id == instance.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)
    db.session.refresh(instance, attribute_names=list(values))


def _default_attempts() -> int:
    try:
        return int(current_app.config.get("RETRY_ATTEMPTS", 3))
    except RuntimeError:
        return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and IntegrityError (unique races).
    Any other exception rolls the session back and propagates, so a
    rejected operation never leaves partial writes behind.
    """
    attempts = attempts or _default_attempts()
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc

