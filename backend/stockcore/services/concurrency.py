# Overview: Service-layer operations for concurrency; row locks, conflict translation, caller-side retry.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..exceptions import ConcurrencyConflict
from ..extensions import db


# Driver messages that mean "another transaction holds or changed this row"
_LOCK_FAILURE_MARKERS = (
    "deadlock",
    "database is locked",
    "could not serialize",
    "lock wait timeout",
    "could not obtain lock",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id counters still turn lost updates into StaleDataError.
    """
    return query.with_for_update()


def is_lock_failure(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _LOCK_FAILURE_MARKERS)


@contextmanager
def conflict_guard(entity_type: str, entity_id, *, duplicate_is_conflict: bool = False):
    """
    Run a unit of work so that any failure leaves nothing committed.

    - StaleDataError (version_id mismatch) and lock/deadlock OperationalErrors
      become ConcurrencyConflict.
    - IntegrityError becomes ConcurrencyConflict only when the block inserts
      rows another session may have inserted first (duplicate_is_conflict).
    - Everything else, domain errors included, is re-raised after rollback.
    """
    try:
        yield
    except StaleDataError as exc:
        db.session.rollback()
        current_app.logger.warning("Concurrent update on %s %s: %s", entity_type, entity_id, exc)
        raise ConcurrencyConflict(entity_type, entity_id) from exc
    except OperationalError as exc:
        db.session.rollback()
        if not is_lock_failure(exc):
            raise
        current_app.logger.warning("Lock failure on %s %s: %s", entity_type, entity_id, exc.orig)
        raise ConcurrencyConflict(entity_type, entity_id) from exc
    except IntegrityError as exc:
        db.session.rollback()
        if not duplicate_is_conflict:
            raise
        current_app.logger.warning("Concurrent insert on %s %s: %s", entity_type, entity_id, exc.orig)
        raise ConcurrencyConflict(entity_type, entity_id) from exc
    except Exception:
        db.session.rollback()
        raise


def finish(commit: bool) -> None:
    """Commit, or flush only so the caller can fold the work into its own transaction."""
    if commit:
        db.session.commit()
    else:
        db.session.flush()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Caller-side helper: re-invoke a whole stock/settlement operation on ConcurrencyConflict.

    The operation must re-read its state on every attempt (adjust_stock and
    settle_payment do). Nothing inside the core calls this: a conflict means
    nothing was committed, every other error is returned to the caller as-is.
    """
    for attempt in range(attempts):
        try:
            return func()
        except ConcurrencyConflict:
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
