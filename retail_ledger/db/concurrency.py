import logging
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from retail_ledger.core.config import settings
from retail_ledger.core.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CONFLICT_MARKERS = ("database is locked", "deadlock", "could not serialize", "lock timeout")


def _is_write_conflict(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _CONFLICT_MARKERS)


def lock_for_update(query):
    """
    Apply row-level locking for ledger mutations.

    Rows already in the identity map are overwritten with the freshly read
    state. SQLite ignores SELECT ... FOR UPDATE; there the version column on
    every mutable row still turns a lost race into a StaleDataError at flush
    time.
    """
    return query.with_for_update().execution_options(populate_existing=True)


def run_with_retry(
    db: Session,
    operation: Callable[[], T],
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
) -> T:
    """
    Run one read-validate-write-commit unit, retrying on concurrent writes.

    The operation must start from fresh state on every attempt: the session
    is rolled back (expiring everything loaded) before each retry. Typed
    ledger errors raised by the operation are not retried.
    """
    attempts = attempts or settings.conflict_retry_attempts
    backoff_base = settings.conflict_retry_backoff_seconds if backoff_base is None else backoff_base
    for attempt in range(attempts):
        try:
            return operation()
        except (StaleDataError, OperationalError) as exc:
            db.rollback()
            if not _is_write_conflict(exc):
                raise
            if attempt >= attempts - 1:
                logger.warning("giving up after %d attempts: %s", attempts, exc)
                raise ConcurrencyConflict(
                    "The record was modified by another request, retry with fresh state"
                ) from exc
            logger.warning("concurrent write detected, retrying (attempt %d/%d)", attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.rollback()
            raise
    raise ConcurrencyConflict()
