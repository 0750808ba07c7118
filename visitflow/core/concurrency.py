"""
Transaction helpers for optimistic concurrency.
Operations are re-run from scratch on a version conflict or a lost insert race so they re-read and re-validate.
"""
from typing import Callable, Optional, TypeVar
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from visitflow.core.config import settings
from visitflow.core.errors import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Stale version tokens, and unique keys claimed by a concurrent insert
RETRYABLE_ERRORS = (StaleDataError, IntegrityError)


def run_with_retry(
    db: Session,
    operation: Callable[[], T],
    description: str = "operation",
    max_attempts: Optional[int] = None,
) -> T:
    """
    Run `operation` and commit, retrying on version-token and unique-key conflicts.

    Args:
        db: Database session the operation writes through
        operation: Callable that loads, validates and mutates; must not commit itself
        description: Label used in log lines
        max_attempts: Override for settings.concurrency_max_retries

    Returns:
        Whatever `operation` returns from the attempt that committed

    Raises:
        ConcurrencyConflictError: When every attempt hit a stale row or a taken key
    """
    attempts = max_attempts or settings.concurrency_max_retries
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except RETRYABLE_ERRORS as e:
            db.rollback()
            logger.warning(f"Concurrency conflict on {description} (attempt {attempt}/{attempts}): {e}")
        except Exception:
            db.rollback()
            raise

    raise ConcurrencyConflictError(f"{description} failed after {attempts} attempts due to concurrent updates")
