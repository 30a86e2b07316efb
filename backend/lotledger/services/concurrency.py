# Overview: Bounded retry around whole units of work on concurrency conflicts.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransactionConflictError
from ..repositories import SqlAlchemyUnitOfWork, is_contention_error, conflict_from

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE = 0.1


def run_with_retry(
    func,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
    sleep=time.sleep,
):
    """
    Execute func() and re-run it from scratch on concurrency conflicts.

    func must open its own unit of work so each attempt re-reads fresh state.
    Only TransactionConflictError (and raw StaleDataError / lock errors that
    escaped a unit of work) are retried; business errors propagate on the
    first attempt. Backoff is backoff_base * 2**attempt seconds.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(attempts):
        try:
            return func()
        except (StaleDataError, OperationalError) as exc:
            if not is_contention_error(exc):
                raise
            conflict = conflict_from(exc)
            conflict.__cause__ = exc
        except TransactionConflictError as exc:
            conflict = exc

        if attempt >= attempts - 1:
            logger.warning("Giving up after %d conflicting attempts", attempts)
            conflict.details.setdefault("attempts", attempts)
            raise conflict

        delay = backoff_base * (2 ** attempt)
        logger.warning(
            "Concurrency conflict on attempt %d/%d; retrying in %.3fs",
            attempt + 1, attempts, delay,
        )
        sleep(delay)


def default_uow_factory():
    return SqlAlchemyUnitOfWork()
