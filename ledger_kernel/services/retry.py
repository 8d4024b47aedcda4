"""
run_with_retry -- repeat a whole transaction after a transient failure.

Each attempt opens a fresh ``session_scope``: a lock timeout or deadlock
rolls back the failed attempt completely, so running the operation again
cannot double-post.  Domain errors are never retried.
"""

import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.db.engine import session_scope
from ledger_kernel.exceptions import TransientDatabaseError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")


def run_with_retry(
    session_factory: sessionmaker[Session] | None,
    operation: Callable[[Session], T],
    attempts: int = 3,
    backoff: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation(session)`` in its own transaction, retrying only
    ``TransientDatabaseError``.

    ``backoff`` doubles after every failed attempt.  The last transient
    error is re-raised once ``attempts`` are used up.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    delay = backoff
    for attempt in range(1, attempts + 1):
        try:
            with session_scope(session_factory) as session:
                return operation(session)
        except TransientDatabaseError as exc:
            if attempt == attempts:
                logger.error(
                    "retry_exhausted",
                    extra={"attempts": attempts, "reason": exc.reason},
                )
                raise
            logger.warning(
                "transient_failure_retrying",
                extra={"attempt": attempt, "reason": exc.reason, "delay": delay},
            )
            sleep(delay)
            delay *= 2
    raise AssertionError("unreachable")
