"""
Transactional scope for sale operations.

One call of `operation` runs inside one database transaction; the scope
either commits as a whole or is rolled back as a whole. Retryable failures
(store timeouts/locks, ticket number races) roll back and run the operation
again with the same input, a bounded number of times.
"""
import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from stockpos.exceptions import StockPosError, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def run_in_transaction(
    session,
    operation: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_base: float = 0.05,
    label: str = 'operation',
    on_retry: Optional[Callable[[StockPosError], None]] = None,
) -> T:
    """
    Execute `operation` and commit, retrying on concurrency-related failures.

    Args:
        session: SQLAlchemy session owning the transaction
        operation: callable doing all reads/writes of the scope
        attempts: total number of tries (>= 1)
        backoff_base: seconds to sleep before the 2nd try, doubled after each retry
        label: name used in logs
        on_retry: called with the retryable error before each new attempt

    Returns:
        Whatever `operation` returned, after a successful commit.

    Raises:
        StockPosError: validation/business errors immediately; retryable
        errors (TransientStoreError, TicketConflictError) once attempts are
        exhausted. Any other exception is re-raised after rollback.
    """
    attempts = max(1, attempts)
    last_error: Optional[StockPosError] = None

    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            session.commit()
            return result
        except StockPosError as e:
            session.rollback()
            if not e.retryable:
                raise
            last_error = e
        except OperationalError as e:
            # Lock timeout, statement timeout, deadlock, dropped connection
            session.rollback()
            last_error = TransientStoreError(payload={'detail': str(e.orig)})
            last_error.__cause__ = e
        except DBAPIError as e:
            session.rollback()
            if not e.connection_invalidated:
                raise
            last_error = TransientStoreError(payload={'detail': 'connection invalidated'})
            last_error.__cause__ = e
        except Exception:
            session.rollback()
            raise

        if attempt < attempts:
            logger.warning(
                f"[TX] {label}: attempt {attempt}/{attempts} rolled back "
                f"({last_error.kind}: {last_error.message}); retrying"
            )
            if on_retry:
                on_retry(last_error)
            time.sleep(backoff_base * (2 ** (attempt - 1)))

    logger.error(f"[TX] {label}: giving up after {attempts} attempts ({last_error.kind})")
    raise last_error
