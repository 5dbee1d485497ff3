import asyncio
import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.orm import Session

from rentbook.core.config import settings
from rentbook.core.exceptions import ConflictError, StorageUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_atomic(
    db: Session,
    operation: Callable[[Session], T],
    label: str = "operation",
    max_retries: Optional[int] = None,
    backoff: Optional[float] = None,
) -> T:
    """
    Run ``operation(db)`` as a single all-or-nothing transaction.

    The operation does its reads and writes on the session without
    committing. A ConflictError raised from inside it (a versioned UPDATE
    that matched no row) rolls everything back and re-runs the operation
    from a fresh read, up to ``max_retries`` attempts. Connectivity faults
    are rolled back and surfaced as StorageUnavailableError without retry.
    """
    max_retries = max_retries or settings.RESERVATION_MAX_RETRIES
    backoff = settings.RESERVATION_RETRY_BACKOFF if backoff is None else backoff

    for attempt in range(max_retries):
        try:
            result = operation(db)
            db.commit()
            return result
        except ConflictError as e:
            db.rollback()
            if attempt == max_retries - 1:
                logger.error(f"Giving up on {label} after {max_retries} attempts: {e}")
                raise ConflictError(
                    f"Unable to complete {label} after {max_retries} attempts: {e}"
                ) from e
            logger.warning(f"Concurrency conflict during {label} on attempt {attempt + 1}, retrying...")
            await asyncio.sleep(backoff * (attempt + 1))
        except (OperationalError, DisconnectionError) as e:
            db.rollback()
            logger.error(f"Storage error during {label}: {e}")
            raise StorageUnavailableError(f"Storage unavailable during {label}") from e
        except Exception:
            db.rollback()
            raise

    raise ConflictError(f"Unable to complete {label}")


def commit_or_raise(db: Session, label: str = "operation") -> None:
    """Commit a single-step write, translating connectivity faults"""
    try:
        db.commit()
    except (OperationalError, DisconnectionError) as e:
        db.rollback()
        logger.error(f"Storage error during {label}: {e}")
        raise StorageUnavailableError(f"Storage unavailable during {label}") from e
    except Exception:
        db.rollback()
        raise
