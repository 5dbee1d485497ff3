import logging
from contextlib import contextmanager
from typing import Iterable, Optional

from redis.exceptions import RedisError

from rentbook.core.config import settings
from rentbook.core.exceptions import ConflictError, StorageUnavailableError

logger = logging.getLogger(__name__)


def inventory_lock_key(business_id: int, item_key: str) -> str:
    return f"inventory_lock:{business_id}:{item_key}"


@contextmanager
def inventory_locks(redis_client, keys: Iterable[str], timeout: Optional[int] = None):
    """
    Hold a Redis lock on every key for the duration of the block.

    Used on top of optimistic locking when several API processes reserve
    stock at once. With no client the block runs unlocked.
    """
    if redis_client is None:
        yield
        return

    timeout = timeout or settings.LOCK_TIMEOUT_SECONDS
    locks_acquired = []
    try:
        for lock_key in sorted(set(keys)):
            try:
                acquired = redis_client.set(lock_key, "locked", nx=True, ex=timeout)
            except RedisError as e:
                raise StorageUnavailableError(f"Lock service unavailable: {e}") from e
            if not acquired:
                logger.info(f"Lock {lock_key} is held by another booking")
                raise ConflictError(
                    "Another booking is currently reserving this inventory. Please try again."
                )
            locks_acquired.append(lock_key)
        yield
    finally:
        for lock_key in locks_acquired:
            try:
                redis_client.delete(lock_key)
            except RedisError as e:
                logger.warning(f"Failed to release {lock_key}, it will expire on its own: {e}")
