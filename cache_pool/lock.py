"""
Non-blocking distributed locks for cache stampede protection.

A lock is a companion key (prefix + cache key) set with SET NX EX, so
acquisition and its expiry are a single atomic command. The TTL bounds how
long other processes serve stale data if the holder never unlocks.
"""

import logging
from typing import Any, FrozenSet, Iterable, Optional, Set

from .config import DEFAULT_LOCK_PREFIX, DEFAULT_LOCK_TTL

logger = logging.getLogger(__name__)

LOCK_SENTINEL = 1


class LockManager:
    """
    Acquires and releases per-key locks in Valkey.

    The set of held keys is a local hint used to decide whether an unlock
    is needed; the store's TTL is authoritative for the lock's lifetime.
    """

    def __init__(
        self,
        valkey_client: Any,
        ttl_seconds: int = DEFAULT_LOCK_TTL,
        prefix: str = DEFAULT_LOCK_PREFIX,
    ):
        """
        Initialize lock manager.

        Args:
            valkey_client: ValkeyClient (or compatible) exposing ``client``
            ttl_seconds: Lock time-to-live in seconds
            prefix: Prefix prepended to cache keys to form lock keys
        """
        self.valkey = valkey_client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix
        self._held: Set[str] = set()

    def lock_key(self, key: str) -> str:
        return self.prefix + key

    def lock(self, key: str) -> bool:
        """
        Try to acquire the lock for a cache key without waiting.

        Args:
            key: Cache key to lock

        Returns:
            True if this instance now holds the lock, False if another holds it
        """
        lock_key = self.lock_key(key)
        acquired = self.valkey.client.set(lock_key, LOCK_SENTINEL, nx=True, ex=self.ttl_seconds)

        if not acquired:
            logger.debug(f"Lock busy: {lock_key}")
            return False

        self._held.add(key)
        logger.debug(f"Lock acquired: {lock_key} (ttl: {self.ttl_seconds}s)")
        return True

    def unlock(self, key: str, pipeline: Optional[Any] = None) -> bool:
        """
        Release a lock previously acquired by this instance.

        Without a pipeline the delete is sent at once and the key is
        forgotten. With a pipeline the delete is only queued; the key stays
        held until ``confirm`` is called after the pipeline has executed,
        so a failed batch can be retried and still release the lock.

        Args:
            key: Cache key to unlock
            pipeline: Optional pipeline to queue the delete on instead of
                issuing a standalone command

        Returns:
            True if a delete was issued or queued, False if the key was not held
        """
        if key not in self._held:
            return False

        if pipeline is not None:
            pipeline.delete(self.lock_key(key))
            return True

        self.valkey.client.delete(self.lock_key(key))
        self.confirm([key])
        return True

    def confirm(self, keys: Iterable[str]) -> None:
        """Forget locks whose queued deletes have been executed."""
        for key in keys:
            self._held.discard(key)
            logger.debug(f"Lock released: {self.lock_key(key)}")

    def is_held(self, key: str) -> bool:
        return key in self._held

    @property
    def held(self) -> FrozenSet[str]:
        return frozenset(self._held)

    def forget_all(self) -> None:
        """Drop local lock records without touching the store."""
        self._held.clear()

    def release_all(self) -> int:
        """
        Release every held lock in one pipeline.

        Returns:
            Number of locks released
        """
        if not self._held:
            return 0

        pipe = self.valkey.client.pipeline(transaction=False)
        keys = [key for key in list(self._held) if self.unlock(key, pipe)]
        pipe.execute()
        self.confirm(keys)
        return len(keys)
