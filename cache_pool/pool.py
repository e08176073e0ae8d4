"""
Cache pool backed by Valkey with stampede protection.

This module provides CachePool, which reads entries and evaluates their
expiration, serves stale values while another process recomputes them,
and writes items immediately or in deferred batches through pipelines.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from valkey.exceptions import ConnectionError, TimeoutError, ResponseError

from . import codec
from .client import ValkeyClient
from .config import PoolConfig, ValkeyConfig
from .deferred import DeferredQueue
from .item import CacheItem, validate_key
from .lock import LockManager

logger = logging.getLogger(__name__)


@dataclass
class PoolStats:
    """Cache pool operation statistics."""

    hit_count: int = 0
    miss_count: int = 0
    stale_count: int = 0
    lock_count: int = 0
    write_count: int = 0
    delete_count: int = 0

    start_time: datetime = field(default_factory=datetime.now)

    @property
    def hit_ratio(self) -> float:
        """Calculate cache hit ratio. Stale serves count as hits."""
        total_reads = self.hit_count + self.miss_count
        return self.hit_count / total_reads if total_reads > 0 else 0.0

    @property
    def uptime_seconds(self) -> float:
        return (datetime.now() - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "stale_count": self.stale_count,
            "lock_count": self.lock_count,
            "write_count": self.write_count,
            "delete_count": self.delete_count,
            "hit_ratio": self.hit_ratio,
            "uptime_seconds": self.uptime_seconds,
        }


class CachePool:
    """
    Item pool over a shared Valkey keyspace.

    Features:
    - Expiration stored with each entry and evaluated at read time
    - Stampede protection: the first reader of an expired entry takes a
      short non-blocking lock and recomputes; other readers get the stale
      value as a hit until the lock holder saves or the lock expires
    - Immediate and deferred writes, each flushed as one pipeline
    - Malformed or foreign data under a key is reported as a miss

    A pool instance is not thread-safe. Concurrency is expected across
    pools (processes) sharing the same store.
    """

    def __init__(
        self,
        client: Optional[ValkeyClient] = None,
        config: Optional[PoolConfig] = None,
        valkey_config: Optional[ValkeyConfig] = None,
    ):
        """
        Initialize cache pool.

        Args:
            client: ValkeyClient instance; created from valkey_config if omitted
            config: PoolConfig, defaults to environment-based config
            valkey_config: ValkeyConfig for creating a new client
        """
        self.valkey = client or ValkeyClient(valkey_config)
        self.config = config or PoolConfig.from_env()
        self.locks = LockManager(self.valkey, self.config.lock_ttl, self.config.lock_prefix)
        self.deferred = DeferredQueue()
        self.stats = PoolStats()

        logger.info(
            "CachePool initialized with stampede protection: %s", self.config.stampede_protection
        )

    @property
    def stampede_protection(self) -> bool:
        return self.config.stampede_protection

    def set_stampede_protection(self, enabled: bool) -> None:
        """Enable or disable stampede protection."""
        self.config.stampede_protection = bool(enabled)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _validate(self, key: Any) -> str:
        return validate_key(key, self.config.lock_prefix)

    def _is_fresh(self, entry: codec.Entry) -> bool:
        return entry.expiration is None or entry.expiration > self._now()

    def _build_item(self, key: str, raw: Optional[bytes]) -> CacheItem:
        entry = codec.decode(raw)

        if entry is None:
            self.stats.miss_count += 1
            return CacheItem(key, None, None, hit=False)

        hit = self._is_fresh(entry)

        # New keys are never lock protected, only stale ones
        if not hit and self.config.stampede_protection:
            if self.locks.lock(key):
                self.stats.lock_count += 1
            else:
                hit = True
                self.stats.stale_count += 1
                logger.debug(f"Serving stale value for {key}")

        if hit:
            self.stats.hit_count += 1
        else:
            self.stats.miss_count += 1

        return CacheItem(key, entry.value, entry.expiration, hit=hit)

    def get_item(self, key: str) -> CacheItem:
        """
        Fetch one item.

        With stampede protection on, a stale entry either makes this caller
        the lock holder (miss, caller must recompute and save) or, when
        another process holds the lock, is returned as a hit.

        Args:
            key: Cache key

        Returns:
            CacheItem: The item, hit or miss

        Raises:
            InvalidArgumentError: If the key is not legal
        """
        key = self._validate(key)
        return self._build_item(key, self.valkey.client.get(key))

    def get_items(self, keys: Iterable[str]) -> Dict[str, CacheItem]:
        """
        Fetch several items with a single MGET.

        Args:
            keys: Cache keys

        Returns:
            Dict[str, CacheItem]: Items keyed by cache key, in request order
        """
        unique_keys = list(dict.fromkeys(self._validate(key) for key in keys))
        if not unique_keys:
            return {}

        raw_values = self.valkey.client.mget(unique_keys)
        return {
            key: self._build_item(key, raw)
            for key, raw in zip(unique_keys, raw_values)
        }

    def has_item(self, key: str) -> bool:
        """Check for a fresh entry without taking any lock."""
        key = self._validate(key)
        entry = codec.decode(self.valkey.client.get(key))
        return entry is not None and self._is_fresh(entry)

    def clear(self) -> bool:
        """
        Flush the pool's whole database. Irreversible.

        Returns:
            bool: Whether the store reported success
        """
        result = bool(self.valkey.client.flushdb())
        if result:
            self.deferred.clear()
            self.locks.forget_all()
            logger.info("Cache pool cleared")
        else:
            logger.warning("Cache pool clear was not acknowledged by the store")
        return result

    def delete_item(self, key: str) -> bool:
        return self.delete_items([key])

    def delete_items(self, keys: Iterable[str]) -> bool:
        """
        Delete entries and release any locks held on them, in one pipeline.

        Pending deferred writes for these keys are dropped as well.

        Args:
            keys: Cache keys to delete

        Returns:
            bool: True once the batch has executed
        """
        keys = [self._validate(key) for key in keys]
        if not keys:
            return True

        pipe = self.valkey.client.pipeline(transaction=False)
        released = []
        for key in keys:
            pipe.delete(key)
            if self.locks.unlock(key, pipe):
                released.append(key)
        pipe.execute()
        self.locks.confirm(released)

        self.deferred.discard(keys)
        self.stats.delete_count += len(keys)
        return True

    def write(self, items: Iterable[CacheItem]) -> bool:
        """
        Store items and release their locks in one pipeline.

        Every key is validated and every value serialized before anything
        is sent, so a bad item fails the whole batch without store I/O.
        Locks are only forgotten once the batch has executed.

        Args:
            items: Items to write

        Returns:
            bool: True once the batch has executed

        Raises:
            InvalidArgumentError: If an item key is not legal
            EntryEncodeError: If a value cannot be serialized
        """
        encoded = [
            (self._validate(item.key), codec.encode(item.get_raw_value(), item.expiration))
            for item in items
        ]
        if not encoded:
            return True

        pipe = self.valkey.client.pipeline(transaction=False)
        released = []
        for key, payload in encoded:
            pipe.set(key, payload)
            if self.locks.unlock(key, pipe):
                released.append(key)
        pipe.execute()
        self.locks.confirm(released)

        self.stats.write_count += len(encoded)
        logger.debug(f"Wrote {len(encoded)} item(s)")
        return True

    def save(self, item: CacheItem) -> bool:
        return self.write([item])

    def save_deferred(self, item: CacheItem) -> bool:
        """Queue an item for the next commit. No store interaction."""
        self._validate(item.key)
        self.deferred.add(item)
        return True

    def commit(self) -> bool:
        """
        Write every deferred item as one batch.

        The queue is emptied only after the batch succeeds; on failure the
        error propagates and the items remain queued.
        """
        return self.deferred.flush(self.write)

    def close(self) -> None:
        """
        Release held locks best-effort and close the client.

        A store error while releasing is logged, not raised; the locks
        then expire through their TTL.
        """
        if len(self.deferred):
            logger.warning(f"Discarding {len(self.deferred)} uncommitted deferred item(s)")
            self.deferred.clear()
        try:
            if self.locks.held:
                self.locks.release_all()
        except (ConnectionError, TimeoutError, ResponseError) as e:
            logger.warning(f"Failed to release {len(self.locks.held)} lock(s) on close: {e}")
            self.locks.forget_all()
        finally:
            self.valkey.close()

    def __enter__(self) -> "CachePool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
