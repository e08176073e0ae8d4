"""
Cache pool over Valkey with stampede protection.

Items carry their own expiration, writes are pipelined and may be deferred
into a single batch, and expired entries can be guarded by short
non-blocking distributed locks so that only one process recomputes them.
"""

from .config import (
    PoolConfig,
    ValkeyConfig,
    CachePoolError,
    InvalidArgumentError,
    EntryEncodeError,
    ValkeyConnectionError,
    ValkeyConfigurationError,
)
from .client import ValkeyClient
from .codec import Entry, encode, decode
from .item import CacheItem
from .lock import LockManager
from .deferred import DeferredQueue
from .pool import CachePool, PoolStats

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "PoolConfig",
    "ValkeyConfig",

    # Errors
    "CachePoolError",
    "InvalidArgumentError",
    "EntryEncodeError",
    "ValkeyConnectionError",
    "ValkeyConfigurationError",

    # Client
    "ValkeyClient",

    # Pool
    "CachePool",
    "CacheItem",
    "PoolStats",
    "LockManager",
    "DeferredQueue",

    # Codec
    "Entry",
    "encode",
    "decode",
]
