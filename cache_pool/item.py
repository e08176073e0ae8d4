"""
Cache item returned by the pool.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from .config import DEFAULT_LOCK_PREFIX, InvalidArgumentError

Expiration = Union[None, int, float, timedelta, datetime]


def validate_key(key: Any, lock_prefix: str = DEFAULT_LOCK_PREFIX) -> str:
    """
    Check that a key is legal for the pool.

    Raises:
        InvalidArgumentError: If the key is not a non-empty string, or would
            collide with the lock namespace
    """
    if not isinstance(key, str):
        raise InvalidArgumentError(f"Cache key must be a string, got {type(key).__name__}")
    if not key:
        raise InvalidArgumentError("Cache key must not be empty")
    if key.startswith(lock_prefix):
        raise InvalidArgumentError(f"Cache key must not start with {lock_prefix!r}: {key!r}")
    return key


def to_utc(when: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are local time."""
    return when.astimezone(timezone.utc)


class CacheItem:
    """
    A value read from (or about to be written to) the pool.

    ``get()`` honours the hit status; ``get_raw_value()`` does not and is
    what the pool serializes on save.
    """

    def __init__(
        self,
        key: str,
        value: Any = None,
        expiration: Optional[datetime] = None,
        hit: bool = False,
    ):
        self._key = key
        self._value = value
        self._expiration = expiration
        self._hit = hit

    @property
    def key(self) -> str:
        return self._key

    @property
    def expiration(self) -> Optional[datetime]:
        return self._expiration

    @property
    def is_hit(self) -> bool:
        return self._hit

    def get(self) -> Any:
        """Return the value if this item is a hit, otherwise None."""
        return self._value if self._hit else None

    def get_raw_value(self) -> Any:
        """Return the stored value regardless of hit status."""
        return self._value

    def set(self, value: Any, expiration: Expiration = None) -> "CacheItem":
        """
        Set the value, and the expiration when one is given.

        Args:
            value: JSON-serializable value
            expiration: Seconds or timedelta from now, or an absolute datetime

        Returns:
            CacheItem: self, for chaining
        """
        self._value = value
        if expiration is not None:
            if isinstance(expiration, datetime):
                self.expires_at(expiration)
            else:
                self.expires_after(expiration)
        return self

    def expires_at(self, when: Optional[datetime]) -> "CacheItem":
        if when is not None and not isinstance(when, datetime):
            raise InvalidArgumentError(f"Expiration must be a datetime or None, got {type(when).__name__}")
        self._expiration = to_utc(when) if when is not None else None
        return self

    def expires_after(self, ttl: Union[None, int, float, str, timedelta]) -> "CacheItem":
        """Expire ``ttl`` from now: seconds (numeric strings allowed) or a timedelta."""
        if ttl is None:
            self._expiration = None
            return self
        if isinstance(ttl, str):
            try:
                ttl = float(ttl)
            except ValueError as e:
                raise InvalidArgumentError(f"TTL string is not a number of seconds: {ttl!r}") from e
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float, timedelta)):
            raise InvalidArgumentError(f"TTL must be seconds or a timedelta, got {type(ttl).__name__}")
        if not isinstance(ttl, timedelta):
            ttl = timedelta(seconds=ttl)
        self._expiration = datetime.now(timezone.utc) + ttl
        return self

    def __repr__(self) -> str:
        return (
            f"CacheItem(key={self._key!r}, hit={self._hit}, "
            f"expiration={self._expiration.isoformat() if self._expiration else None})"
        )
