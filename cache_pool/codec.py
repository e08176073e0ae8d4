"""
Entry codec for values stored by the cache pool.

An entry is stored as a JSON object holding exactly two fields: ``v`` (the
value) and ``t`` (the absolute expiration as a POSIX timestamp, or null).
Anything else found under a cache key is treated as "no entry".
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Union

from .config import EntryEncodeError

logger = logging.getLogger(__name__)

VALUE_FIELD = "v"
EXPIRATION_FIELD = "t"
_FIELDS = frozenset((VALUE_FIELD, EXPIRATION_FIELD))


@dataclass(frozen=True)
class Entry:
    """A decoded cache entry."""
    value: Any
    expiration: Optional[datetime]


def encode(value: Any, expiration: Optional[datetime]) -> bytes:
    """
    Pack a value and its expiration into bytes.

    Args:
        value: JSON-serializable payload
        expiration: Timezone-aware absolute expiration, or None for no expiration

    Returns:
        bytes: UTF-8 encoded JSON entry

    Raises:
        EntryEncodeError: If the value cannot be serialized
    """
    timestamp = expiration.timestamp() if expiration is not None else None
    try:
        payload = json.dumps(
            {VALUE_FIELD: value, EXPIRATION_FIELD: timestamp},
            separators=(",", ":"),
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        raise EntryEncodeError(f"Cannot serialize cache value: {e}") from e
    return payload.encode("utf-8")


def decode(raw: Optional[Union[bytes, str]]) -> Optional[Entry]:
    """
    Unpack bytes produced by ``encode``.

    Returns None for absent, empty, undecodable or foreign data.
    """
    if not raw:
        return None

    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
    except (UnicodeDecodeError, ValueError):
        logger.debug("Rejected cache entry: not valid JSON")
        return None

    # Make sure the data is coming from the cache pool
    if not isinstance(data, dict) or set(data) != _FIELDS:
        logger.debug("Rejected cache entry: unexpected shape")
        return None

    timestamp = data[EXPIRATION_FIELD]
    if timestamp is None:
        return Entry(data[VALUE_FIELD], None)

    # bool is an int subclass but never a valid timestamp
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        logger.debug("Rejected cache entry: bad expiration field")
        return None

    try:
        expiration = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        logger.debug("Rejected cache entry: expiration out of range")
        return None

    return Entry(data[VALUE_FIELD], expiration)
