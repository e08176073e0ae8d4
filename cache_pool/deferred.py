"""
In-process buffer of items waiting to be written in one batch.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from .item import CacheItem

logger = logging.getLogger(__name__)


class DeferredQueue:
    """Pending items keyed by cache key; the last item queued for a key wins."""

    def __init__(self):
        self._items: Dict[str, CacheItem] = {}

    def add(self, item: CacheItem) -> None:
        self._items[item.key] = item

    def get(self, key: str) -> Optional[CacheItem]:
        return self._items.get(key)

    def discard(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._items.pop(key, None)

    def items(self) -> List[CacheItem]:
        return list(self._items.values())

    def clear(self) -> None:
        self._items.clear()

    def flush(self, writer: Callable[[List[CacheItem]], bool]) -> bool:
        """
        Hand every pending item to ``writer`` as one batch.

        The queue is cleared only once ``writer`` returns; if it raises, the
        items stay queued so the commit can be retried.

        Args:
            writer: Callable performing the batched write

        Returns:
            bool: The writer's result, or True when nothing was queued
        """
        if not self._items:
            return True

        pending = self.items()
        result = writer(pending)
        self._items.clear()
        logger.debug(f"Committed {len(pending)} deferred item(s)")
        return result

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items
