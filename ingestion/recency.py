"""
ingestion/recency.py - Bounded recently-seen sets.
"""

from collections import OrderedDict
from typing import Generic, Hashable, Iterator, TypeVar

K = TypeVar("K", bound=Hashable)


class RecentSet(Generic[K]):
    """
    Insertion-ordered set that evicts its oldest entry past maxlen.

    Used to suppress duplicate notifications only; ordering never depends on it.
    """

    def __init__(self, maxlen: int):
        if maxlen < 1:
            raise ValueError("maxlen must be >= 1")
        self.maxlen = maxlen
        self._items: OrderedDict[K, None] = OrderedDict()

    def add(self, item: K) -> bool:
        """Insert item. Returns False if it was already present."""
        if item in self._items:
            return False
        self._items[item] = None
        if len(self._items) > self.maxlen:
            self._items.popitem(last=False)
        return True

    def __contains__(self, item: object) -> bool:
        return item in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[K]:
        return iter(self._items)
