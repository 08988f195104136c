"""
Page Deduplicator

Merges concurrently fetched pages into one ordered collection, keeping the
first occurrence of each identifier. Overlapping pages and upstream drift
during a long reseed make duplicates normal, so they are dropped silently.
"""

import logging
from typing import Callable, Generic, Hashable, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PageDeduplicator(Generic[T]):
    """First-seen-wins merge keyed by a stable identifier. One instance per run."""

    def __init__(self, key: Callable[[T], Hashable]) -> None:
        self.key = key
        self._seen: set[Hashable] = set()
        self._items: list[T] = []

    def add_page(self, items: Iterable[T]) -> int:
        """Append unseen items in arrival order and return how many were new."""
        added = 0
        dropped = 0
        for item in items:
            ident = self.key(item)
            if ident in self._seen:
                dropped += 1
                continue
            self._seen.add(ident)
            self._items.append(item)
            added += 1

        if dropped:
            logger.debug("Dropped %d duplicate item(s)", dropped)
        return added

    @property
    def items(self) -> list[T]:
        return list(self._items)

    def __contains__(self, ident: Hashable) -> bool:
        return ident in self._seen

    def __len__(self) -> int:
        return len(self._items)
