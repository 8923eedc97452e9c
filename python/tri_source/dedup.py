"""
Dedup Registry - Per-run set of normalized paths shared by all sources.

Sources are fed through the registry in priority order, so the first
writer of a key is always the highest-priority source that produced it.
"""

import logging
from typing import List, Set

from .models import Item, normalize_path


logger = logging.getLogger(__name__)


class DedupRegistry:
    """
    First-occurrence filter keyed on normalized action paths.

    When disabled, every key is kept and nothing is recorded, so later
    sources may list a path again under their own tag.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._seen: Set[str] = set()
        self.dropped = 0

    def should_keep(self, path: str) -> bool:
        """Return True and record the key on first sight, False afterwards."""
        if not self.enabled:
            return True

        return self._record(normalize_path(path))

    def _record(self, key: str) -> bool:
        if key in self._seen:
            self.dropped += 1
            return False
        self._seen.add(key)
        return True

    def filter(self, items: List[Item]) -> List[Item]:
        """Keep items whose key is new; items without a path always pass."""
        if not self.enabled:
            return items

        kept = [
            item for item in items
            if (key := item.dedup_key) is None or self._record(key)
        ]
        if len(kept) != len(items):
            logger.debug(f"Dropped {len(items) - len(kept)} duplicate items")
        return kept

    def __contains__(self, path: str) -> bool:
        return normalize_path(path) in self._seen

    def __len__(self) -> int:
        return len(self._seen)
