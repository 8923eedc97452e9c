"""
Chunk Emitter - Re-batches walker output for the consumer.

The first emission goes out as soon as `base_size` items are buffered so
the picker shows results quickly. After that the threshold is raised to
`base_size * growth`, trading latency for fewer, larger messages.
"""

from typing import List, Optional

from .models import Item


class ChunkEmitter:
    """Buffers items across walker batches until the current threshold is met."""

    def __init__(self, base_size: int, growth: int = 10):
        if base_size < 1:
            raise ValueError(f"base_size must be positive, got {base_size}")
        self.base_size = base_size
        self.growth = growth
        self.threshold = base_size
        self.emitted = 0
        self._pending: List[Item] = []

    def push(self, items: List[Item]) -> Optional[List[Item]]:
        """Add items; return a batch to emit once the threshold is reached."""
        self._pending.extend(items)
        if len(self._pending) < self.threshold:
            return None
        return self._emit()

    def flush(self) -> Optional[List[Item]]:
        """Return whatever is still buffered, regardless of the threshold."""
        if not self._pending:
            return None
        return self._emit()

    def _emit(self) -> List[Item]:
        batch, self._pending = self._pending, []
        self.emitted += 1
        self.threshold = self.base_size * self.growth
        return batch

    @property
    def pending(self) -> int:
        return len(self._pending)
