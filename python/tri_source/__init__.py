"""
tri_source - One picker source over buffers, MRU files and a file walk.

Modules:
    - config: Centralized configuration
    - models: Items, source tags and host records
    - errors: Error policies and exceptions
    - cancellation: Shared abort signal
    - dedup: Cross-source path deduplication
    - walker: Cancellable recursive file walk
    - emitter: Growing batch sizes for the walk
    - host: Editor boundary (buffers, plugin dispatch, commands)
    - sources: Buffer and MRU adapters
    - highlights: Source tag colors
    - aggregator: Main entry point

Flow:
    Buffers → MRU → Walk (→ Emitter), all through one DedupRegistry

Usage:
    from tri_source import Aggregator, StaticHost

    aggregator = Aggregator(StaticHost())
    async for batch in aggregator.gather("~/src/project"):
        render(batch)
"""

from .aggregator import Aggregator, ItemStream, gather_items
from .cancellation import CancellationSignal
from .config import SourceConfig
from .host import EditorHost, StaticHost
from .models import Item, SourceTag

__all__ = [
    "Aggregator",
    "ItemStream",
    "gather_items",
    "CancellationSignal",
    "SourceConfig",
    "EditorHost",
    "StaticHost",
    "Item",
    "SourceTag",
]
