"""
Data Models - Type definitions for the aggregation pipeline.

These dataclasses represent the items flowing from the sources to the
consumer, plus the raw records the editor host hands back.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class SourceTag(Enum):
    """Provenance of an item."""
    BUF = "buf"    # Open buffer
    MRU = "mru"    # Recently used files
    MRW = "mrw"    # Recently written files
    MRR = "mrr"    # Recently visited repositories
    MRD = "mrd"    # Recently visited directories
    REC = "rec"    # Recursive file walk

    @property
    def prefix(self) -> str:
        return f"[{self.value}] "

    @property
    def lists_directories(self) -> bool:
        """MRR and MRD entries point at directories, not files."""
        return self in _DIRECTORY_TAGS


_DIRECTORY_TAGS = {SourceTag.MRR, SourceTag.MRD}


@dataclass
class ActionData:
    """Filesystem action metadata consumed by the downstream file kind."""
    path: str
    is_directory: bool = False


@dataclass
class ItemHighlight:
    """Highlight span covering the provenance prefix."""
    name: str
    hl_group: str
    col: int
    width: int


@dataclass
class Item:
    """
    A single candidate result.

    `word` is the text the consumer filters on; `display` is only set
    when the provenance prefix is shown.
    """
    word: str
    source: SourceTag
    action: ActionData
    display: Optional[str] = None
    highlights: List[ItemHighlight] = field(default_factory=list)

    @property
    def dedup_key(self) -> Optional[str]:
        """Normalized action path, or None if the item has no path."""
        if not self.action.path:
            return None
        return normalize_path(self.action.path)

    def decorate(self) -> "Item":
        """Attach the provenance prefix and its highlight span."""
        prefix = self.source.prefix
        self.display = f"{prefix}{self.word}"
        self.highlights = [
            ItemHighlight(
                name=f"tri_source_{self.source.value}",
                hl_group=highlight_group(self.source),
                col=1,
                width=len(prefix),
            )
        ]
        return self


def highlight_group(tag: SourceTag) -> str:
    return f"TriSource_{tag.value}"


def make_item(
    word: str,
    path: str,
    tag: SourceTag,
    show_prefix: bool,
    is_directory: bool = False,
) -> Item:
    """Create an Item, decorated with its source prefix when requested."""
    item = Item(
        word=word,
        source=tag,
        action=ActionData(path=path, is_directory=is_directory),
    )
    if show_prefix:
        item.decorate()
    return item


_TRAILING_SEPARATORS = re.compile(r"/+$")


def normalize_path(path: str) -> str:
    """
    Normalize a path for dedup comparison.

    Only trailing separators are stripped; case folding is deliberately
    left out so the key is predictable on every platform.
    """
    return _TRAILING_SEPARATORS.sub("", path)


@dataclass
class BufInfo:
    """One buffer as reported by the editor host."""
    bufnr: int
    changed: bool
    lastused: int
    listed: bool
    name: str

    @classmethod
    def from_dict(cls, raw: Dict) -> "BufInfo":
        return cls(
            bufnr=int(raw["bufnr"]),
            changed=bool(raw.get("changed", False)),
            lastused=int(raw.get("lastused", 0)),
            listed=bool(raw.get("listed", True)),
            name=str(raw.get("name", "")),
        )


@dataclass
class BufInfoResult:
    """Snapshot of the editor's buffer list."""
    current_dir: str
    alternate_bufnr: int
    buffers: List[BufInfo]

    @classmethod
    def from_dict(cls, raw: Dict) -> "BufInfoResult":
        return cls(
            current_dir=str(raw["currentDir"]),
            alternate_bufnr=int(raw.get("alternateBufNr", -1)),
            buffers=[BufInfo.from_dict(b) for b in raw.get("buffers", [])],
        )


@dataclass
class GatherStats:
    """Statistics from one aggregation run."""
    buffer_items: int = 0
    mr_items: int = 0
    rec_items: int = 0
    deduplicated: int = 0
    batches: int = 0
    diagnostics: int = 0
    cancelled: bool = False
    duration_seconds: float = 0.0

    @property
    def items_delivered(self) -> int:
        return self.buffer_items + self.mr_items + self.rec_items

    def __str__(self) -> str:
        state = "cancelled" if self.cancelled else "complete"
        return (
            f"Gathered {self.items_delivered} items "
            f"({self.buffer_items} buffer, "
            f"{self.mr_items} mr, "
            f"{self.rec_items} rec, "
            f"{self.deduplicated} deduplicated) "
            f"in {self.batches} batches, "
            f"{self.diagnostics} diagnostics, {state} "
            f"in {self.duration_seconds:.2f}s"
        )
