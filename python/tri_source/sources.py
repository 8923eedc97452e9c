"""
Sources - Adapters for the buffer list and the MRU plugin.

Both adapters return a complete list of candidate items and raise a
SourceError subclass when their collaborator fails. Deduplication and
error recovery are the aggregator's job.
"""

import asyncio
import logging
import os
from typing import Any, List

from .cancellation import CancellationSignal
from .config import get_config, SourceConfig
from .errors import (
    MalformedResponseError,
    SourceError,
    SourceTimeoutError,
    SourceUnavailableError,
)
from .host import EditorHost
from .models import BufInfo, BufInfoResult, Item, SourceTag, make_item


logger = logging.getLogger(__name__)


class BufferSource:
    """
    Lists the editor's open buffers.

    Unlisted, unnamed and terminal buffers are left out. With "desc"
    ordering the most recently used buffer comes first and the current
    buffer is always last, so the picker opens on the buffer you were
    just in.
    """

    name = "buf"

    def __init__(self, host: EditorHost, config: SourceConfig | None = None):
        self.host = host
        self.config = config or get_config()

    async def gather(self, current_bufnr: int = -1) -> List[Item]:
        raw = await self.host.get_buffer_info()
        try:
            info = BufInfoResult.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedResponseError(self.name, f"bad buffer info: {e!r}") from e

        items: List[Item] = []
        for buf in self._sort(info.buffers, current_bufnr):
            if buf.name == "":
                continue

            buftype = await self.host.get_buffer_type(buf.bufnr)
            if isinstance(buftype, str) and buftype == "terminal":
                continue

            items.append(
                make_item(
                    self._word(buf, info, current_bufnr),
                    buf.name,
                    SourceTag.BUF,
                    self.config.show_source_prefix,
                )
            )

        logger.debug(f"Buffer source produced {len(items)} items")
        return items

    def _sort(self, buffers: List[BufInfo], current_bufnr: int) -> List[BufInfo]:
        listed = [b for b in buffers if b.listed]
        if self.config.buffer_orderby == "desc":
            return sorted(listed, key=lambda b: (b.bufnr == current_bufnr, -b.lastused))
        return sorted(listed, key=lambda b: b.lastused)

    @staticmethod
    def _word(buf: BufInfo, info: BufInfoResult, current_bufnr: int) -> str:
        """Format as `bufnr marks modified name`, e.g. ` 3 %# + src/a.py`."""
        marks = ("%" if buf.bufnr == current_bufnr else "") + (
            "#" if buf.bufnr == info.alternate_bufnr else ""
        )
        modified = "+" if buf.changed else " "

        try:
            rel = os.path.relpath(buf.name, info.current_dir)
        except ValueError:
            # Different drive on Windows
            rel = buf.name
        display_name = buf.name if rel.startswith("..") else rel

        return f"{buf.bufnr:>2} {marks:>2} {modified} {display_name}"


class MruSource:
    """
    Lists recently used paths from the `mr` plugin.

    The dispatch is raced against the configured deadline and the run's
    cancellation signal; whichever finishes first wins.
    """

    name = "mr"
    plugin = "mr"

    def __init__(
        self,
        host: EditorHost,
        config: SourceConfig | None = None,
        signal: CancellationSignal | None = None,
    ):
        self.host = host
        self.config = config or get_config()
        self.signal = signal or CancellationSignal()

    @property
    def tag(self) -> SourceTag:
        return SourceTag(self.config.mr_kind)

    async def gather(self) -> List[Item]:
        result = await self._dispatch_with_deadline(f"{self.config.mr_kind}:list")
        if result is None:
            return []

        paths = self._validate(result)
        tag = self.tag
        is_directory = tag.lists_directories
        items = [
            make_item(path, path, tag, self.config.show_source_prefix, is_directory)
            for path in paths
        ]
        logger.debug(f"MRU source ({tag.value}) produced {len(items)} items")
        return items

    async def _dispatch_with_deadline(self, method: str) -> Any:
        """
        Dispatch to the plugin with a deadline.

        Returns None if the run is cancelled while waiting.

        Raises:
            SourceTimeoutError: no answer within `mr_timeout_ms`
            SourceUnavailableError: the dispatch itself failed
        """
        timeout = self.config.mr_timeout
        request = asyncio.ensure_future(self.host.dispatch(self.plugin, method))
        cancelled = asyncio.ensure_future(self.signal.wait())
        try:
            done, _ = await asyncio.wait(
                {request, cancelled},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (request, cancelled):
                if not task.done():
                    task.cancel()
            await asyncio.gather(request, cancelled, return_exceptions=True)

        if request in done:
            try:
                return request.result()
            except SourceError:
                raise
            except Exception as e:
                raise SourceUnavailableError(self.name, f"dispatch failed: {e}") from e

        if cancelled in done:
            return None

        raise SourceTimeoutError(self.name, timeout)

    def _validate(self, result: Any) -> List[str]:
        if not isinstance(result, list) or not all(isinstance(p, str) for p in result):
            raise MalformedResponseError(
                self.name, f"expected a list of strings, got {type(result).__name__}"
            )
        return result
