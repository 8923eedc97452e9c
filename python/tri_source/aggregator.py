"""
Aggregator - Main entry point for gathering items.

Runs the three sources strictly one after another:
- Buffers: awaited in full, deduplicated, delivered as one batch
- MRU: awaited in full, deduplicated, delivered as one batch
- Rec: streamed from the walker through the chunk emitter, each batch
  deduplicated as it arrives

Every source writes to the same dedup registry in that order, so the
item kept for a path always comes from the highest-priority source.
"""

import asyncio
import logging
import os
import sys
import time
from contextlib import aclosing
from typing import AsyncGenerator, List, Optional

from .cancellation import CancellationSignal
from .config import get_config, SourceConfig, MR_KINDS
from .dedup import DedupRegistry
from .emitter import ChunkEmitter
from .errors import Diagnostic, ErrorAction, WalkError, handle_error
from .host import EditorHost, StaticHost
from .models import GatherStats, Item
from .sources import BufferSource, MruSource
from .walker import Walker


logger = logging.getLogger(__name__)


class Aggregator:
    """
    One gather run over buffers, MRU and the recursive walk.

    An Aggregator owns its cancellation signal, dedup registry and
    diagnostics; create a fresh one per run.
    """

    def __init__(
        self,
        host: EditorHost,
        config: Optional[SourceConfig] = None,
        signal: Optional[CancellationSignal] = None,
    ):
        self.config = config or get_config()
        self.host = host
        self.signal = signal or CancellationSignal()
        self.registry = DedupRegistry(self.config.dedup)
        self.diagnostics: List[Diagnostic] = []
        self.stats = GatherStats()

        self._buffers = BufferSource(host, self.config)
        self._mr = MruSource(host, self.config, self.signal)
        self._walker = Walker(self.config, self.signal)

    def cancel(self, reason: Optional[str] = None) -> None:
        """Stop the run. Batches already delivered stay delivered."""
        self.signal.abort(reason)

    async def gather(
        self,
        root: Optional[str] = None,
        current_bufnr: int = -1,
    ) -> AsyncGenerator[List[Item], None]:
        """
        Yield batches of items in source priority order.

        Closing the generator early counts as a cancellation.

        Args:
            root: Directory to walk (default: current working directory)
            current_bufnr: The editor's current buffer, sorted last
        """
        start_time = time.monotonic()
        finished = False
        logger.info(f"Starting gather (root={root or os.getcwd()})")

        try:
            if self.config.enable_buffer and not self.signal.aborted:
                batch = await self._gather_list(self._buffers, current_bufnr)
                if batch:
                    self.stats.buffer_items += len(batch)
                    self.stats.batches += 1
                    yield batch

            if self.config.enable_mr and not self.signal.aborted:
                batch = await self._gather_list(self._mr)
                if batch:
                    self.stats.mr_items += len(batch)
                    self.stats.batches += 1
                    yield batch

            if self.config.enable_file_rec and not self.signal.aborted:
                async with aclosing(self._gather_rec(root or os.getcwd())) as batches:
                    async for batch in batches:
                        self.stats.rec_items += len(batch)
                        self.stats.batches += 1
                        yield batch

            finished = True
        finally:
            if not finished:
                self.signal.abort("gather stopped early")
            self._walker.close()

            self.stats.deduplicated = self.registry.dropped
            self.stats.diagnostics = len(self.diagnostics)
            self.stats.cancelled = self.signal.aborted and not any(
                d.fatal for d in self.diagnostics
            )
            self.stats.duration_seconds = time.monotonic() - start_time
            logger.info(f"Gather finished: {self.stats}")

    async def _gather_list(self, source, *args) -> List[Item]:
        """Run a non-streaming source; its failure never ends the run."""
        try:
            items = await source.gather(*args)
        except Exception as e:
            handle_error(e, context=source.name)
            self.diagnostics.append(Diagnostic.from_error(source.name, e, ErrorAction.SKIP))
            return []

        if self.signal.aborted:
            return []
        return self.registry.filter(items)

    async def _gather_rec(self, root: str) -> AsyncGenerator[List[Item], None]:
        """Stream the walk through the emitter, deduplicating each emission."""
        root = os.path.abspath(os.path.expanduser(root))
        emitter = ChunkEmitter(self.config.chunk_size, self.config.chunk_growth)

        try:
            async with aclosing(self._walker.walk(root)) as batches:
                async for chunk in batches:
                    emitted = emitter.push(chunk)
                    if emitted and (batch := self._finish_rec(emitted)):
                        yield batch

            if not self.signal.aborted:
                emitted = emitter.flush()
                if emitted and (batch := self._finish_rec(emitted)):
                    yield batch
        except WalkError as e:
            action = handle_error(e, e.path, context="rec")
            self.diagnostics.append(Diagnostic.from_error("rec", e, action))
            self.signal.abort(f"walk failed: {e}")

    def _finish_rec(self, batch: List[Item]) -> List[Item]:
        kept = self.registry.filter(batch)
        if self.config.show_source_prefix:
            for item in kept:
                item.decorate()
        return kept

    def stream(self, root: Optional[str] = None, current_bufnr: int = -1) -> "ItemStream":
        """Push-style channel over gather() with bounded buffering."""
        return ItemStream(self, root, current_bufnr)


_END = object()


class ItemStream:
    """
    Bounded channel between a gather run and its consumer.

    The producer blocks once `stream_buffer` batches are waiting, so a
    slow consumer slows the walk down. `cancel()` is the early-close
    signal and aborts the run.

    Usage:
        async with aggregator.stream(root) as stream:
            async for batch in stream:
                render(batch)
        print(stream.diagnostics)
    """

    def __init__(self, aggregator: Aggregator, root: Optional[str], current_bufnr: int):
        self._aggregator = aggregator
        self._root = root
        self._current_bufnr = current_bufnr
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=aggregator.config.stream_buffer)
        self._task: Optional[asyncio.Task] = None
        self._error: Optional[BaseException] = None
        self._closed = False

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return self._aggregator.diagnostics

    @property
    def stats(self) -> GatherStats:
        return self._aggregator.stats

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.ensure_future(self._produce())

    async def _produce(self) -> None:
        try:
            async with aclosing(
                self._aggregator.gather(self._root, self._current_bufnr)
            ) as batches:
                async for batch in batches:
                    await self._queue.put(batch)
        except Exception as e:
            logger.error(f"Gather failed: {e}")
            self._error = e
        await self._queue.put(_END)

    async def cancel(self, reason: Optional[str] = None) -> None:
        """Abort the run and stop the producer."""
        self._aggregator.cancel(reason or "stream cancelled")
        self._closed = True
        if self._task and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)

    def __aiter__(self) -> "ItemStream":
        self.start()
        return self

    async def __anext__(self) -> List[Item]:
        if self._closed:
            raise StopAsyncIteration
        self.start()

        batch = await self._queue.get()
        if batch is _END:
            self._closed = True
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        return batch

    async def __aenter__(self) -> "ItemStream":
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        if not self._closed:
            await self.cancel("consumer closed the stream")
        elif self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)


async def gather_items(
    host: EditorHost,
    root: Optional[str] = None,
    config: Optional[SourceConfig] = None,
    current_bufnr: int = -1,
) -> List[List[Item]]:
    """
    Convenience function to collect every batch of one run.

    Usage:
        batches = await gather_items(StaticHost(), "~/src/project")
        for batch in batches:
            print(len(batch))
    """
    aggregator = Aggregator(host, config)
    batches: List[List[Item]] = []
    async with aclosing(aggregator.gather(root, current_bufnr)) as stream:
        async for batch in stream:
            batches.append(batch)
    return batches


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Gather MRU and recursive file items")
    parser.add_argument("root", nargs="?", default=".", help="Directory to walk")
    parser.add_argument("--mru-file", help="File with one recently used path per line")
    parser.add_argument("--mr-kind", choices=MR_KINDS, default=None, help="MRU list kind")
    parser.add_argument("--no-mr", action="store_true", help="Disable the MRU source")
    parser.add_argument("--no-rec", action="store_true", help="Disable the recursive walk")
    parser.add_argument("--ignore", action="append", default=None, help="Directory name to skip")
    parser.add_argument("--chunk-size", type=int, default=None, help="Base batch size")
    parser.add_argument("--expand-symlinks", action="store_true", help="Follow symbolic links")
    parser.add_argument("--no-dedup", action="store_true", help="Keep duplicates across sources")
    parser.add_argument("--no-prefix", action="store_true", help="Hide source tags")
    parser.add_argument("--limit", type=int, default=0, help="Stop after this many items")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s"
    )

    base = get_config()
    config = SourceConfig(
        enable_buffer=False,
        enable_mr=base.enable_mr and not args.no_mr,
        enable_file_rec=base.enable_file_rec and not args.no_rec,
        ignored_directories=set(args.ignore) if args.ignore else base.ignored_directories,
        chunk_size=args.chunk_size or base.chunk_size,
        chunk_growth=base.chunk_growth,
        expand_symbolic_link=args.expand_symlinks or base.expand_symbolic_link,
        mr_kind=args.mr_kind or base.mr_kind,
        mr_timeout_ms=base.mr_timeout_ms,
        buffer_orderby=base.buffer_orderby,
        dedup=base.dedup and not args.no_dedup,
        show_source_prefix=base.show_source_prefix and not args.no_prefix,
    )

    mr_lists = None
    if args.mru_file:
        with open(args.mru_file, encoding="utf-8") as f:
            mr_lists = {config.mr_kind: [line.rstrip("\n") for line in f if line.strip()]}
    host = StaticHost(current_dir=os.getcwd(), mr_lists=mr_lists)
    if mr_lists is None:
        config.enable_mr = False

    async def _main():
        aggregator = Aggregator(host, config)
        printed = 0
        async with aggregator.stream(args.root) as stream:
            async for batch in stream:
                for item in batch:
                    print(item.display or item.word)
                printed += len(batch)
                if args.limit and printed >= args.limit:
                    await stream.cancel(f"limit of {args.limit} items reached")

        for diagnostic in aggregator.diagnostics:
            print(diagnostic, file=sys.stderr)
        print(f"\n{aggregator.stats}", file=sys.stderr)
        return 1 if any(d.fatal for d in aggregator.diagnostics) else 0

    try:
        return asyncio.run(_main())
    except KeyboardInterrupt:
        print("\nStopped.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
