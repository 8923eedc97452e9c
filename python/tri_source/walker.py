"""
Walker - Cancellable recursive file walk that streams bounded batches.

Traversal is depth-first over an explicit stack of directory frames, so
cancellation is checked between every directory entry and the depth of
the tree never touches the Python call stack. Directory listings, stat
calls and symlink resolution run on a worker thread; everything else
happens on the event loop.
"""

import asyncio
import logging
import os
import stat
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import AsyncGenerator, Iterable, Iterator, List, Optional, Tuple

from .cancellation import CancellationSignal
from .config import get_config, SourceConfig
from .errors import handle_error, WalkError
from .models import Item, SourceTag, make_item


logger = logging.getLogger(__name__)


@dataclass
class WalkState:
    """Traversal state of one open directory."""
    path: str
    real_path: str
    entries: Iterator[os.DirEntry]
    chunk: List[Item] = field(default_factory=list)


def _read_dir(path: str, follow_symlinks: bool = False) -> List[os.DirEntry]:
    with os.scandir(path) as it:
        entries = list(it)

    # Warm each entry's stat cache off the event loop. A failure here is
    # not cached, so _read_stat hits and reports it again.
    for entry in entries:
        try:
            entry.stat(follow_symlinks=False)
            if follow_symlinks and entry.is_symlink():
                entry.stat(follow_symlinks=True)
        except OSError:
            continue
    return entries


def _resolve(path: str) -> str:
    return os.path.realpath(path)


def _is_ancestor_or_self(ancestor: str, path: str) -> bool:
    if path == ancestor:
        return True
    return path.startswith(ancestor.rstrip(os.sep) + os.sep)


class Walker:
    """
    Recursive directory walker.

    Yields lists of REC items, each at most `chunk_size` long. A
    directory's leftover items are yielded once all of its entries,
    subdirectories included, have been handled.
    """

    def __init__(
        self,
        config: SourceConfig | None = None,
        signal: CancellationSignal | None = None,
    ):
        self.config = config or get_config()
        self.signal = signal or CancellationSignal()
        self.denied_dirs = 0
        self._executor: ThreadPoolExecutor | None = None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            # One reader keeps directory reads in traversal order
            self._executor = ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix="walker"
            )
        return self._executor

    async def walk(
        self,
        root: str,
        chunk_size: int | None = None,
    ) -> AsyncGenerator[List[Item], None]:
        """
        Walk `root` and yield batches of file items.

        Directories are traversed but never emitted. Symlinked
        directories are entered only when `expand_symbolic_link` is set
        and the link does not lead back into one of its own ancestors.

        Raises:
            WalkError: a directory could not be read for any reason other
                than missing permission.
        """
        root = os.path.abspath(root)
        chunk_size = chunk_size or self.config.chunk_size

        state = await self._open(root, await self._run(_resolve, root))
        if state is None:
            return

        stack: List[WalkState] = [state]
        try:
            while stack:
                if self.signal.aborted:
                    logger.debug(f"Walk of {root} stopped: {self.signal.reason}")
                    return

                state = stack[-1]
                entry = next(state.entries, None)

                if entry is None:
                    stack.pop()
                    if state.chunk:
                        yield state.chunk
                    continue

                abspath = os.path.join(state.path, entry.name)
                info = self._read_stat(entry)

                if info is None:
                    continue
                is_symlink, is_dir = info

                if not is_dir:
                    state.chunk.append(
                        make_item(
                            os.path.relpath(abspath, root),
                            abspath,
                            SourceTag.REC,
                            show_prefix=False,
                        )
                    )
                    if len(state.chunk) >= chunk_size:
                        batch, state.chunk = state.chunk, []
                        yield batch
                    else:
                        # Entry boundary: let the consumer run
                        await asyncio.sleep(0)
                    continue

                if entry.name in self.config.ignored_directories:
                    logger.debug(f"Skipping ignored directory: {abspath}")
                    continue

                if is_symlink:
                    real_path = await self._run(_resolve, abspath)
                    if self._is_loop(abspath, real_path, stack):
                        logger.debug(f"Skipping looped symlink: {abspath} -> {real_path}")
                        continue
                else:
                    real_path = os.path.join(state.real_path, entry.name)

                child = await self._open(abspath, real_path)
                if child is not None:
                    stack.append(child)
        finally:
            stack.clear()

    async def _run(self, fn, *args):
        """Run a blocking filesystem call on the reader thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._get_executor(), fn, *args)

    async def _open(self, path: str, real_path: str) -> Optional[WalkState]:
        """
        List a directory.

        Returns None when permission is denied (the subtree is treated as
        empty); any other failure is fatal for the whole walk.
        """
        try:
            entries = await self._run(
                _read_dir, path, self.config.expand_symbolic_link
            )
        except PermissionError as e:
            handle_error(e, path, "walk")
            self.denied_dirs += 1
            return None
        except OSError as e:
            raise WalkError(path, e) from e

        return WalkState(path=path, real_path=real_path, entries=iter(entries))

    def _read_stat(self, entry: os.DirEntry) -> Optional[Tuple[bool, bool]]:
        """
        Return (is_symlink, is_dir) for an entry, or None if it vanished.

        With symlink expansion on, the target's type is reported but the
        entry stays tagged as a symlink.
        """
        try:
            st = entry.stat(follow_symlinks=False)
            is_symlink = stat.S_ISLNK(st.st_mode)
            if is_symlink and self.config.expand_symbolic_link:
                st = entry.stat(follow_symlinks=True)
        except OSError as e:
            logger.debug(f"Cannot stat {entry.path}: {e}")
            return None

        return is_symlink, stat.S_ISDIR(st.st_mode)

    @staticmethod
    def _is_loop(abspath: str, real_path: str, stack: List[WalkState]) -> bool:
        """
        A symlinked directory loops if its target contains the link or
        any directory currently open on the stack.

        Comparing real paths catches cycles whose links live outside the
        root as well as links back to a plain ancestor.
        """
        if _is_ancestor_or_self(real_path, abspath):
            return True
        return any(_is_ancestor_or_self(real_path, s.real_path) for s in stack)

    def close(self):
        """Shutdown the directory reader thread."""
        if self._executor:
            self._executor.shutdown(wait=False)
            self._executor = None


async def walk_files(
    root: str,
    ignored_directories: Iterable[str],
    signal: CancellationSignal,
    chunk_size: int,
    expand_symbolic_link: bool = False,
) -> AsyncGenerator[List[Item], None]:
    """
    Convenience function to walk one root with explicit parameters.

    Usage:
        signal = CancellationSignal()
        async for batch in walk_files(".", {".git"}, signal, 100):
            print(len(batch))
    """
    config = replace(
        get_config(),
        ignored_directories=set(ignored_directories),
        chunk_size=chunk_size,
        expand_symbolic_link=expand_symbolic_link,
    )
    walker = Walker(config, signal)
    try:
        async for batch in walker.walk(root):
            yield batch
    finally:
        walker.close()
