"""
Walker Tests - Verify recursive walk behavior.

Tests:
- File discovery and batch sizing
- Ignored directories
- Symlink expansion and loop detection
- Permission and fatal read failures
- Cancellation
"""

import errno
import os
import threading
from dataclasses import replace
from pathlib import Path

import pytest

import tri_source.walker as walker_module
from tri_source.cancellation import CancellationSignal
from tri_source.errors import WalkError
from tri_source.models import SourceTag
from tri_source.walker import Walker, walk_files


requires_symlinks = pytest.mark.skipif(
    not hasattr(os, "symlink") or os.name == "nt",
    reason="symbolic links not available",
)


async def collect(walker: Walker, root: Path) -> list:
    batches = []
    async for batch in walker.walk(str(root)):
        batches.append(batch)
    return batches


def paths_of(batches) -> list[str]:
    return [item.action.path for batch in batches for item in batch]


class TestWalker:
    """Tests for basic discovery."""

    @pytest.mark.asyncio
    async def test_finds_files(self, sample_tree, temp_dir, test_config):
        """Walker finds top-level and nested files."""
        batches = await collect(Walker(test_config), temp_dir)
        paths = set(paths_of(batches))

        assert str(sample_tree["a"]) in paths
        assert str(sample_tree["b"]) in paths
        assert str(sample_tree["main"]) in paths
        assert str(sample_tree["util"]) in paths

    @pytest.mark.asyncio
    async def test_skips_ignored_directories(self, sample_tree, temp_dir, test_config):
        """Files under an ignored directory never appear."""
        batches = await collect(Walker(test_config), temp_dir)
        assert str(sample_tree["git"]) not in paths_of(batches)

    @pytest.mark.asyncio
    async def test_does_not_emit_directories(self, sample_tree, temp_dir, test_config):
        """Directories are traversed but not emitted."""
        batches = await collect(Walker(test_config), temp_dir)
        paths = paths_of(batches)

        assert str(temp_dir / "src") not in paths
        assert str(temp_dir / "src" / "lib") not in paths
        assert all(not item.action.is_directory for batch in batches for item in batch)

    @pytest.mark.asyncio
    async def test_items_are_relative_rec_items(self, sample_tree, temp_dir, test_config):
        """Items carry the root-relative word and the absolute path."""
        batches = await collect(Walker(test_config), temp_dir)
        util = next(
            item for batch in batches for item in batch
            if item.action.path == str(sample_tree["util"])
        )

        assert util.word == os.path.join("src", "lib", "util.py")
        assert util.source is SourceTag.REC
        assert util.display is None

    @pytest.mark.asyncio
    async def test_each_file_once(self, sample_tree, temp_dir, test_config):
        """Every file is emitted exactly once."""
        batches = await collect(Walker(test_config), temp_dir)
        paths = paths_of(batches)
        assert len(paths) == len(set(paths)) == 4

    @pytest.mark.asyncio
    async def test_handles_empty_directory(self, temp_dir, test_config):
        """An empty root yields no batches."""
        assert await collect(Walker(test_config), temp_dir) == []

    @pytest.mark.asyncio
    async def test_ignored_scenario_single_item_batches(self, temp_dir, test_config):
        """With chunk size 1, a.txt and b.txt arrive as two single-item batches."""
        (temp_dir / "a.txt").write_text("a")
        (temp_dir / "b.txt").write_text("b")
        (temp_dir / ".git").mkdir()
        (temp_dir / ".git" / "c.txt").write_text("c")

        config = replace(test_config, chunk_size=1, ignored_directories={".git"})
        batches = await collect(Walker(config), temp_dir)

        assert [len(b) for b in batches] == [1, 1]
        assert sorted(item.word for b in batches for item in b) == ["a.txt", "b.txt"]


class TestWalkerBatching:
    """Tests for batch boundaries."""

    @pytest.mark.asyncio
    async def test_batches_never_exceed_chunk_size(self, temp_dir, test_config):
        """No batch is larger than the configured chunk size."""
        for i in range(7):
            (temp_dir / f"file_{i}.txt").write_text(str(i))

        batches = await collect(Walker(test_config), temp_dir)

        assert [len(b) for b in batches] == [2, 2, 2, 1]

    @pytest.mark.asyncio
    async def test_leftover_emitted_per_directory(self, temp_dir, test_config):
        """A directory's leftover batch never mixes with another directory's files."""
        sub = temp_dir / "sub"
        sub.mkdir()
        (sub / "one.txt").write_text("1")
        (temp_dir / "top.txt").write_text("t")

        batches = await collect(Walker(test_config), temp_dir)

        for batch in batches:
            parents = {os.path.dirname(item.action.path) for item in batch}
            assert len(parents) == 1
        assert sorted(paths_of(batches)) == sorted([str(sub / "one.txt"), str(temp_dir / "top.txt")])

    @pytest.mark.asyncio
    async def test_subdirectory_finishes_before_parent_leftover(self, temp_dir, test_config):
        """Depth-first: the deepest directory's files arrive before the root's leftover."""
        config = replace(test_config, chunk_size=10)
        deep = temp_dir / "d1" / "d2"
        deep.mkdir(parents=True)
        (deep / "deep.txt").write_text("d")
        (temp_dir / "root.txt").write_text("r")

        batches = await collect(Walker(config), temp_dir)

        assert paths_of(batches)[-1] == str(temp_dir / "root.txt")
        assert paths_of(batches)[0] == str(deep / "deep.txt")


class TestWalkerSymlinks:
    """Tests for symbolic link handling."""

    @requires_symlinks
    @pytest.mark.asyncio
    async def test_unexpanded_symlink_is_a_file_item(self, temp_dir, test_config):
        """Without expansion a link to a directory is listed, not entered."""
        target = temp_dir / "target"
        target.mkdir()
        (target / "inner.txt").write_text("i")
        os.symlink(target, temp_dir / "link")

        batches = await collect(Walker(test_config), temp_dir)
        paths = paths_of(batches)

        assert str(temp_dir / "link") in paths
        assert str(temp_dir / "link" / "inner.txt") not in paths

    @requires_symlinks
    @pytest.mark.asyncio
    async def test_expanded_symlink_is_entered(self, temp_dir, test_config):
        """With expansion a link to a sibling directory is walked."""
        target = temp_dir / "target"
        target.mkdir()
        (target / "inner.txt").write_text("i")
        os.symlink(target, temp_dir / "link")

        config = replace(test_config, expand_symbolic_link=True)
        paths = paths_of(await collect(Walker(config), temp_dir))

        assert str(temp_dir / "link" / "inner.txt") in paths
        assert str(target / "inner.txt") in paths
        assert str(temp_dir / "link") not in paths

    @requires_symlinks
    @pytest.mark.asyncio
    async def test_symlink_to_ancestor_terminates(self, temp_dir, test_config):
        """A link back to an ancestor is skipped and the walk ends."""
        sub = temp_dir / "sub"
        sub.mkdir()
        (sub / "file.txt").write_text("f")
        os.symlink(temp_dir, sub / "loop")
        os.symlink(sub, sub / "self")

        config = replace(test_config, expand_symbolic_link=True)
        paths = paths_of(await collect(Walker(config), temp_dir))

        assert paths == [str(sub / "file.txt")]

    @requires_symlinks
    @pytest.mark.asyncio
    async def test_mutual_symlinks_terminate(self, temp_dir, test_config):
        """Two directories linking to each other do not recurse forever."""
        a = temp_dir / "a"
        b = temp_dir / "b"
        a.mkdir()
        b.mkdir()
        (a / "a.txt").write_text("a")
        (b / "b.txt").write_text("b")
        os.symlink(b, a / "to_b")
        os.symlink(a, b / "to_a")

        config = replace(test_config, expand_symbolic_link=True)
        paths = paths_of(await collect(Walker(config), temp_dir))

        assert len(paths) == len(set(paths))
        assert str(a / "a.txt") in paths
        assert str(b / "b.txt") in paths

    @requires_symlinks
    @pytest.mark.asyncio
    async def test_dangling_symlink_skipped_when_expanding(self, temp_dir, test_config):
        """A link whose target vanished is skipped silently."""
        os.symlink(temp_dir / "missing", temp_dir / "dangling")
        (temp_dir / "real.txt").write_text("r")

        config = replace(test_config, expand_symbolic_link=True)
        paths = paths_of(await collect(Walker(config), temp_dir))

        assert paths == [str(temp_dir / "real.txt")]

    @requires_symlinks
    @pytest.mark.asyncio
    async def test_cycle_outside_root_terminates(self, temp_dir, test_config):
        """A cycle between two directories outside the root is entered once."""
        root = temp_dir / "root"
        outside_p = temp_dir / "outside_p"
        outside_r = temp_dir / "outside_r"
        for d in (root, outside_p, outside_r):
            d.mkdir()
        (outside_p / "p.txt").write_text("p")
        os.symlink(outside_p, root / "x")
        os.symlink(outside_r, outside_p / "q")
        os.symlink(outside_p, outside_r / "s")

        config = replace(test_config, expand_symbolic_link=True)
        paths = paths_of(await collect(Walker(config), root))

        assert paths == [str(root / "x" / "p.txt")]


class TestWalkerErrors:
    """Tests for failure handling."""

    @pytest.mark.asyncio
    async def test_permission_denied_skips_subtree(self, sample_tree, temp_dir, test_config, monkeypatch):
        """A directory that cannot be opened is treated as empty."""
        original = walker_module._read_dir
        denied = str(temp_dir / "src")

        def fake_read_dir(path, *args):
            if path == denied:
                raise PermissionError(errno.EACCES, "Permission denied", path)
            return original(path, *args)

        monkeypatch.setattr(walker_module, "_read_dir", fake_read_dir)
        walker = Walker(test_config)
        paths = paths_of(await collect(walker, temp_dir))

        assert sorted(paths) == sorted([str(sample_tree["a"]), str(sample_tree["b"])])
        assert walker.denied_dirs == 1

    @pytest.mark.asyncio
    async def test_other_read_error_is_fatal(self, sample_tree, temp_dir, test_config, monkeypatch):
        """Any other failure opening a directory aborts the walk."""
        original = walker_module._read_dir
        broken = str(temp_dir / "src" / "lib")

        def fake_read_dir(path, *args):
            if path == broken:
                raise OSError(errno.EIO, "Input/output error", path)
            return original(path, *args)

        monkeypatch.setattr(walker_module, "_read_dir", fake_read_dir)

        with pytest.raises(WalkError) as exc_info:
            await collect(Walker(test_config), temp_dir)

        assert exc_info.value.path == broken
        assert isinstance(exc_info.value.cause, OSError)

    @pytest.mark.asyncio
    async def test_missing_root_is_fatal(self, temp_dir, test_config):
        """A root that does not exist cannot be walked."""
        with pytest.raises(WalkError):
            await collect(Walker(test_config), temp_dir / "does_not_exist")


class TestWalkerThreads:
    """Tests that blocking filesystem calls stay off the event loop."""

    @requires_symlinks
    @pytest.mark.asyncio
    async def test_listing_and_resolving_run_on_reader_thread(self, temp_dir, test_config, monkeypatch):
        """Directory reads and symlink resolution happen on the walker thread."""
        target = temp_dir / "target"
        target.mkdir()
        (target / "t.txt").write_text("t")
        root = temp_dir / "root"
        root.mkdir()
        os.symlink(target, root / "link")

        threads = []
        original_read_dir = walker_module._read_dir
        original_resolve = walker_module._resolve

        def fake_read_dir(path, *args):
            threads.append(("read_dir", threading.current_thread().name))
            return original_read_dir(path, *args)

        def fake_resolve(path):
            threads.append(("resolve", threading.current_thread().name))
            return original_resolve(path)

        monkeypatch.setattr(walker_module, "_read_dir", fake_read_dir)
        monkeypatch.setattr(walker_module, "_resolve", fake_resolve)

        config = replace(test_config, expand_symbolic_link=True)
        walker = Walker(config)
        try:
            paths = paths_of(await collect(walker, root))
        finally:
            walker.close()

        assert paths == [str(root / "link" / "t.txt")]
        assert {kind for kind, _ in threads} == {"read_dir", "resolve"}
        assert all(name.startswith("walker") for _, name in threads)

    def test_read_dir_caches_entry_stats(self, temp_dir):
        """Entries keep their stat after the file is gone."""
        (temp_dir / "a.txt").write_text("a")
        entries = walker_module._read_dir(str(temp_dir))
        (temp_dir / "a.txt").unlink()

        assert [e.name for e in entries] == ["a.txt"]
        assert entries[0].stat(follow_symlinks=False).st_size == 1


class TestWalkerCancellation:
    """Tests for mid-walk cancellation."""

    @pytest.mark.asyncio
    async def test_stops_after_cancel(self, temp_dir, test_config):
        """No batch is yielded once the signal fires."""
        for d in range(5):
            sub = temp_dir / f"dir_{d}"
            sub.mkdir()
            for i in range(10):
                (sub / f"f_{i}.txt").write_text(str(i))

        signal = CancellationSignal()
        walker = Walker(test_config, signal)
        batches = []
        async for batch in walker.walk(str(temp_dir)):
            batches.append(batch)
            signal.abort("enough")

        assert len(batches) == 1
        assert len(batches[0]) == test_config.chunk_size

    @pytest.mark.asyncio
    async def test_already_cancelled_yields_nothing(self, sample_tree, temp_dir, test_config):
        """A walk started after cancellation returns immediately."""
        signal = CancellationSignal()
        signal.abort()

        assert await collect(Walker(test_config, signal), temp_dir) == []

    @pytest.mark.asyncio
    async def test_convenience_function(self, sample_tree, temp_dir, test_config):
        """walk_files honors its explicit parameters."""
        signal = CancellationSignal()
        batches = []
        async for batch in walk_files(str(temp_dir), [], signal, chunk_size=100):
            batches.append(batch)

        # .git is not ignored here
        assert str(sample_tree["git"]) in paths_of(batches)
        assert all(len(b) <= 100 for b in batches)
