"""
Test Configuration - Shared fixtures for tri_source tests.

Uses pytest fixtures to create isolated directory trees and hosts.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from tri_source.config import SourceConfig, set_config
from tri_source.host import StaticHost


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="tri_source_test_")
    # Resolve to handle macOS /var -> /private/var symlink
    resolved = Path(tmp).resolve()
    yield resolved
    shutil.rmtree(str(resolved), ignore_errors=True)


@pytest.fixture
def test_config() -> Generator[SourceConfig, None, None]:
    """Create an isolated test configuration."""
    config = SourceConfig(
        chunk_size=2,
        mr_timeout_ms=200,
        show_source_prefix=False,
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def sample_tree(temp_dir: Path) -> dict[str, Path]:
    """
    Create a small tree:

        a.txt
        b.txt
        .git/c.txt          (ignored)
        src/main.py
        src/lib/util.py
    """
    files = {}

    files["a"] = temp_dir / "a.txt"
    files["a"].write_text("a")

    files["b"] = temp_dir / "b.txt"
    files["b"].write_text("b")

    git = temp_dir / ".git"
    git.mkdir()
    files["git"] = git / "c.txt"
    files["git"].write_text("c")

    lib = temp_dir / "src" / "lib"
    lib.mkdir(parents=True)
    files["main"] = temp_dir / "src" / "main.py"
    files["main"].write_text("print('main')")
    files["util"] = lib / "util.py"
    files["util"].write_text("def util(): pass")

    return files


@pytest.fixture
def static_host(temp_dir: Path) -> StaticHost:
    """Host with two buffers and an MRU list overlapping them."""
    return StaticHost(
        current_dir=str(temp_dir),
        buffers=[
            {"bufnr": 1, "changed": False, "lastused": 100, "listed": True,
             "name": str(temp_dir / "a.txt")},
            {"bufnr": 2, "changed": True, "lastused": 200, "listed": True,
             "name": str(temp_dir / "src" / "main.py")},
        ],
        alternate_bufnr=2,
        mr_lists={
            "mru": [
                str(temp_dir / "src" / "main.py"),
                str(temp_dir / "b.txt"),
                "/elsewhere/notes.md",
            ],
        },
    )
