"""
Editor Host - The boundary to the editor that embeds the source.

The aggregation core never talks to an editor directly. It goes through
an EditorHost, which answers buffer queries, forwards plugin dispatch
calls (used for the MRU list) and runs display commands.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)


class EditorHost(ABC):
    """
    Base class for editor hosts.

    To embed the source in an editor:
    1. Create a class extending EditorHost
    2. Implement the four calls below against the editor's RPC
    3. Pass an instance to Aggregator
    """

    @abstractmethod
    async def get_buffer_info(self) -> Dict[str, Any]:
        """
        Snapshot of the buffer list.

        Returns:
            {"currentDir": str, "alternateBufNr": int,
             "buffers": [{"bufnr", "changed", "lastused", "listed", "name"}]}
        """
        pass

    @abstractmethod
    async def get_buffer_type(self, bufnr: int) -> Any:
        """The buffer's type option ("" for normal, "terminal", ...)."""
        pass

    @abstractmethod
    async def dispatch(self, plugin: str, method: str, *args: Any) -> Any:
        """Call `method` on another plugin. May never return."""
        pass

    @abstractmethod
    async def command(self, cmd: str) -> None:
        """Run an editor command."""
        pass


class StaticHost(EditorHost):
    """
    In-memory host backed by plain lists.

    Used by the CLI and the tests. A plugin missing from `mr_lists`
    behaves like an uninstalled plugin; `dispatch_delay` simulates a slow
    one.
    """

    def __init__(
        self,
        current_dir: Optional[str] = None,
        buffers: Optional[List[Dict[str, Any]]] = None,
        buffer_types: Optional[Dict[int, str]] = None,
        alternate_bufnr: int = -1,
        mr_lists: Optional[Dict[str, Any]] = None,
        dispatch_delay: float = 0.0,
    ):
        self.current_dir = current_dir or os.getcwd()
        self.buffers = buffers or []
        self.buffer_types = buffer_types or {}
        self.alternate_bufnr = alternate_bufnr
        self.mr_lists = mr_lists
        self.dispatch_delay = dispatch_delay
        self.commands: List[str] = []
        self.dispatched: List[str] = []

    async def get_buffer_info(self) -> Dict[str, Any]:
        return {
            "currentDir": self.current_dir,
            "alternateBufNr": self.alternate_bufnr,
            "buffers": list(self.buffers),
        }

    async def get_buffer_type(self, bufnr: int) -> Any:
        return self.buffer_types.get(bufnr, "")

    async def dispatch(self, plugin: str, method: str, *args: Any) -> Any:
        self.dispatched.append(f"{plugin}#{method}")
        if self.dispatch_delay:
            await asyncio.sleep(self.dispatch_delay)

        if plugin != "mr" or self.mr_lists is None:
            raise RuntimeError(f"Plugin not loaded: {plugin}")

        kind, _, action = method.partition(":")
        if action != "list":
            raise RuntimeError(f"Unknown method: {plugin}#{method}")
        return self.mr_lists.get(kind, [])

    async def command(self, cmd: str) -> None:
        logger.debug(f"command: {cmd}")
        self.commands.append(cmd)
