"""host capabilities: clipboard, system theme, directory listing.

all of these are async and fallible. the core only talks to them through
effects, never from a reducer.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Protocol, runtime_checkable

from .store import set_dark_mode


@runtime_checkable
class Host(Protocol):
    async def read_clipboard(self) -> str: ...

    async def write_clipboard(self, text: str) -> None: ...

    async def get_system_theme(self) -> str: ...

    async def list_directory(self, path: str) -> list[str]: ...


class MemoryHost:
    """in-process host for tests and headless sessions."""

    def __init__(
        self,
        clipboard: str = "",
        theme: str = "light",
        root: Optional[Path] = None,
        delay: float = 0.0,
    ):
        self.clipboard = clipboard
        self.theme = theme
        self.root = Path(root) if root else None
        self.delay = delay
        self.calls: list[str] = []  # track every capability used

    async def read_clipboard(self) -> str:
        self.calls.append("read_clipboard")
        await asyncio.sleep(self.delay)
        return self.clipboard

    async def write_clipboard(self, text: str) -> None:
        self.calls.append("write_clipboard")
        await asyncio.sleep(self.delay)
        self.clipboard = text

    async def get_system_theme(self) -> str:
        self.calls.append("get_system_theme")
        return self.theme

    async def list_directory(self, path: str) -> list[str]:
        """list entries under root/path (empty without a root)."""
        self.calls.append("list_directory")
        if self.root is None:
            return []
        target = self.root / path
        if not target.is_dir():
            return []
        entries = await asyncio.to_thread(lambda: sorted(p.name for p in target.iterdir()))
        return entries


async def sync_theme(dispatch: Callable[..., None], host: Host) -> None:
    """effect: follow the host's light/dark preference."""
    try:
        theme = await host.get_system_theme()
    except OSError as e:
        logging.warning(f"failed to read system theme: {e}")
        return
    dispatch(lambda state, _payload: set_dark_mode(state, theme == "dark"))
