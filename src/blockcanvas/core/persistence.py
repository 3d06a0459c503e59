"""document codec, storage backends, throttled autosave.

the saved document is ``{"pages": [...], "currentPageId": ...}`` with
each block's program state inline. media is referenced by relative path
under ``user/media/``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from .constants import DEFAULT_AUTOSAVE_INTERVAL, MEDIA_SAVE_PATH, STATE_SAVE_PATH
from .errors import PersistenceError
from .models import CanvasState
from .runtime import Runtime
from .store import show_notification


# --- storage ---

@runtime_checkable
class Storage(Protocol):
    """async key/value file store addressed by relative paths."""

    async def read(self, path: str) -> Optional[str]: ...

    async def write(self, path: str, data: str) -> None: ...


class MemoryStorage:
    """in-memory storage for tests and ephemeral sessions."""

    def __init__(self, files: Optional[dict[str, str]] = None):
        self.files: dict[str, str] = dict(files or {})
        self.writes = 0

    async def read(self, path: str) -> Optional[str]:
        return self.files.get(path)

    async def write(self, path: str, data: str) -> None:
        self.files[path] = data
        self.writes += 1


class FileStorage:
    """storage rooted at a directory; file io runs off the event loop."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def resolve(self, path: str) -> Path:
        full = (self.root / path).resolve()
        if self.root.resolve() not in full.parents and full != self.root.resolve():
            raise PersistenceError(f"path escapes storage root: {path}")
        return full

    async def read(self, path: str) -> Optional[str]:
        full = self.resolve(path)
        if not full.exists():
            return None
        try:
            return await asyncio.to_thread(full.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"failed to read {path}: {e}") from e

    async def write(self, path: str, data: str) -> None:
        full = self.resolve(path)
        try:
            await asyncio.to_thread(_write_atomic, full, data)
        except OSError as e:
            raise PersistenceError(f"failed to write {path}: {e}") from e


def _write_atomic(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(data, encoding="utf-8")
    tmp.replace(path)


def media_path(filename: str) -> str:
    """relative storage path for a media file referenced from program state."""
    return f"{MEDIA_SAVE_PATH}{Path(filename).name}"


# --- codec ---

def encode_document(state: CanvasState) -> str:
    return json.dumps(state.to_document(), indent=2)


def decode_document(text: str) -> CanvasState:
    """parse a saved document. raises PersistenceError on anything malformed."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PersistenceError(f"invalid json: {e}") from e
    if not isinstance(data, dict):
        raise PersistenceError("document is not an object")
    try:
        return CanvasState.from_document(data)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise PersistenceError(f"invalid document: {e}") from e


async def load_state(storage: Storage, path: str = STATE_SAVE_PATH) -> CanvasState:
    """load the saved canvas, or the default page set if none or unreadable."""
    try:
        text = await storage.read(path)
        if text is None:
            logging.debug(f"no saved state at {path}")
            return CanvasState.initial()
        return decode_document(text)
    except PersistenceError as e:
        logging.warning(f"failed to load state, starting fresh: {e}")
        return CanvasState.initial()


async def save_state(storage: Storage, state: CanvasState, path: str = STATE_SAVE_PATH) -> None:
    """write the document. raises PersistenceError on failure."""
    try:
        text = encode_document(state)
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"failed to encode state: {e}") from e
    try:
        await storage.write(path, text)
    except PersistenceError:
        raise
    except OSError as e:
        raise PersistenceError(f"failed to save state: {e}") from e


# --- autosave ---

class Autosaver:
    """throttled autosave for a runtime: at most one write per interval.

    marks itself dirty whenever the persisted part of the tree changes;
    a failed save surfaces as a transient notification in the runtime.
    """

    def __init__(
        self,
        runtime: Runtime,
        storage: Storage,
        interval: float = DEFAULT_AUTOSAVE_INTERVAL,
        path: str = STATE_SAVE_PATH,
    ):
        self.runtime = runtime
        self.storage = storage
        self.interval = interval
        self.path = path
        self._dirty = False
        self._last_saved_at: Optional[str] = None
        self._last_pages = runtime.state.pages
        self._last_page_id = runtime.state.current_page_id
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe = runtime.subscribe(self._on_render)

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def last_saved_at(self) -> Optional[str]:
        return self._last_saved_at

    def mark_dirty(self) -> None:
        self._dirty = True

    def mark_clean(self) -> None:
        self._dirty = False
        self._last_saved_at = datetime.now().isoformat()

    def _on_render(self, state: CanvasState) -> None:
        if state.pages is not self._last_pages or state.current_page_id != self._last_page_id:
            self._last_pages = state.pages
            self._last_page_id = state.current_page_id
            self._dirty = True

    async def save(self) -> bool:
        """save now if dirty. returns True if a write happened."""
        if not self._dirty:
            return False
        try:
            await save_state(self.storage, self.runtime.state, self.path)
        except PersistenceError as e:
            logging.warning(f"autosave failed: {e}")
            self.runtime.apply(show_notification, f"save failed: {e}")
            return False
        self.mark_clean()
        return True

    async def start(self) -> None:
        """start the background save loop (no-op when interval is 0)."""
        if self._task is not None or self.interval <= 0:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.save()

    def close(self) -> None:
        self._unsubscribe()
