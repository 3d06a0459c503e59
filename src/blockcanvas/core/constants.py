"""shared constants for the canvas core."""

from __future__ import annotations

import os
from pathlib import Path


# --- configuration ---

MAX_UNDO_HISTORY = 50
MIN_SIZE = 20  # minimum block width/height in canvas units
DEFAULT_BLOCK_WIDTH = 200
DEFAULT_BLOCK_HEIGHT = 200
DEFAULT_SCREEN_SIZE = (1280, 800)

PASTE_OFFSET_X = 20
PASTE_OFFSET_Y = 20
CLIPBOARD_BLOCK_ID = -1  # sentinel: clipboard snapshots are not real blocks

# gestures closer than this to a no-op commit nothing to history
GESTURE_EPSILON = 0.1

# --- viewport ---

MIN_ZOOM = 0.1
MAX_ZOOM = 5.0
PINCH_ZOOM_SPEED = 0.01
WHEEL_NOTCH = 100  # deltaY reported by one mouse-wheel notch
WHEEL_ZOOM_STEP = 1.1

# --- persistence ---

STATE_SAVE_PATH = "user/state.json"
MEDIA_SAVE_PATH = "user/media/"
DEFAULT_AUTOSAVE_INTERVAL = 2  # seconds between throttled saves
NOTIFICATION_TIMEOUT = 3.0  # seconds

# --- composition ---

MAX_REDIRECTS = 100  # trampoline guard for actions returning actions

RESIZE_HANDLES = ("nw", "ne", "sw", "se", "n", "s", "e", "w")
CORNER_HANDLES = ("nw", "ne", "sw", "se")

RESIZE_CURSORS = {
    "nw": "nwse-resize",
    "ne": "nesw-resize",
    "sw": "nesw-resize",
    "se": "nwse-resize",
    "n": "ns-resize",
    "s": "ns-resize",
    "w": "ew-resize",
    "e": "ew-resize",
}


def get_data_dir() -> Path:
    """get the default storage directory (BLOCKCANVAS_HOME overrides)."""
    override = os.environ.get("BLOCKCANVAS_HOME")
    data_dir = Path(override) if override else Path.home() / ".blockcanvas"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
