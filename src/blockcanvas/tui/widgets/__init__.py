"""textual widgets for blockcanvas."""

from .canvas_map import CanvasMap, BlockClicked, CanvasClicked

__all__ = [
    "CanvasMap",
    "BlockClicked",
    "CanvasClicked",
]
