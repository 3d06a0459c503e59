"""viewport transform: canvas space <-> screen space.

block geometry is always stored in canvas space. anything that receives
pointer coordinates inverts the transform here before comparing them
against blocks.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from .constants import (
    MAX_ZOOM,
    MIN_ZOOM,
    PINCH_ZOOM_SPEED,
    WHEEL_NOTCH,
    WHEEL_ZOOM_STEP,
)
from .models import Viewport


@dataclass(frozen=True)
class WheelEvent:
    """wheel/trackpad input in screen space."""

    x: float
    y: float
    delta_x: float = 0.0
    delta_y: float = 0.0
    ctrl: bool = False
    meta: bool = False


def clamp_zoom(zoom: float) -> float:
    return max(MIN_ZOOM, min(MAX_ZOOM, zoom))


def to_screen(viewport: Viewport, x: float, y: float) -> tuple[float, float]:
    """canvas point -> screen point."""
    return (
        x * viewport.zoom + viewport.offset_x,
        y * viewport.zoom + viewport.offset_y,
    )


def to_canvas(viewport: Viewport, sx: float, sy: float) -> tuple[float, float]:
    """screen point -> canvas point."""
    return (
        (sx - viewport.offset_x) / viewport.zoom,
        (sy - viewport.offset_y) / viewport.zoom,
    )


def screen_delta_to_canvas(viewport: Viewport, dx: float, dy: float) -> tuple[float, float]:
    """a pointer movement in screen px, expressed in canvas units."""
    return dx / viewport.zoom, dy / viewport.zoom


def pan(viewport: Viewport, dx: float, dy: float) -> Viewport:
    return replace(viewport, offset_x=viewport.offset_x + dx, offset_y=viewport.offset_y + dy)


def zoom_at(viewport: Viewport, px: float, py: float, new_zoom: float) -> Viewport:
    """change zoom keeping the canvas point under screen point (px, py) fixed."""
    new_zoom = clamp_zoom(new_zoom)
    ratio = new_zoom / viewport.zoom
    return Viewport(
        offset_x=px - (px - viewport.offset_x) * ratio,
        offset_y=py - (py - viewport.offset_y) * ratio,
        zoom=new_zoom,
    )


def is_zoom_gesture(event: WheelEvent) -> bool:
    """pinch (ctrl/meta) or a discrete mouse-wheel notch zooms; anything else pans."""
    if event.ctrl or event.meta:
        return True
    return event.delta_x == 0 and abs(event.delta_y) >= WHEEL_NOTCH


def apply_wheel(viewport: Viewport, event: WheelEvent) -> Viewport:
    """interpret a wheel event as pan or zoom-at-pointer."""
    if not is_zoom_gesture(event):
        # trackpad pan: inverted deltas, figma-like
        return pan(viewport, -event.delta_x, -event.delta_y)

    if event.ctrl or event.meta:
        new_zoom = viewport.zoom - event.delta_y * PINCH_ZOOM_SPEED * viewport.zoom
    else:
        notches = -event.delta_y / WHEEL_NOTCH
        new_zoom = viewport.zoom * (WHEEL_ZOOM_STEP ** notches)
    return zoom_at(viewport, event.x, event.y, new_zoom)


def viewport_center(viewport: Viewport, screen: tuple[float, float]) -> tuple[float, float]:
    """canvas coordinates of the middle of the screen."""
    width, height = screen
    return to_canvas(viewport, width / 2, height / 2)
