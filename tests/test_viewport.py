"""tests for the viewport transform."""

import pytest

from blockcanvas.core.models import Viewport
from blockcanvas.core.viewport import (
    WheelEvent,
    apply_wheel,
    clamp_zoom,
    is_zoom_gesture,
    pan,
    to_canvas,
    to_screen,
    viewport_center,
    zoom_at,
)


class TestTransform:
    """tests for canvas <-> screen mapping."""

    def test_identity(self):
        """default viewport maps points to themselves."""
        assert to_screen(Viewport(), 12, 34) == (12, 34)
        assert to_canvas(Viewport(), 12, 34) == (12, 34)

    def test_screen_is_canvas_times_zoom_plus_offset(self):
        """screen = canvas * zoom + offset."""
        vp = Viewport(offset_x=10, offset_y=-20, zoom=2)
        assert to_screen(vp, 5, 5) == (20, -10)

    def test_to_canvas_inverts_to_screen(self):
        """converting there and back lands on the same point."""
        vp = Viewport(offset_x=-33.5, offset_y=71, zoom=0.37)
        sx, sy = to_screen(vp, 123.25, -48)
        cx, cy = to_canvas(vp, sx, sy)
        assert cx == pytest.approx(123.25)
        assert cy == pytest.approx(-48)

    def test_pan_moves_offset(self):
        """pan adds to the offset and leaves zoom alone."""
        vp = pan(Viewport(offset_x=1, offset_y=2, zoom=3), 10, 20)
        assert vp == Viewport(offset_x=11, offset_y=22, zoom=3)

    def test_viewport_center(self):
        """screen center in canvas space."""
        vp = Viewport(offset_x=100, offset_y=0, zoom=2)
        assert viewport_center(vp, (800, 600)) == (150, 150)


class TestZoomAtPointer:
    """tests for zoom anchored at the pointer."""

    def test_doubling_zoom_at_pointer(self):
        """zoom 1 -> 2 at (400, 300) moves the offset to (-400, -300)."""
        vp = zoom_at(Viewport(), 400, 300, 2)
        assert vp.zoom == 2
        assert vp.offset_x == pytest.approx(-400)
        assert vp.offset_y == pytest.approx(-300)

    @pytest.mark.parametrize("new_zoom", [0.1, 0.25, 0.5, 1.0, 1.7, 3.0, 5.0])
    @pytest.mark.parametrize("start", [
        Viewport(),
        Viewport(offset_x=-250, offset_y=90, zoom=0.4),
        Viewport(offset_x=13, offset_y=-7, zoom=4.5),
    ])
    def test_point_under_pointer_is_fixed(self, start, new_zoom):
        """the canvas point under the pointer is the same before and after."""
        px, py = 321, 123
        before = to_canvas(start, px, py)
        after = to_canvas(zoom_at(start, px, py, new_zoom), px, py)
        assert after[0] == pytest.approx(before[0], abs=1e-9)
        assert after[1] == pytest.approx(before[1], abs=1e-9)

    def test_zoom_is_clamped(self):
        """zoom stays within [0.1, 5]."""
        assert zoom_at(Viewport(), 0, 0, 50).zoom == 5
        assert zoom_at(Viewport(), 0, 0, 0.001).zoom == 0.1
        assert clamp_zoom(2.5) == 2.5


class TestWheel:
    """tests for pan vs zoom disambiguation."""

    def test_ctrl_wheel_is_pinch_zoom(self):
        """ctrl + small delta zooms proportionally."""
        ev = WheelEvent(0, 0, delta_y=-10, ctrl=True)
        assert is_zoom_gesture(ev)
        assert apply_wheel(Viewport(), ev).zoom == pytest.approx(1.1)

    def test_meta_counts_as_pinch(self):
        """meta behaves like ctrl."""
        assert is_zoom_gesture(WheelEvent(0, 0, delta_y=5, meta=True))

    def test_wheel_notch_zooms_in_steps(self):
        """a full mouse-wheel notch without modifiers zooms by one step."""
        ev = WheelEvent(100, 100, delta_y=-100)
        assert is_zoom_gesture(ev)
        assert apply_wheel(Viewport(), ev).zoom == pytest.approx(1.1)

    def test_wheel_notch_down_zooms_out(self):
        """scrolling down a notch zooms out."""
        ev = WheelEvent(100, 100, delta_y=100)
        assert apply_wheel(Viewport(), ev).zoom == pytest.approx(1 / 1.1)

    def test_trackpad_scroll_pans(self):
        """small or two-axis deltas pan by the negated delta."""
        ev = WheelEvent(0, 0, delta_x=4, delta_y=-12)
        assert not is_zoom_gesture(ev)
        assert apply_wheel(Viewport(), ev) == Viewport(offset_x=-4, offset_y=12, zoom=1)

    def test_zoom_keeps_pointer_anchored(self):
        """wheel zoom anchors on the event position."""
        vp = Viewport(offset_x=20, offset_y=30, zoom=1)
        ev = WheelEvent(200, 150, delta_y=-100)
        before = to_canvas(vp, 200, 150)
        after = to_canvas(apply_wheel(vp, ev), 200, 150)
        assert after == pytest.approx(before)
