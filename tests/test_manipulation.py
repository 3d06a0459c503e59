"""tests for drag, resize, marquee and connect gestures."""

import pytest

from blockcanvas.core.constants import MIN_SIZE, RESIZE_HANDLES
from blockcanvas.core.manipulation import (
    PointerEvent,
    constrain_aspect,
    double_click,
    hover,
    pointer_down_on_block,
    pointer_down_on_canvas,
    pointer_down_on_handle,
    pointer_move,
    pointer_up,
    resize_geometry,
    wheel,
)
from blockcanvas.core.memento import can_undo, undo
from blockcanvas.core.models import Connection, Geometry, Viewport
from blockcanvas.core.store import find_block, select_block, toggle_connect_mode, toggle_selection
from blockcanvas.core.viewport import WheelEvent


def _gesture(state, down, *points):
    """pointer-down (already applied by `down`), then moves, then up at the last point."""
    state = down(state)
    for x, y in points:
        state = pointer_move(state, PointerEvent(x, y))
    last = points[-1] if points else state.pointer
    return pointer_up(state, PointerEvent(*last))


class TestResizeGeometry:
    """tests for the per-handle resize math."""

    def test_se_corner(self):
        """(100,100,50,50) dragged by se to (200,200) becomes 100x100."""
        g = resize_geometry(Geometry(100, 100, 50, 50), "se", 200, 200)
        assert g == Geometry(100, 100, 100, 100)

    def test_nw_keeps_opposite_corner(self):
        """dragging nw moves x/y while the bottom-right stays put."""
        g = resize_geometry(Geometry(100, 100, 50, 50), "nw", 120, 130)
        assert (g.right, g.bottom) == (150, 150)
        assert g == Geometry(120, 130, 30, 20)

    @pytest.mark.parametrize("handle", ["e", "w"])
    def test_horizontal_edges_keep_height(self, handle):
        """e/w only change the width."""
        g = resize_geometry(Geometry(0, 0, 100, 60), handle, 40, 999)
        assert (g.y, g.height) == (0, 60)

    @pytest.mark.parametrize("handle", ["n", "s"])
    def test_vertical_edges_keep_width(self, handle):
        """n/s only change the height."""
        g = resize_geometry(Geometry(0, 0, 100, 60), handle, 999, 30)
        assert (g.x, g.width) == (0, 100)

    @pytest.mark.parametrize("handle", RESIZE_HANDLES)
    @pytest.mark.parametrize("px,py", [(-500, -500), (0, 0), (105, 105), (110, 90), (500, 500)])
    def test_never_below_minimum(self, handle, px, py):
        """any pointer position leaves both sides at least MIN_SIZE."""
        g = resize_geometry(Geometry(100, 100, 50, 50), handle, px, py)
        assert g.width >= MIN_SIZE
        assert g.height >= MIN_SIZE

    @pytest.mark.parametrize("px,py", [(-500, -500), (140, 140), (149, 149)])
    def test_collapsed_nw_pins_to_right_edge(self, px, py):
        """shrinking past the minimum pins x/y MIN_SIZE from the fixed edge."""
        g = resize_geometry(Geometry(100, 100, 50, 50), "nw", px, py)
        if g.width == MIN_SIZE:
            assert g.x == 150 - MIN_SIZE
        if g.height == MIN_SIZE:
            assert g.y == 150 - MIN_SIZE


class TestAspectLock:
    """tests for shift-resize keeping proportions."""

    START = Geometry(0, 0, 100, 50)

    @pytest.mark.parametrize("handle", ["nw", "ne", "sw", "se"])
    @pytest.mark.parametrize("px,py", [
        (300, 100), (-200, -50), (120, 400), (5, 5), (-400, 300), (101, 51), (60, 10),
    ])
    def test_corners_keep_ratio(self, handle, px, py):
        """width/height matches the start ratio for any pointer position."""
        g = resize_geometry(self.START, handle, px, py, start=self.START, keep_aspect=True)
        assert g.width / g.height == pytest.approx(2.0, abs=1e-6)
        assert g.width >= MIN_SIZE and g.height >= MIN_SIZE

    def test_corner_picks_smaller_area(self):
        """se to (300, 100): height-driven 200x100 beats width-driven 300x150."""
        g = resize_geometry(self.START, "se", 300, 100, start=self.START, keep_aspect=True)
        assert g == Geometry(0, 0, 200, 100)

    def test_nw_anchors_bottom_right(self):
        """the corner opposite the handle stays where it started."""
        g = resize_geometry(self.START, "nw", -200, -50, start=self.START, keep_aspect=True)
        assert (g.right, g.bottom) == (100, 50)
        assert g == Geometry(-100, -50, 200, 100)

    def test_edge_recenters_other_axis(self):
        """dragging e grows the height symmetrically around the middle."""
        g = constrain_aspect(Geometry(0, 0, 200, 50), self.START, "e")
        assert g == Geometry(0, -25, 200, 100)

    def test_tiny_keeps_ratio_at_minimum(self):
        """collapsing to the minimum still honours the ratio."""
        g = resize_geometry(self.START, "se", 1, 1, start=self.START, keep_aspect=True)
        assert g == Geometry(0, 0, 2 * MIN_SIZE, MIN_SIZE)


class TestDrag:
    """tests for dragging blocks."""

    def test_drag_single_block(self, make_block, make_state):
        """moves are scaled by zoom and commit one undo step."""
        state = make_state(make_block(1, 0, 0), viewport=Viewport(zoom=2))
        state = pointer_down_on_block(state, 1, PointerEvent(10, 10))
        state = pointer_move(state, PointerEvent(30, 50))
        assert (find_block(state, 1).x, find_block(state, 1).y) == (10, 20)
        state = pointer_move(state, PointerEvent(40, 50))
        state = pointer_up(state, PointerEvent(40, 50))

        assert (find_block(state, 1).x, find_block(state, 1).y) == (15, 20)
        assert len(state.history.undo_stack) == 1
        before = find_block(undo(state), 1)
        assert (before.x, before.y) == (0, 0)

    def test_no_net_movement_commits_nothing(self, make_block, make_state):
        """dragging away and back leaves history alone."""
        state = make_state(make_block(1, 0, 0))
        state = _gesture(
            state,
            lambda s: pointer_down_on_block(s, 1, PointerEvent(10, 10)),
            (30, 30), (10, 10),
        )
        assert not can_undo(state)
        assert state.current_page.interaction.drag_start is None

    def test_drag_moves_whole_selection(self, make_block, make_state):
        """pressing inside the selection bounds drags every selected block."""
        state = make_state(make_block(1, 0, 0, 50, 50), make_block(2, 100, 100, 50, 50), selected=(1, 2))
        state = _gesture(
            state,
            lambda s: pointer_down_on_canvas(s, PointerEvent(75, 75)),
            (85, 95),
        )
        assert (find_block(state, 1).x, find_block(state, 1).y) == (10, 20)
        assert (find_block(state, 2).x, find_block(state, 2).y) == (110, 120)
        assert state.current_page.interaction.selected_ids == (1, 2)

        restored = undo(state)
        assert find_block(restored, 1).x == 0
        assert find_block(restored, 2).x == 100

    def test_clicking_selected_block_keeps_group(self, make_block, make_state):
        """pressing one block of a multi-selection drags the group."""
        state = make_state(make_block(1, 0, 0, 50, 50), make_block(2, 100, 100, 50, 50), selected=(1, 2))
        state = _gesture(state, lambda s: pointer_down_on_block(s, 2, PointerEvent(120, 120)), (125, 120))
        assert find_block(state, 1).x == 5
        assert find_block(state, 2).x == 105

    def test_editing_block_does_not_drag(self, make_block, make_state):
        """a block in edit mode takes pointer input itself."""
        state = double_click(make_state(make_block(1, 0, 0)), 1)
        state = _gesture(state, lambda s: pointer_down_on_block(s, 1, PointerEvent(10, 10)), (50, 50))
        assert find_block(state, 1).x == 0


class TestResizeGesture:
    """tests for resizing through handles."""

    def test_resize_commits_once(self, make_block, make_state):
        """the se handle to (200,200) gives 100x100 and one undo step."""
        state = make_state(make_block(1, 100, 100, 50, 50))
        state = _gesture(
            state,
            lambda s: pointer_down_on_handle(s, "se", PointerEvent(150, 150), block_id=1),
            (180, 170), (200, 200),
        )
        assert find_block(state, 1).geometry == Geometry(100, 100, 100, 100)
        assert len(state.history.undo_stack) == 1
        assert find_block(undo(state), 1).geometry == Geometry(100, 100, 50, 50)
        assert state.cursor == "default"

    def test_shift_keeps_aspect(self, make_block, make_state):
        """holding shift locks the ratio during the gesture."""
        state = make_state(make_block(1, 0, 0, 100, 50))
        state = pointer_down_on_handle(state, "se", PointerEvent(100, 50), block_id=1)
        state = pointer_move(state, PointerEvent(300, 100, shift=True))
        g = find_block(state, 1).geometry
        assert g.width / g.height == pytest.approx(2.0)

    def test_shift_resize_of_zero_width_block(self, make_block, make_state):
        """a degenerate block has no ratio to keep and grows like a free resize."""
        state = make_state(make_block(1, 0, 0, 0, 50))
        state = pointer_down_on_handle(state, "se", PointerEvent(0, 50), block_id=1)
        state = pointer_move(state, PointerEvent(100, 100, shift=True))
        assert find_block(state, 1).geometry == Geometry(0, 0, 100, 100)

    def test_unknown_handle_raises(self, make_block, make_state):
        """handles come from a fixed set."""
        with pytest.raises(ValueError):
            pointer_down_on_handle(make_state(make_block(1)), "middle", PointerEvent(0, 0), block_id=1)

    def test_multi_resize_scales_proportionally(self, make_block, make_state):
        """resizing the group box scales each block's position and size."""
        state = make_state(make_block(1, 0, 0, 50, 50), make_block(2, 50, 50, 50, 50), selected=(1, 2))
        state = _gesture(
            state,
            lambda s: pointer_down_on_handle(s, "se", PointerEvent(100, 100)),
            (200, 200),
        )
        assert find_block(state, 1).geometry == Geometry(0, 0, 100, 100)
        assert find_block(state, 2).geometry == Geometry(100, 100, 100, 100)
        restored = undo(state)
        assert find_block(restored, 2).geometry == Geometry(50, 50, 50, 50)


class TestMarquee:
    """tests for rubber-band selection."""

    def test_marquee_selects_intersecting(self, make_block, make_state):
        """blocks touched by the box end up selected; history is untouched."""
        state = make_state(make_block(1, 0, 0, 50, 50), make_block(2, 200, 200, 50, 50))
        state = pointer_down_on_canvas(state, PointerEvent(-10, -10))
        state = pointer_move(state, PointerEvent(60, 60))
        assert state.current_page.interaction.preview_selected_ids == (1,)
        state = pointer_up(state, PointerEvent(60, 60))
        interaction = state.current_page.interaction
        assert interaction.selected_ids == (1,)
        assert interaction.selection_box is None
        assert not can_undo(state)

    def test_shift_marquee_adds(self, make_block, make_state):
        """with shift the current selection is kept."""
        state = make_state(make_block(1, 0, 0, 50, 50), make_block(2, 200, 200, 50, 50), selected=(2,))
        state = pointer_down_on_canvas(state, PointerEvent(-10, -10, shift=True))
        state = pointer_move(state, PointerEvent(60, 60, shift=True))
        state = pointer_up(state, PointerEvent(60, 60, shift=True))
        assert state.current_page.interaction.selected_ids == (2, 1)

    def test_middle_button_pans(self, make_block, make_state):
        """middle-drag moves the viewport."""
        state = make_state(make_block(1))
        state = pointer_down_on_canvas(state, PointerEvent(0, 0, button=1))
        assert state.is_viewport_dragging
        state = pointer_move(state, PointerEvent(30, -10))
        state = pointer_up(state, PointerEvent(30, -10))
        assert state.current_page.viewport == Viewport(offset_x=30, offset_y=-10, zoom=1)
        assert not state.is_viewport_dragging


class TestConnectGesture:
    """tests for click-to-connect."""

    @pytest.fixture
    def canvas(self, make_block, make_state):
        return make_state(
            make_block(1, 0, 0),
            make_block(2, 200, 0, program="mirror", state={"value": None, "updates": 0}),
        )

    def test_connect_allowed(self, canvas, registry):
        """mirror in connect mode clicking a counter adds a source edge."""
        state = toggle_connect_mode(select_block(canvas, 2))
        state = pointer_down_on_block(state, 1, PointerEvent(10, 10), registry)
        assert state.current_page.connections == (Connection("source", 2, 1),)
        assert state.current_page.interaction.connecting_id is None
        assert state.current_page.interaction.selected_ids == (1,)

    def test_connect_disallowed(self, canvas, registry):
        """a counter cannot observe a mirror; connect mode just ends."""
        state = toggle_connect_mode(select_block(canvas, 1))
        state = pointer_down_on_block(state, 2, PointerEvent(210, 10), registry)
        assert state.current_page.connections == ()
        assert state.current_page.interaction.connecting_id is None
        assert state.current_page.interaction.selected_ids == (2,)


class TestPointerMisc:
    """tests for hover, shift-click and wheel."""

    def test_hover_sets_cursor(self, make_block, make_state):
        """hovering a block shows the move cursor."""
        state = hover(make_state(make_block(1)), 1)
        assert state.cursor == "move"
        assert state.current_page.interaction.hovering_id == 1
        assert hover(state, None).cursor == "default"

    def test_shift_click_toggles(self, make_block, make_state):
        """shift-click adds to the selection without dragging."""
        state = make_state(make_block(1), make_block(2, 200, 0), selected=(1,))
        state = pointer_down_on_block(state, 2, PointerEvent(210, 10, shift=True))
        assert state.current_page.interaction.selected_ids == (1, 2)
        assert state.current_page.interaction.drag_start is None

    def test_wheel_updates_current_page_viewport(self, make_block, make_state):
        """wheel zoom lands on the current page."""
        state = wheel(make_state(make_block(1)), WheelEvent(400, 300, delta_y=-100))
        assert state.current_page.viewport.zoom == pytest.approx(1.1)

    def test_shift_click_inside_group_box_starts_marquee(self, make_block, make_state):
        """shift disables dragging the group from empty space."""
        state = make_state(make_block(1, 0, 0, 50, 50), make_block(2, 100, 100, 50, 50))
        state = toggle_selection(toggle_selection(state, 1), 2)
        state = pointer_down_on_canvas(state, PointerEvent(75, 75, shift=True))
        assert state.current_page.interaction.selection_box is not None
        assert state.current_page.interaction.drag_start is None
