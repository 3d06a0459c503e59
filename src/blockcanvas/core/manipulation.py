"""manipulation engine: drag, resize, marquee select, connect.

pointer-move frames never touch history. on pointer-up a drag or resize
synthesizes the state as it was before the gesture and commits a single
memento, unless nothing really moved.

pointer coordinates arrive in screen space; block geometry lives in
canvas space, so every handler converts through the viewport first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional

from .constants import CORNER_HANDLES, GESTURE_EPSILON, MIN_SIZE, RESIZE_CURSORS
from .memento import save_memento_and_return
from .models import Block, CanvasState, DragStart, Geometry, Page, ResizeState, SelectionBox
from .programs import ProgramRegistry
from .store import (
    bounding_box,
    connect_blocks,
    enter_edit_mode,
    is_point_in_selection_bounds,
    selected_blocks,
    toggle_selection,
    update_interaction,
    update_page,
)
from .viewport import WheelEvent, apply_wheel, pan, screen_delta_to_canvas, to_canvas


@dataclass(frozen=True)
class PointerEvent:
    """pointer input in screen space. button: 0 primary, 1 middle, 2 secondary."""

    x: float
    y: float
    button: int = 0
    shift: bool = False
    alt: bool = False
    ctrl: bool = False
    meta: bool = False


# --- resize geometry ---

ResizeHandler = Callable[[Geometry, float, float], Geometry]


def _nw(g: Geometry, px: float, py: float) -> Geometry:
    return Geometry(
        x=min(g.right - MIN_SIZE, px),
        y=min(g.bottom - MIN_SIZE, py),
        width=g.right - px,
        height=g.bottom - py,
    )


def _ne(g: Geometry, px: float, py: float) -> Geometry:
    return Geometry(
        x=g.x,
        y=min(g.bottom - MIN_SIZE, py),
        width=px - g.x,
        height=g.bottom - py,
    )


def _sw(g: Geometry, px: float, py: float) -> Geometry:
    return Geometry(
        x=min(g.right - MIN_SIZE, px),
        y=g.y,
        width=g.right - px,
        height=py - g.y,
    )


def _se(g: Geometry, px: float, py: float) -> Geometry:
    return Geometry(x=g.x, y=g.y, width=px - g.x, height=py - g.y)


def _n(g: Geometry, px: float, py: float) -> Geometry:
    return Geometry(x=g.x, y=min(g.bottom - MIN_SIZE, py), width=g.width, height=g.bottom - py)


def _s(g: Geometry, px: float, py: float) -> Geometry:
    return Geometry(x=g.x, y=g.y, width=g.width, height=py - g.y)


def _w(g: Geometry, px: float, py: float) -> Geometry:
    return Geometry(x=min(g.right - MIN_SIZE, px), y=g.y, width=g.right - px, height=g.height)


def _e(g: Geometry, px: float, py: float) -> Geometry:
    return Geometry(x=g.x, y=g.y, width=px - g.x, height=g.height)


# each handler keeps the opposite edge or corner fixed
RESIZE_HANDLERS: dict[str, ResizeHandler] = {
    "nw": _nw,
    "ne": _ne,
    "sw": _sw,
    "se": _se,
    "n": _n,
    "s": _s,
    "w": _w,
    "e": _e,
}


def clamp_geometry(g: Geometry) -> Geometry:
    return replace(g, width=max(MIN_SIZE, g.width), height=max(MIN_SIZE, g.height))


def _min_size_for_ratio(ratio: float) -> tuple[float, float]:
    """smallest (w, h) with w/h == ratio and both >= MIN_SIZE."""
    if ratio >= 1:
        return MIN_SIZE * ratio, MIN_SIZE
    return MIN_SIZE, MIN_SIZE / ratio


def constrain_aspect(g: Geometry, start: Geometry, handle: str) -> Geometry:
    """lock g to start's aspect ratio.

    corners take whichever of the width- or height-driven sizes has the
    smaller area and keep the opposite corner of start fixed. edges derive
    the other dimension and stay centered on the unchanging axis.
    """
    ratio = start.width / start.height
    min_w, min_h = _min_size_for_ratio(ratio)

    if handle in CORNER_HANDLES:
        by_width = (g.width, g.width / ratio)
        by_height = (g.height * ratio, g.height)
        width, height = by_width if by_width[0] * by_width[1] <= by_height[0] * by_height[1] else by_height
        if width < min_w:
            width, height = min_w, min_h
        x = start.right - width if "w" in handle else start.x
        y = start.bottom - height if "n" in handle else start.y
        return Geometry(x, y, width, height)

    if handle in ("n", "s"):
        height = max(g.height, min_h)
        width = height * ratio
        y = start.bottom - height if handle == "n" else start.y
        return Geometry(start.x - (width - start.width) / 2, y, width, height)

    width = max(g.width, min_w)
    height = width / ratio
    x = start.right - width if handle == "w" else start.x
    return Geometry(x, start.y - (height - start.height) / 2, width, height)


def resize_geometry(
    current: Geometry,
    handle: str,
    px: float,
    py: float,
    start: Optional[Geometry] = None,
    keep_aspect: bool = False,
) -> Geometry:
    """new geometry for dragging `handle` to canvas point (px, py)."""
    g = RESIZE_HANDLERS[handle](current, px, py)
    if keep_aspect and start is not None and start.width > 0 and start.height > 0:
        g = constrain_aspect(g, start, handle)
    return clamp_geometry(g)


def scale_blocks(originals: tuple[Block, ...], start: Geometry, box: Geometry) -> list[Block]:
    """map every block from the start bounding box into box, proportionally."""
    sx = box.width / start.width if start.width else 1.0
    sy = box.height / start.height if start.height else 1.0
    return [
        replace(
            b,
            x=box.x + (b.x - start.x) * sx,
            y=box.y + (b.y - start.y) * sy,
            width=max(MIN_SIZE, b.width * sx),
            height=max(MIN_SIZE, b.height * sy),
        )
        for b in originals
    ]


# --- helpers ---

def _replace_blocks(page: Page, blocks: list[Block]) -> Page:
    by_id = {b.id: b for b in blocks}
    return replace(page, blocks=tuple(by_id.get(b.id, b) for b in page.blocks))


def _set_blocks(state: CanvasState, blocks: list[Block]) -> CanvasState:
    return update_page(state, state.current_page.id, lambda p: _replace_blocks(p, blocks))


def _moved(a: Geometry, b: Geometry) -> bool:
    return any(
        abs(u - v) > GESTURE_EPSILON
        for u, v in zip((a.x, a.y, a.width, a.height), (b.x, b.y, b.width, b.height))
    )


def preview_selection(page: Page, box: SelectionBox, additive: bool) -> tuple[int, ...]:
    """ids the marquee would select right now."""
    bounds = box.bounds
    hit = tuple(b.id for b in page.blocks if b.geometry.intersects(bounds))
    if not additive:
        return hit
    current = page.interaction.selected_ids
    return current + tuple(i for i in hit if i not in current)


# --- gestures ---

def pointer_down_on_block(
    state: CanvasState,
    block_id: int,
    event: PointerEvent,
    registry: Optional[ProgramRegistry] = None,
) -> CanvasState:
    page = state.current_page
    block = page.find_block(block_id)
    if block is None:
        return state
    interaction = page.interaction
    state = replace(state, pointer=(event.x, event.y))

    connecting = interaction.connecting_id
    if connecting is not None and connecting != block_id:
        source = page.find_block(connecting)
        if source is not None and registry is not None:
            program = registry.get(source.program.name)
            slot = program.slot_for(block.program.name) if program else None
            if slot is not None:
                state = connect_blocks(state, slot, connecting, block_id, registry)
            else:
                logging.debug(f"block {connecting} has no slot for {block.program.name}")
        return update_interaction(state, connecting_id=None, selected_ids=(block_id,))

    if interaction.editing_id == block_id:
        return update_interaction(state, selected_ids=(block_id,))

    if event.shift:
        return toggle_selection(state, block_id)

    selected = interaction.selected_ids
    if not (block_id in selected and len(selected) > 1):
        selected = (block_id,)
    return update_interaction(
        state,
        selected_ids=selected,
        editing_id=None,
        connecting_id=None,
        drag_start=DragStart(block.id, block.x, block.y),
    )


def pointer_down_on_handle(
    state: CanvasState,
    handle: str,
    event: PointerEvent,
    block_id: Optional[int] = None,
) -> CanvasState:
    """start resizing one block, or the multi-selection box when block_id is None."""
    if handle not in RESIZE_HANDLERS:
        raise ValueError(f"unknown resize handle: {handle}")
    page = state.current_page
    if block_id is None:
        blocks = selected_blocks(state)
        if len(blocks) < 2:
            return state
        resizing = ResizeState(None, handle, bounding_box(blocks), tuple(blocks))
        selected = page.interaction.selected_ids
    else:
        block = page.find_block(block_id)
        if block is None:
            return state
        resizing = ResizeState(block_id, handle, block.geometry)
        selected = (block_id,)
    state = replace(state, pointer=(event.x, event.y), cursor=RESIZE_CURSORS[handle])
    return update_interaction(state, selected_ids=selected, resizing=resizing, drag_start=None)


def pointer_down_on_canvas(state: CanvasState, event: PointerEvent) -> CanvasState:
    page = state.current_page
    state = replace(state, pointer=(event.x, event.y))

    if event.button == 1:
        state = replace(state, is_viewport_dragging=True, cursor="grabbing")
        return update_interaction(state, selected_ids=(), editing_id=None, connecting_id=None)

    cx, cy = to_canvas(page.viewport, event.x, event.y)
    if not event.shift and is_point_in_selection_bounds(state, cx, cy):
        ref = selected_blocks(state)[0]
        return update_interaction(state, drag_start=DragStart(ref.id, ref.x, ref.y))

    if event.button != 0:
        return state
    selected = page.interaction.selected_ids if event.shift else ()
    return update_interaction(
        state,
        selected_ids=selected,
        preview_selected_ids=(),
        editing_id=None,
        connecting_id=None,
        selection_box=SelectionBox(cx, cy, cx, cy),
    )


def pointer_move(state: CanvasState, event: PointerEvent) -> CanvasState:
    page = state.current_page
    interaction = page.interaction
    dx, dy = event.x - state.pointer[0], event.y - state.pointer[1]
    state = replace(state, pointer=(event.x, event.y))

    if interaction.resizing is not None:
        return _resize_move(state, interaction.resizing, event)

    if interaction.drag_start is not None and interaction.editing_id is None:
        cdx, cdy = screen_delta_to_canvas(page.viewport, dx, dy)
        moved = [replace(b, x=b.x + cdx, y=b.y + cdy) for b in selected_blocks(state)]
        return _set_blocks(state, moved)

    if state.is_viewport_dragging:
        return update_page(state, page.id, lambda p: replace(p, viewport=pan(p.viewport, dx, dy)))

    if interaction.selection_box is not None:
        cx, cy = to_canvas(page.viewport, event.x, event.y)
        box = replace(interaction.selection_box, current_x=cx, current_y=cy)
        preview = preview_selection(page, box, event.shift)
        return update_interaction(state, selection_box=box, preview_selected_ids=preview)

    return state


def _resize_move(state: CanvasState, resizing: ResizeState, event: PointerEvent) -> CanvasState:
    page = state.current_page
    px, py = to_canvas(page.viewport, event.x, event.y)
    if resizing.block_id is None:
        current = bounding_box(selected_blocks(state)) or resizing.start
        box = resize_geometry(current, resizing.handle, px, py, resizing.start, event.shift)
        return _set_blocks(state, scale_blocks(resizing.original_blocks, resizing.start, box))

    block = page.find_block(resizing.block_id)
    if block is None:
        return state
    g = resize_geometry(block.geometry, resizing.handle, px, py, resizing.start, event.shift)
    return _set_blocks(state, [block.with_geometry(g)])


def pointer_up(state: CanvasState, event: PointerEvent) -> CanvasState:
    """finish whatever gesture is in progress."""
    before = state
    interaction = state.current_page.interaction
    new = replace(state, pointer=(event.x, event.y), is_viewport_dragging=False, cursor="default")

    if interaction.selection_box is not None:
        page = new.current_page
        selected = preview_selection(page, interaction.selection_box, event.shift)
        return update_interaction(
            new,
            selected_ids=selected,
            preview_selected_ids=(),
            selection_box=None,
        )

    new = update_interaction(new, drag_start=None, resizing=None)
    if interaction.drag_start is not None:
        return _complete_drag(before, new, interaction.drag_start)
    if interaction.resizing is not None:
        return _complete_resize(before, new, interaction.resizing)
    return new


def _complete_drag(before: CanvasState, new: CanvasState, drag: DragStart) -> CanvasState:
    ref = new.current_page.find_block(drag.id)
    if ref is None:
        return new
    dx, dy = ref.x - drag.start_x, ref.y - drag.start_y
    if abs(dx) <= GESTURE_EPSILON and abs(dy) <= GESTURE_EPSILON:
        return new
    # rewind the selection by the net delta to get the pre-drag tree
    rewound = [replace(b, x=b.x - dx, y=b.y - dy) for b in selected_blocks(before)]
    logging.debug(f"drag committed: {dx:.1f},{dy:.1f}")
    return save_memento_and_return(_set_blocks(before, rewound), new)


def _complete_resize(before: CanvasState, new: CanvasState, resizing: ResizeState) -> CanvasState:
    page = new.current_page
    if resizing.block_id is None:
        originals = resizing.original_blocks
        changed = any(
            (cur := page.find_block(b.id)) is not None and _moved(b.geometry, cur.geometry)
            for b in originals
        )
        if not changed:
            return new
        return save_memento_and_return(_set_blocks(before, list(originals)), new)

    block = page.find_block(resizing.block_id)
    if block is None or not _moved(resizing.start, block.geometry):
        return new
    logging.debug(f"resize committed on block {block.id}")
    return save_memento_and_return(_set_blocks(before, [block.with_geometry(resizing.start)]), new)


def double_click(state: CanvasState, block_id: int) -> CanvasState:
    return enter_edit_mode(state, block_id)


def hover(state: CanvasState, block_id: Optional[int]) -> CanvasState:
    """track the hovered block and pick a matching cursor."""
    interaction = state.current_page.interaction
    if interaction.drag_start is not None or interaction.resizing is not None:
        return state
    if block_id is None:
        cursor = "default"
    elif interaction.connecting_id is not None:
        cursor = "pointer"
    elif interaction.editing_id == block_id:
        cursor = "default"
    else:
        cursor = "move"
    state = replace(state, cursor=cursor)
    if interaction.hovering_id == block_id:
        return state
    return update_interaction(state, hovering_id=block_id)


def wheel(state: CanvasState, event: WheelEvent) -> CanvasState:
    page = state.current_page
    state = replace(state, pointer=(event.x, event.y))
    return update_page(state, page.id, lambda p: replace(p, viewport=apply_wheel(p.viewport, event)))
