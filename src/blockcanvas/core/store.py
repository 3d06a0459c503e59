"""page/block store: pure operations over the canvas state.

every function takes the current ``CanvasState`` and returns a new one
(or a ``WithEffects`` when the operation needs the host). externally
meaningful mutations go through ``save_memento_and_return``; pure
interaction changes (selection, hover, page switching) do not.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Callable, Optional

from .constants import (
    CLIPBOARD_BLOCK_ID,
    DEFAULT_BLOCK_HEIGHT,
    DEFAULT_BLOCK_WIDTH,
    MIN_SIZE,
    NOTIFICATION_TIMEOUT,
    PASTE_OFFSET_X,
    PASTE_OFFSET_Y,
)
from .errors import ConnectionRejected
from .memento import save_memento_and_return
from .models import (
    Block,
    CanvasState,
    Connection,
    Geometry,
    Interaction,
    Page,
    ProgramData,
)
from .programs import Effect, WithEffects, with_effects
from .viewport import viewport_center

if TYPE_CHECKING:
    from .host import Host
    from .programs import ProgramRegistry


# --- lookups ---

def current_page(state: CanvasState) -> Page:
    return state.current_page


def global_blocks(state: CanvasState) -> list[Block]:
    """every block on every page."""
    return [b for page in state.pages for b in page.blocks]


def find_block(state: CanvasState, block_id: Optional[int]) -> Optional[Block]:
    for page in state.pages:
        block = page.find_block(block_id)
        if block is not None:
            return block
    return None


def page_of_block(state: CanvasState, block_id: int) -> Optional[Page]:
    for page in state.pages:
        if page.find_block(block_id) is not None:
            return page
    return None


def next_block_id(state: CanvasState) -> int:
    return max((b.id for b in global_blocks(state)), default=0) + 1


def max_z_order(state: CanvasState) -> int:
    return max((b.z_order for b in global_blocks(state)), default=0)


def min_z_order(state: CanvasState) -> int:
    return min((b.z_order for b in global_blocks(state)), default=0)


# --- structural helpers ---

def update_page(state: CanvasState, page_id: str, fn: Callable[[Page], Page]) -> CanvasState:
    """replace one page with fn(page); other pages keep their identity."""
    pages = tuple(fn(p) if p.id == page_id else p for p in state.pages)
    return replace(state, pages=pages)


def update_interaction(state: CanvasState, **changes: Any) -> CanvasState:
    """change interaction fields on the current page."""
    return update_page(
        state,
        state.current_page.id,
        lambda p: replace(p, interaction=replace(p.interaction, **changes)),
    )


def replace_block(state: CanvasState, block: Block) -> CanvasState:
    """swap in a new version of an existing block, wherever it lives."""
    page = page_of_block(state, block.id)
    if page is None:
        return state
    return update_page(
        state,
        page.id,
        lambda p: replace(p, blocks=tuple(block if b.id == block.id else b for b in p.blocks)),
    )


def update_block_program_state(state: CanvasState, block_id: int, program_state: Any) -> CanvasState:
    """replace a block's program state (no memento; programs own their state)."""
    block = find_block(state, block_id)
    if block is None:
        return state
    return replace_block(state, replace(block, program=replace(block.program, state=program_state)))


# --- blocks ---

def add_block(
    state: CanvasState,
    program_name: str,
    initial_state: Any = None,
    x: Optional[float] = None,
    y: Optional[float] = None,
    width: float = DEFAULT_BLOCK_WIDTH,
    height: float = DEFAULT_BLOCK_HEIGHT,
    registry: Optional[ProgramRegistry] = None,
) -> CanvasState:
    """add a block to the current page, centered in view unless placed."""
    page = state.current_page
    width, height = max(MIN_SIZE, width), max(MIN_SIZE, height)
    if x is None or y is None:
        cx, cy = viewport_center(page.viewport, state.screen)
        x = cx - width / 2 if x is None else x
        y = cy - height / 2 if y is None else y

    if initial_state is None and registry is not None:
        program = registry.get(program_name)
        if program is not None:
            initial_state = program.fresh_state()

    block = Block(
        id=next_block_id(state),
        x=x,
        y=y,
        width=width,
        height=height,
        z_order=max_z_order(state) + 1,
        program=ProgramData(name=program_name, state=initial_state),
    )
    logging.debug(f"add block {block.id} ({program_name}) at {x:.0f},{y:.0f}")
    new = update_page(
        state,
        page.id,
        lambda p: replace(
            p,
            blocks=p.blocks + (block,),
            interaction=replace(
                p.interaction,
                selected_ids=(block.id,),
                editing_id=None,
                connecting_id=None,
            ),
        ),
    )
    return save_memento_and_return(state, new)


def _forget_blocks(interaction: Interaction, ids: set[int]) -> Interaction:
    return replace(
        interaction,
        selected_ids=tuple(i for i in interaction.selected_ids if i not in ids),
        preview_selected_ids=tuple(i for i in interaction.preview_selected_ids if i not in ids),
        editing_id=None if interaction.editing_id in ids else interaction.editing_id,
        hovering_id=None if interaction.hovering_id in ids else interaction.hovering_id,
        connecting_id=None if interaction.connecting_id in ids else interaction.connecting_id,
    )


def _remove_blocks(state: CanvasState, ids: set[int]) -> CanvasState:
    pages = []
    for page in state.pages:
        if not page.block_ids & ids:
            pages.append(page)
            continue
        pages.append(replace(
            page,
            blocks=tuple(b for b in page.blocks if b.id not in ids),
            connections=tuple(
                c for c in page.connections
                if c.source_block_id not in ids and c.target_block_id not in ids
            ),
            interaction=_forget_blocks(page.interaction, ids),
        ))
    return replace(state, pages=tuple(pages))


def delete_block(state: CanvasState, block_id: int) -> CanvasState:
    if find_block(state, block_id) is None:
        return state
    logging.debug(f"delete block {block_id}")
    return save_memento_and_return(state, _remove_blocks(state, {block_id}))


def delete_selected_blocks(state: CanvasState) -> CanvasState:
    """delete every selected block on the current page as one undo step."""
    ids = set(state.current_page.interaction.selected_ids)
    if not ids:
        return state
    return save_memento_and_return(state, _remove_blocks(state, ids))


def send_to_front(state: CanvasState, block_id: int) -> CanvasState:
    block = find_block(state, block_id)
    if block is None:
        return state
    new = replace_block(state, replace(block, z_order=max_z_order(state) + 1))
    return save_memento_and_return(state, new)


def send_to_back(state: CanvasState, block_id: int) -> CanvasState:
    block = find_block(state, block_id)
    if block is None:
        return state
    new = replace_block(state, replace(block, z_order=min_z_order(state) - 1))
    return save_memento_and_return(state, new)


def move_block(state: CanvasState, block_id: int, x: float, y: float) -> CanvasState:
    """place a block at an absolute position as one undo step."""
    block = find_block(state, block_id)
    if block is None or (block.x, block.y) == (x, y):
        return state
    return save_memento_and_return(state, replace_block(state, replace(block, x=x, y=y)))


def resize_block(state: CanvasState, block_id: int, geometry: Geometry) -> CanvasState:
    """set a block's geometry as one undo step."""
    block = find_block(state, block_id)
    geometry = replace(
        geometry, width=max(MIN_SIZE, geometry.width), height=max(MIN_SIZE, geometry.height)
    )
    if block is None or block.geometry == geometry:
        return state
    return save_memento_and_return(state, replace_block(state, block.with_geometry(geometry)))


# --- clipboard ---

def copy_selected_block(state: CanvasState) -> CanvasState:
    """snapshot the first selected block into the clipboard."""
    selected = state.current_page.interaction.selected_ids
    block = state.current_page.find_block(selected[0]) if selected else None
    if block is None:
        return state
    return replace(state, clipboard=replace(block, id=CLIPBOARD_BLOCK_ID))


async def clear_host_clipboard(dispatch: Callable[..., None], host: Host) -> None:
    """effect: clear the system text clipboard after an in-app paste."""
    try:
        await host.write_clipboard("")
    except OSError as e:
        logging.warning(f"failed to clear clipboard: {e}")


def paste_block(state: CanvasState, host: Optional[Host] = None) -> CanvasState | WithEffects:
    """paste the clipboard block onto the current page, offset by (20, 20)."""
    if state.clipboard is None:
        return state
    src = state.clipboard
    page = state.current_page
    block = replace(
        src,
        id=next_block_id(state),
        x=src.x + PASTE_OFFSET_X,
        y=src.y + PASTE_OFFSET_Y,
        z_order=max_z_order(state) + 1,
    )
    new = update_page(
        state,
        page.id,
        lambda p: replace(
            p,
            blocks=p.blocks + (block,),
            interaction=replace(
                p.interaction,
                selected_ids=(block.id,),
                editing_id=None,
                connecting_id=None,
            ),
        ),
    )
    new = save_memento_and_return(state, new)
    if host is None:
        return new
    return with_effects(new, Effect.of(clear_host_clipboard, host))


# --- pages ---

def create_page(
    state: CanvasState,
    name: Optional[str] = None,
    program: Optional[ProgramData] = None,
) -> CanvasState:
    """append a page and switch to it."""
    page = Page.create(name=name or f"Page {len(state.pages) + 1}", program=program)
    new = replace(state, pages=state.pages + (page,), current_page_id=page.id)
    return save_memento_and_return(state, new)


def delete_page(state: CanvasState, page_id: str) -> CanvasState:
    """remove a page. the last page cannot be deleted."""
    if len(state.pages) <= 1 or state.find_page(page_id) is None:
        return state
    pages = tuple(p for p in state.pages if p.id != page_id)
    current = state.current_page_id
    if current == page_id:
        current = pages[0].id
    return save_memento_and_return(state, replace(state, pages=pages, current_page_id=current))


def rename_page(state: CanvasState, page_id: str, name: str) -> CanvasState:
    page = state.find_page(page_id)
    if page is None or page.name == name:
        return state
    return save_memento_and_return(state, update_page(state, page_id, lambda p: replace(p, name=name)))


def switch_page(state: CanvasState, page_id: str) -> CanvasState:
    if state.find_page(page_id) is None or state.current_page_id == page_id:
        return state
    return replace(state, current_page_id=page_id)


def reset_page_program(state: CanvasState, page_id: str, registry: ProgramRegistry) -> CanvasState:
    """put a page-level program back to its declared initial state."""
    page = state.find_page(page_id)
    if page is None or page.program is None:
        return state
    program = registry.get(page.program.name)
    if program is None:
        return state
    fresh = replace(page.program, state=program.fresh_state())
    return save_memento_and_return(state, update_page(state, page_id, lambda p: replace(p, program=fresh)))


# --- connections ---

def connect_blocks(
    state: CanvasState,
    name: str,
    source_id: int,
    target_id: int,
    registry: ProgramRegistry,
) -> CanvasState:
    """wire source's slot `name` to target, if the slot accepts it.

    a slot holds one target: connecting again replaces the old edge.
    rejected connections leave the state untouched.
    """
    if source_id == target_id:
        return state
    page = page_of_block(state, source_id)
    if page is None:
        return state
    source = page.find_block(source_id)
    target = page.find_block(target_id)
    if target is None:
        return state

    program = registry.get(source.program.name)
    if program is None or not program.accepts(name, target.program.name):
        err = ConnectionRejected(
            f"{source.program.name}.{name} does not accept {target.program.name}"
        )
        logging.debug(f"connect {source_id}->{target_id}: {err}")
        return state

    connection = Connection(name=name, source_block_id=source_id, target_block_id=target_id)
    if connection in page.connections:
        return state
    connections = tuple(
        c for c in page.connections
        if not (c.source_block_id == source_id and c.name == name)
    ) + (connection,)
    new = update_page(state, page.id, lambda p: replace(p, connections=connections))
    return save_memento_and_return(state, new)


def disconnect(state: CanvasState, name: str, source_id: int) -> CanvasState:
    page = page_of_block(state, source_id)
    if page is None:
        return state
    connections = tuple(
        c for c in page.connections
        if not (c.source_block_id == source_id and c.name == name)
    )
    if len(connections) == len(page.connections):
        return state
    new = update_page(state, page.id, lambda p: replace(p, connections=connections))
    return save_memento_and_return(state, new)


def connected_block_ids(state: CanvasState, source_id: int) -> list[int]:
    """targets of every connection leaving source_id."""
    page = page_of_block(state, source_id)
    if page is None:
        return []
    return [c.target_block_id for c in page.connections if c.source_block_id == source_id]


def prune_connections(state: CanvasState) -> CanvasState:
    """drop connections whose endpoints no longer exist on their page.

    returns the same object when nothing was pruned.
    """
    changed = False
    pages = []
    for page in state.pages:
        ids = page.block_ids
        kept = tuple(
            c for c in page.connections
            if c.source_block_id in ids and c.target_block_id in ids
        )
        if len(kept) != len(page.connections):
            changed = True
            logging.debug(f"pruned {len(page.connections) - len(kept)} connection(s) on page {page.id}")
            page = replace(page, connections=kept)
        pages.append(page)
    return replace(state, pages=tuple(pages)) if changed else state


# --- selection ---

def selected_blocks(state: CanvasState) -> list[Block]:
    page = state.current_page
    return [b for b in (page.find_block(i) for i in page.interaction.selected_ids) if b]


def select_block(state: CanvasState, block_id: int) -> CanvasState:
    if state.current_page.find_block(block_id) is None:
        return state
    return update_interaction(state, selected_ids=(block_id,), editing_id=None, connecting_id=None)


def add_to_selection(state: CanvasState, block_id: int) -> CanvasState:
    selected = state.current_page.interaction.selected_ids
    if block_id in selected or state.current_page.find_block(block_id) is None:
        return state
    return update_interaction(state, selected_ids=selected + (block_id,))


def remove_from_selection(state: CanvasState, block_id: int) -> CanvasState:
    selected = state.current_page.interaction.selected_ids
    if block_id not in selected:
        return state
    return update_interaction(state, selected_ids=tuple(i for i in selected if i != block_id))


def toggle_selection(state: CanvasState, block_id: int) -> CanvasState:
    if block_id in state.current_page.interaction.selected_ids:
        return remove_from_selection(state, block_id)
    return add_to_selection(state, block_id)


def deselect_all(state: CanvasState) -> CanvasState:
    return update_interaction(state, selected_ids=(), editing_id=None, connecting_id=None)


def select_next_block(state: CanvasState) -> CanvasState:
    """cycle the single selection through the current page by z-order."""
    blocks = sorted(state.current_page.blocks, key=lambda b: (b.z_order, b.id))
    if not blocks:
        return state
    selected = state.current_page.interaction.selected_ids
    ids = [b.id for b in blocks]
    idx = ids.index(selected[-1]) + 1 if selected and selected[-1] in ids else 0
    return select_block(state, ids[idx % len(ids)])


def bounding_box(blocks: list[Block]) -> Optional[Geometry]:
    if not blocks:
        return None
    x = min(b.x for b in blocks)
    y = min(b.y for b in blocks)
    right = max(b.x + b.width for b in blocks)
    bottom = max(b.y + b.height for b in blocks)
    return Geometry(x, y, right - x, bottom - y)


def selection_bounding_box(state: CanvasState) -> Optional[Geometry]:
    return bounding_box(selected_blocks(state))


def is_point_in_selection_bounds(state: CanvasState, x: float, y: float) -> bool:
    """only meaningful for a multi-selection; (x, y) in canvas space."""
    blocks = selected_blocks(state)
    if len(blocks) < 2:
        return False
    return bounding_box(blocks).contains(x, y)


def enter_edit_mode(state: CanvasState, block_id: int) -> CanvasState:
    """edit mode and connect mode are mutually exclusive."""
    if state.current_page.find_block(block_id) is None:
        return state
    return update_interaction(
        state,
        selected_ids=(block_id,),
        editing_id=block_id,
        connecting_id=None,
        drag_start=None,
    )


def exit_edit_mode(state: CanvasState) -> CanvasState:
    if state.current_page.interaction.editing_id is None:
        return state
    return update_interaction(state, editing_id=None)


def toggle_connect_mode(state: CanvasState) -> CanvasState:
    """start connecting from the single selected block, or stop."""
    interaction = state.current_page.interaction
    if len(interaction.selected_ids) != 1:
        return state
    block_id = interaction.selected_ids[0]
    if interaction.connecting_id == block_id:
        return update_interaction(state, connecting_id=None)
    return update_interaction(state, connecting_id=block_id, editing_id=None)


def set_hovering(state: CanvasState, block_id: Optional[int]) -> CanvasState:
    if state.current_page.interaction.hovering_id == block_id:
        return state
    return update_interaction(state, hovering_id=block_id)


# --- application flags ---

def set_dark_mode(state: CanvasState, dark: bool) -> CanvasState:
    return replace(state, is_dark_mode=dark)


def set_screen_size(state: CanvasState, width: float, height: float) -> CanvasState:
    return replace(state, screen=(width, height))


def dismiss_notification(state: CanvasState, message: Optional[str] = None) -> CanvasState:
    """clear the notification (only if it is still `message`, when given)."""
    if state.notification is None:
        return state
    if message is not None and state.notification != message:
        return state
    return replace(state, notification=None)


async def _auto_dismiss(dispatch: Callable[..., None], message: str, delay: float) -> None:
    await asyncio.sleep(delay)
    dispatch(dismiss_notification, message)


def show_notification(
    state: CanvasState,
    message: str,
    timeout: float = NOTIFICATION_TIMEOUT,
) -> WithEffects:
    """show a transient message that dismisses itself after `timeout` seconds."""
    return with_effects(replace(state, notification=message), Effect.of(_auto_dismiss, message, timeout))
