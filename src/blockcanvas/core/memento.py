"""snapshot-based undo/redo.

a memento is a deep copy of the pages, the current page id and the
current selection, captured from the state *before* a mutation. restoring
one also resets transient gesture flags so the ui never gets stuck
mid-drag.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace

from .constants import MAX_UNDO_HISTORY
from .models import CanvasState, History, Memento


def create_memento(state: CanvasState) -> Memento:
    return Memento(
        pages=copy.deepcopy(state.pages),
        current_page_id=state.current_page_id,
        selection=state.current_page.interaction.selected_ids,
    )


def push_memento(history: History, memento: Memento) -> History:
    """append to the undo stack (dropping the oldest past the cap) and clear redo."""
    undo_stack = history.undo_stack + (memento,)
    if len(undo_stack) > MAX_UNDO_HISTORY:
        undo_stack = undo_stack[-MAX_UNDO_HISTORY:]
    return History(undo_stack=undo_stack, redo_stack=())


def save_memento_and_return(prev: CanvasState, new: CanvasState) -> CanvasState:
    """record prev in history and return new carrying that history."""
    return replace(new, history=push_memento(prev.history, create_memento(prev)))


def can_undo(state: CanvasState) -> bool:
    return bool(state.history.undo_stack)


def can_redo(state: CanvasState) -> bool:
    return bool(state.history.redo_stack)


def undo(state: CanvasState) -> CanvasState:
    """restore the most recent memento. no-op when the stack is empty."""
    if not state.history.undo_stack:
        return state
    *rest, memento = state.history.undo_stack
    history = History(
        undo_stack=tuple(rest),
        redo_stack=state.history.redo_stack + (create_memento(state),),
    )
    logging.debug(f"undo: {len(rest)} left")
    return _restore(state, memento, history)


def redo(state: CanvasState) -> CanvasState:
    """reapply the most recently undone memento. no-op when the stack is empty."""
    if not state.history.redo_stack:
        return state
    *rest, memento = state.history.redo_stack
    history = History(
        undo_stack=state.history.undo_stack + (create_memento(state),),
        redo_stack=tuple(rest),
    )
    logging.debug(f"redo: {len(rest)} left")
    return _restore(state, memento, history)


def _restore(state: CanvasState, memento: Memento, history: History) -> CanvasState:
    # copy again so the memento itself stays pristine for a later redo
    pages = []
    for page in copy.deepcopy(memento.pages):
        interaction = page.interaction.without_gestures()
        if page.id == memento.current_page_id:
            ids = page.block_ids
            interaction = replace(
                interaction,
                selected_ids=tuple(i for i in memento.selection if i in ids),
            )
        pages.append(replace(page, interaction=interaction))
    return replace(
        state,
        pages=tuple(pages),
        current_page_id=memento.current_page_id,
        history=history,
        is_viewport_dragging=False,
        cursor="default",
    )
