"""tests for undo/redo."""

from dataclasses import replace

import pytest

from blockcanvas.core.constants import MAX_UNDO_HISTORY
from blockcanvas.core.manipulation import PointerEvent, pointer_down_on_block
from blockcanvas.core.memento import can_redo, can_undo, redo, undo
from blockcanvas.core.models import CanvasState, Geometry
from blockcanvas.core.store import (
    add_block,
    delete_block,
    move_block,
    rename_page,
    resize_block,
    send_to_front,
    toggle_connect_mode,
)


def _mutations():
    """a mix of undoable operations, each a function of the state."""
    return [
        lambda s: add_block(s, "counter", x=10, y=10),
        lambda s: add_block(s, "note", x=300, y=40),
        lambda s: move_block(s, 1, 55, 66),
        lambda s: send_to_front(s, 1),
        lambda s: resize_block(s, 2, Geometry(300, 40, 80, 90)),
        lambda s: rename_page(s, s.current_page_id, "renamed"),
        lambda s: add_block(s, "counter", x=0, y=500),
        lambda s: delete_block(s, 2),
    ]


class TestUndoRedo:
    """tests for the history stacks."""

    def test_empty_history_is_noop(self):
        """undo/redo with nothing recorded leave the state alone."""
        state = CanvasState.initial()
        assert undo(state) is state
        assert redo(state) is state
        assert not can_undo(state)
        assert not can_redo(state)

    @pytest.mark.parametrize("n", range(1, 9))
    def test_undo_restores_previous_pages(self, n):
        """after n mutations, undo k times gives the pages from before mutation n-k+1."""
        state = CanvasState.initial()
        befores = []
        for mutate in _mutations()[:n]:
            befores.append(state)
            state = mutate(state)
        for k in range(1, n + 1):
            state = undo(state)
            assert state.pages == befores[-k].pages
            assert state.current_page_id == befores[-k].current_page_id
        assert not can_undo(state)

    def test_redo_restores_state_before_undo(self):
        """redo brings back exactly what undo replaced."""
        state = CanvasState.initial()
        for mutate in _mutations()[:4]:
            state = mutate(state)
        undone = undo(state)
        redone = redo(undone)
        assert redone.pages == state.pages
        assert not can_redo(redone)
        assert can_undo(redone)

    def test_new_mutation_clears_redo(self):
        """branching off drops the redo stack."""
        state = add_block(CanvasState.initial(), "counter", x=0, y=0)
        state = undo(state)
        assert can_redo(state)
        state = add_block(state, "note", x=0, y=0)
        assert not can_redo(state)

    def test_history_is_capped(self):
        """only the newest entries survive past the cap."""
        state = CanvasState.initial()
        for i in range(MAX_UNDO_HISTORY + 5):
            state = add_block(state, "counter", x=i, y=0)
        assert len(state.history.undo_stack) == MAX_UNDO_HISTORY
        # the oldest kept entry was taken before the sixth add
        assert len(state.history.undo_stack[0].pages[0].blocks) == 5

    def test_restore_resets_gestures(self):
        """restoring a snapshot never leaves the ui mid-gesture."""
        state = add_block(CanvasState.initial(), "counter", x=0, y=0)
        state = add_block(state, "counter", x=300, y=0)
        state = toggle_connect_mode(state)
        state = pointer_down_on_block(state, 2, PointerEvent(310, 10))
        state = replace(state, is_viewport_dragging=True, cursor="grabbing")

        restored = undo(state)
        interaction = restored.current_page.interaction
        assert interaction.drag_start is None
        assert interaction.resizing is None
        assert interaction.connecting_id is None
        assert interaction.selection_box is None
        assert restored.is_viewport_dragging is False
        assert restored.cursor == "default"

    def test_restore_keeps_memento_pristine(self):
        """undo, redo, undo again gives the same pages both times."""
        state = add_block(CanvasState.initial(), "counter", x=0, y=0)
        state = move_block(state, 1, 40, 40)
        first = undo(state)
        second = undo(redo(first))
        assert first.pages == second.pages

    def test_restored_selection_only_names_existing_blocks(self):
        """selection in a memento is filtered against the restored page."""
        state = add_block(CanvasState.initial(), "counter", x=0, y=0)
        state = delete_block(state, 1)
        restored = undo(state)
        assert restored.current_page.interaction.selected_ids == (1,)
        assert redo(restored).current_page.interaction.selected_ids == ()
