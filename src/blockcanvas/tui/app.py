"""blockcanvas: terminal front end.

renders the current page as a character map and maps keys onto the same
store and gesture operations the api exposes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Footer, Header, Input, Static

from ..core import store
from ..core.constants import DEFAULT_AUTOSAVE_INTERVAL, WHEEL_NOTCH, get_data_dir
from ..core.host import MemoryHost, sync_theme
from ..core.manipulation import PointerEvent, pointer_down_on_block, pointer_move, pointer_up, wheel
from ..core.memento import can_redo, can_undo, redo, undo
from ..core.models import CanvasState
from ..core.persistence import Autosaver, FileStorage, Storage, load_state
from ..core.programs import Effect, ProgramRegistry, with_effects
from ..core.runtime import Runtime
from ..core.viewport import WheelEvent, to_screen
from ..programs import builtin_registry
from .widgets.canvas_map import CELL_HEIGHT, CELL_WIDTH, BlockClicked, CanvasClicked, CanvasMap


class TextualHost(MemoryHost):
    """host backed by the terminal: clipboard writes go to the terminal clipboard."""

    def __init__(self, app: App, **kwargs):
        super().__init__(**kwargs)
        self.app = app

    async def write_clipboard(self, text: str) -> None:
        await super().write_clipboard(text)
        self.app.copy_to_clipboard(text)

    async def get_system_theme(self) -> str:
        self.calls.append("get_system_theme")
        return "dark" if self.app.current_theme.dark else "light"


class CanvasApp(App):
    """main application."""

    TITLE = "blockcanvas"

    CSS = """
    Screen {
        layout: vertical;
    }

    #main-container {
        height: 1fr;
    }

    #inspector {
        height: auto;
        max-height: 8;
        padding: 0 1;
        background: $surface;
    }

    #status {
        height: 1;
        padding: 0 1;
        color: $text-muted;
    }

    #edit-input {
        display: none;
    }

    #edit-input.visible {
        display: block;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "quit"),
        Binding("u", "undo", "undo"),
        Binding("r", "redo", "redo"),
        Binding("1", "add_block('counter')", "counter"),
        Binding("2", "add_block('note')", "note"),
        Binding("3", "add_block('mirror')", "mirror"),
        Binding("4", "add_block('ticker')", "ticker", show=False),
        Binding("d", "delete", "delete"),
        Binding("c", "copy", "copy"),
        Binding("v", "paste", "paste"),
        Binding("f", "front", "front", show=False),
        Binding("b", "back", "back", show=False),
        Binding("tab", "select_next", "next", show=False),
        Binding("x", "connect", "connect"),
        Binding("e", "edit", "edit"),
        Binding("a", "run_action", "act"),
        Binding("up", "move(0, -1)", "up", show=False),
        Binding("down", "move(0, 1)", "down", show=False),
        Binding("left", "move(-1, 0)", "left", show=False),
        Binding("right", "move(1, 0)", "right", show=False),
        Binding("plus", "zoom(1)", "zoom in", show=False),
        Binding("minus", "zoom(-1)", "zoom out", show=False),
        Binding("p", "new_page", "page"),
        Binding("right_square_bracket", "cycle_page(1)", "next page", show=False),
        Binding("left_square_bracket", "cycle_page(-1)", "prev page", show=False),
        Binding("s", "save", "save"),
        Binding("escape", "cancel", "cancel", show=False),
    ]

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        storage: Optional[Storage] = None,
        registry: Optional[ProgramRegistry] = None,
        autosave_interval: float = DEFAULT_AUTOSAVE_INTERVAL,
    ):
        super().__init__()
        self.registry = registry or builtin_registry()
        self.storage = storage or FileStorage(data_dir or get_data_dir())
        self.host = TextualHost(self)
        self.runtime = Runtime(self.registry, host=self.host)
        self.autosaver = Autosaver(self.runtime, self.storage, interval=autosave_interval)
        self._last_notification: Optional[str] = None
        self._unsubscribe = self.runtime.subscribe(lambda _state: self._refresh_all())

    @property
    def canvas(self) -> CanvasState:
        return self.runtime.state

    def compose(self) -> ComposeResult:
        """compose the app layout."""
        yield Header()

        with Vertical(id="main-container"):
            yield CanvasMap(self.canvas, self.runtime.engine, id="canvas-map")
            yield Input(placeholder="note text...", id="edit-input")
            yield Static("", id="inspector")
            yield Static("", id="status")

        yield Footer()

    async def on_mount(self) -> None:
        """load the saved canvas and start autosave."""
        self.runtime.replace_state(await load_state(self.storage))
        self.autosaver.mark_clean()
        await self.autosaver.start()
        self.runtime.apply(lambda state: with_effects(state, Effect.of(sync_theme, self.host)))
        self.query_one("#canvas-map", CanvasMap).focus()
        self._refresh_all()

    async def on_unmount(self) -> None:
        """flush and tear down."""
        self._unsubscribe()
        await self.autosaver.save()
        await self.autosaver.stop()
        self.autosaver.close()
        self.runtime.close()

    def _refresh_all(self) -> None:
        """refresh every widget from the current tree."""
        if not self.is_mounted:
            return
        canvas = self.canvas
        self.query_one("#canvas-map", CanvasMap).refresh_canvas(canvas)
        self.query_one("#inspector", Static).update(self._inspector_text(canvas))
        self.query_one("#status", Static).update(self._status_text(canvas))
        if canvas.notification and canvas.notification != self._last_notification:
            self.notify(canvas.notification, severity="warning")
        self._last_notification = canvas.notification

    def _inspector_text(self, canvas: CanvasState) -> str:
        selected = store.selected_blocks(canvas)
        if not selected:
            return "no selection"
        if len(selected) > 1:
            box = store.selection_bounding_box(canvas)
            return f"{len(selected)} blocks selected  bbox {box.x:.0f},{box.y:.0f} {box.width:.0f}x{box.height:.0f}"
        block = selected[0]
        actions = ", ".join(self.runtime.engine.lifted_actions(block.id)) or "none"
        targets = store.connected_block_ids(canvas, block.id)
        links = f"  → {', '.join(f'#{t}' for t in targets)}" if targets else ""
        return (
            f"#{block.id} {block.program.name} at {block.x:.0f},{block.y:.0f} "
            f"{block.width:.0f}x{block.height:.0f} z={block.z_order}{links}\n"
            f"actions: {actions}\n"
            f"{self.runtime.engine.render(block.id).plain}"
        )

    def _status_text(self, canvas: CanvasState) -> str:
        page = canvas.current_page
        index = [p.id for p in canvas.pages].index(page.id) + 1
        mode = ""
        if page.interaction.connecting_id is not None:
            mode = "  [connecting]"
        elif page.interaction.editing_id is not None:
            mode = "  [editing]"
        dirty = " *" if self.autosaver.is_dirty else ""
        return (
            f"{page.name} ({index}/{len(canvas.pages)})  zoom {page.viewport.zoom:.2f}  "
            f"undo {len(canvas.history.undo_stack)}  redo {len(canvas.history.redo_stack)}{mode}{dirty}"
        )

    def _selected_id(self) -> Optional[int]:
        selected = self.canvas.current_page.interaction.selected_ids
        return selected[-1] if selected else None

    # --- messages ---

    def on_block_clicked(self, event: BlockClicked) -> None:
        """press and release on a block: selects it, or completes a connection."""
        block = self.canvas.current_page.find_block(event.block_id)
        if block is None:
            return
        sx, sy = to_screen(self.canvas.current_page.viewport, *block.center)
        ev = PointerEvent(sx, sy, shift=event.shift)
        self.runtime.apply(pointer_down_on_block, event.block_id, ev, self.registry)
        self.runtime.apply(pointer_up, ev)

    def on_canvas_clicked(self, event: CanvasClicked) -> None:
        self.runtime.apply(store.deselect_all)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """write edited text into the block being edited."""
        if event.input.id != "edit-input":
            return
        editing = self.canvas.current_page.interaction.editing_id
        actions = self.runtime.engine.lifted_actions(editing) if editing is not None else {}
        if "set_text" in actions:
            self.runtime.dispatch(actions["set_text"], event.input.value)
        self._close_editor()

    def _close_editor(self) -> None:
        editor = self.query_one("#edit-input", Input)
        editor.remove_class("visible")
        editor.value = ""
        self.runtime.apply(store.exit_edit_mode)
        self.query_one("#canvas-map", CanvasMap).focus()

    # --- actions ---

    def action_undo(self) -> None:
        if not can_undo(self.canvas):
            self.notify("nothing to undo", severity="warning")
            return
        self.runtime.apply(undo)

    def action_redo(self) -> None:
        if not can_redo(self.canvas):
            self.notify("nothing to redo", severity="warning")
            return
        self.runtime.apply(redo)

    def action_add_block(self, program_name: str) -> None:
        self.runtime.apply(store.add_block, program_name, registry=self.registry)

    def action_delete(self) -> None:
        self.runtime.apply(store.delete_selected_blocks)

    def action_copy(self) -> None:
        if self._selected_id() is None:
            self.notify("no block selected", severity="warning")
            return
        self.runtime.apply(store.copy_selected_block)
        self.notify("copied")

    def action_paste(self) -> None:
        if self.canvas.clipboard is None:
            self.notify("clipboard is empty", severity="warning")
            return
        self.runtime.apply(store.paste_block, self.host)

    def action_front(self) -> None:
        block_id = self._selected_id()
        if block_id is not None:
            self.runtime.apply(store.send_to_front, block_id)

    def action_back(self) -> None:
        block_id = self._selected_id()
        if block_id is not None:
            self.runtime.apply(store.send_to_back, block_id)

    def action_select_next(self) -> None:
        self.runtime.apply(store.select_next_block)

    def action_connect(self) -> None:
        """toggle connect mode; then click the block to connect to."""
        self.runtime.apply(store.toggle_connect_mode)

    def action_edit(self) -> None:
        block_id = self._selected_id()
        if block_id is None:
            return
        self.runtime.apply(store.enter_edit_mode, block_id)
        if "set_text" not in self.runtime.engine.lifted_actions(block_id):
            return
        editor = self.query_one("#edit-input", Input)
        block = self.canvas.current_page.find_block(block_id)
        editor.value = (block.program.state or {}).get("text", "")
        editor.add_class("visible")
        editor.focus()

    def action_cancel(self) -> None:
        if self.canvas.current_page.interaction.editing_id is not None:
            self._close_editor()
        else:
            self.runtime.apply(store.deselect_all)

    def action_run_action(self) -> None:
        """run the selected block's first program action."""
        block_id = self._selected_id()
        if block_id is None:
            return
        actions = self.runtime.engine.lifted_actions(block_id)
        if not actions:
            self.notify("block has no actions", severity="warning")
            return
        self.runtime.dispatch(next(iter(actions.values())))

    def action_move(self, dx: int, dy: int) -> None:
        """nudge the selection one cell, as a drag gesture (one undo step)."""
        block_id = self._selected_id()
        block = self.canvas.current_page.find_block(block_id) if block_id is not None else None
        if block is None:
            return
        sx, sy = to_screen(self.canvas.current_page.viewport, *block.center)
        start = PointerEvent(sx, sy)
        end = PointerEvent(sx + dx * CELL_WIDTH, sy + dy * CELL_HEIGHT)
        self.runtime.apply(pointer_down_on_block, block_id, start, self.registry)
        self.runtime.apply(pointer_move, end)
        self.runtime.apply(pointer_up, end)

    def action_zoom(self, direction: int) -> None:
        """zoom one wheel notch around the middle of the map."""
        width, height = self.canvas.screen
        self.runtime.apply(wheel, WheelEvent(width / 2, height / 2, delta_y=-direction * WHEEL_NOTCH))

    def action_new_page(self) -> None:
        self.runtime.apply(store.create_page)

    def action_cycle_page(self, step: int) -> None:
        ids = [p.id for p in self.canvas.pages]
        index = ids.index(self.canvas.current_page.id)
        self.runtime.apply(store.switch_page, ids[(index + step) % len(ids)])

    async def action_save(self) -> None:
        self.autosaver.mark_dirty()
        if await self.autosaver.save():
            self.notify("saved")


def run(
    data_dir: Optional[str] = None,
    autosave_interval: float = DEFAULT_AUTOSAVE_INTERVAL,
) -> None:
    """run the blockcanvas app."""
    app = CanvasApp(
        data_dir=Path(data_dir) if data_dir else None,
        autosave_interval=autosave_interval,
    )
    app.run()


if __name__ == "__main__":
    run()
