"""canvas map widget: character-cell rendering of the current page.

blocks are drawn as boxes in z-order (topmost last) using the page
viewport. click a block to select it.
"""

from __future__ import annotations

from typing import Optional

from rich.text import Text
from textual.binding import Binding
from textual.message import Message
from textual.widgets import Static

from ...core.composition import CompositionEngine
from ...core.models import Block, CanvasState
from ...core.viewport import to_screen

# screen px represented by one terminal cell
CELL_WIDTH = 10
CELL_HEIGHT = 20


class BlockClicked(Message):
    """message emitted when a block is clicked in the map."""

    def __init__(self, block_id: int, shift: bool = False) -> None:
        self.block_id = block_id
        self.shift = shift
        super().__init__()


class CanvasClicked(Message):
    """message emitted when empty canvas is clicked."""


class CanvasMap(Static, can_focus=True):
    """ascii rendering of the current page."""

    BINDINGS = [
        Binding("k", "app.move(0, -1)", "up", show=False),
        Binding("j", "app.move(0, 1)", "down", show=False),
        Binding("h", "app.move(-1, 0)", "left", show=False),
        Binding("l", "app.move(1, 0)", "right", show=False),
    ]

    DEFAULT_CSS = """
    CanvasMap {
        height: 1fr;
        min-height: 10;
        border: solid $surface-lighten-2;
    }

    CanvasMap:focus {
        border: solid $primary;
    }
    """

    def __init__(self, canvas: CanvasState, engine: CompositionEngine, **kwargs) -> None:
        super().__init__(**kwargs)
        self.canvas = canvas
        self.engine = engine
        self._cells: dict[tuple[int, int], int] = {}  # (row, col) -> block id

    def render(self) -> Text:
        page = self.canvas.current_page
        width = max(self.size.width, 1)
        height = max(self.size.height, 1)
        if not page.blocks:
            return Text("(empty page: press 1-4 to add a block)", style="dim")

        grid = [[" "] * width for _ in range(height)]
        styles: list[list[Optional[str]]] = [[None] * width for _ in range(height)]
        self._cells.clear()

        for block in sorted(page.blocks, key=lambda b: (b.z_order, b.id)):
            self._draw_block(block, grid, styles)

        text = Text()
        for row in range(height):
            for col in range(width):
                text.append(grid[row][col], style=styles[row][col] or "")
            if row < height - 1:
                text.append("\n")
        return text

    def _cell_rect(self, block: Block) -> tuple[int, int, int, int]:
        viewport = self.canvas.current_page.viewport
        x0, y0 = to_screen(viewport, block.x, block.y)
        x1, y1 = to_screen(viewport, block.x + block.width, block.y + block.height)
        left, top = int(x0 // CELL_WIDTH), int(y0 // CELL_HEIGHT)
        right = max(int(x1 // CELL_WIDTH), left + 2)
        bottom = max(int(y1 // CELL_HEIGHT), top + 2)
        return left, top, right, bottom

    def _block_style(self, block: Block) -> str:
        interaction = self.canvas.current_page.interaction
        if interaction.connecting_id == block.id:
            return "bold magenta"
        if interaction.editing_id == block.id:
            return "bold yellow"
        if block.id in interaction.selected_ids:
            return "bold cyan"
        if block.id in interaction.preview_selected_ids:
            return "cyan"
        inst = self.engine.instance(block.id)
        if inst is not None and (inst.error or not inst.is_running):
            return "red"
        return "dim"

    def _draw_block(self, block: Block, grid: list[list[str]], styles: list[list[Optional[str]]]) -> None:
        left, top, right, bottom = self._cell_rect(block)
        style = self._block_style(block)
        rows, cols = len(grid), len(grid[0])

        def put(r: int, c: int, ch: str, s: Optional[str] = style) -> None:
            if 0 <= r < rows and 0 <= c < cols:
                grid[r][c] = ch
                styles[r][c] = s
                self._cells[(r, c)] = block.id

        for c in range(left, right + 1):
            put(top, c, "─")
            put(bottom, c, "─")
        for r in range(top, bottom + 1):
            put(r, left, "│")
            put(r, right, "│")
            if top < r < bottom:
                for c in range(left + 1, right):
                    put(r, c, " ", None)
        put(top, left, "┌")
        put(top, right, "┐")
        put(bottom, left, "└")
        put(bottom, right, "┘")

        inner = right - left - 1
        label = f"#{block.id} {block.program.name}"[:max(inner, 0)]
        for i, ch in enumerate(label):
            put(top, left + 1 + i, ch)
        if bottom - top > 1 and inner > 0:
            body = self.engine.render(block.id).plain.splitlines() or [""]
            for i, line in enumerate(body[: bottom - top - 1]):
                for j, ch in enumerate(line[:inner]):
                    put(top + 1 + i, left + 1 + j, ch, None)

    def block_at(self, row: int, col: int) -> Optional[int]:
        return self._cells.get((row, col))

    def on_click(self, event) -> None:
        """handle click to select a block."""
        self.focus()
        block_id = self.block_at(event.y, event.x)
        if block_id is None:
            self.post_message(CanvasClicked())
        else:
            self.post_message(BlockClicked(block_id, shift=event.shift))
        event.stop()

    def refresh_canvas(self, canvas: CanvasState) -> None:
        """update with new canvas state."""
        self.canvas = canvas
        self.refresh()
