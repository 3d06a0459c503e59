"""core data model for blockcanvas.

pages of positioned blocks, each hosting one program instance. every
object here is immutable: mutations build a new tree with
``dataclasses.replace`` and leave the old one untouched, which is what
lets the history keep cheap references to past pages.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from .constants import DEFAULT_SCREEN_SIZE


@dataclass(frozen=True)
class ProgramData:
    """program bound to a block (or page): registry name + opaque state."""

    name: str
    state: Any = None

    def to_dict(self) -> dict:
        return {"name": self.name, "state": copy.deepcopy(self.state)}

    @classmethod
    def from_dict(cls, d: dict) -> ProgramData:
        return cls(name=d["name"], state=copy.deepcopy(d.get("state")))


@dataclass(frozen=True)
class Geometry:
    """axis-aligned rectangle in canvas space."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.right and self.y <= py <= self.bottom

    def intersects(self, other: Geometry) -> bool:
        return not (
            self.x > other.right
            or self.right < other.x
            or self.y > other.bottom
            or self.bottom < other.y
        )


@dataclass(frozen=True)
class Block:
    """a positioned, sized, z-ordered container hosting one program."""

    id: int
    x: float
    y: float
    width: float
    height: float
    z_order: int
    program: ProgramData

    @property
    def geometry(self) -> Geometry:
        return Geometry(self.x, self.y, self.width, self.height)

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def with_geometry(self, geometry: Geometry) -> Block:
        return replace(
            self,
            x=geometry.x,
            y=geometry.y,
            width=geometry.width,
            height=geometry.height,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "zOrder": self.z_order,
            "program": self.program.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> Block:
        return cls(
            id=int(d["id"]),
            x=float(d["x"]),
            y=float(d["y"]),
            width=float(d["width"]),
            height=float(d["height"]),
            z_order=int(d.get("zOrder", 0)),
            program=ProgramData.from_dict(d["program"]),
        )


@dataclass(frozen=True)
class Connection:
    """directed, named edge from a source block's program to a target's."""

    name: str
    source_block_id: int
    target_block_id: int

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "sourceBlockId": self.source_block_id,
            "targetBlockId": self.target_block_id,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Connection:
        return cls(
            name=d["name"],
            source_block_id=int(d["sourceBlockId"]),
            target_block_id=int(d["targetBlockId"]),
        )


@dataclass(frozen=True)
class Viewport:
    """pan/zoom of a page: screen = canvas * zoom + offset."""

    offset_x: float = 0.0
    offset_y: float = 0.0
    zoom: float = 1.0

    def to_dict(self) -> dict:
        return {"offsetX": self.offset_x, "offsetY": self.offset_y, "zoom": self.zoom}

    @classmethod
    def from_dict(cls, d: dict) -> Viewport:
        return cls(
            offset_x=float(d.get("offsetX", 0.0)),
            offset_y=float(d.get("offsetY", 0.0)),
            zoom=float(d.get("zoom", 1.0)),
        )


@dataclass(frozen=True)
class DragStart:
    """reference block of a drag and where it started."""

    id: int
    start_x: float
    start_y: float


@dataclass(frozen=True)
class ResizeState:
    """an in-progress resize.

    block_id is None when the multi-selection bounding box is being
    resized; original_blocks then holds every selected block as it was at
    resize start.
    """

    block_id: Optional[int]
    handle: str
    start: Geometry
    original_blocks: tuple[Block, ...] = ()


@dataclass(frozen=True)
class SelectionBox:
    """marquee rectangle in canvas space."""

    start_x: float
    start_y: float
    current_x: float
    current_y: float

    @property
    def bounds(self) -> Geometry:
        x = min(self.start_x, self.current_x)
        y = min(self.start_y, self.current_y)
        return Geometry(
            x, y,
            max(self.start_x, self.current_x) - x,
            max(self.start_y, self.current_y) - y,
        )


@dataclass(frozen=True)
class Interaction:
    """per-page selection and gesture state. never snapshotted on its own."""

    selected_ids: tuple[int, ...] = ()
    editing_id: Optional[int] = None
    hovering_id: Optional[int] = None
    connecting_id: Optional[int] = None
    resizing: Optional[ResizeState] = None
    drag_start: Optional[DragStart] = None
    preview_selected_ids: tuple[int, ...] = ()
    selection_box: Optional[SelectionBox] = None

    def without_gestures(self) -> Interaction:
        """drop everything that only makes sense mid-gesture."""
        return replace(
            self,
            connecting_id=None,
            resizing=None,
            drag_start=None,
            preview_selected_ids=(),
            selection_box=None,
        )


@dataclass(frozen=True)
class Page:
    """one canvas: blocks, their connections, a viewport, interaction state."""

    id: str
    name: str
    blocks: tuple[Block, ...] = ()
    connections: tuple[Connection, ...] = ()
    viewport: Viewport = field(default_factory=Viewport)
    interaction: Interaction = field(default_factory=Interaction)
    program: Optional[ProgramData] = None  # page-level program, if any

    @classmethod
    def create(cls, name: str = "New Page", program: Optional[ProgramData] = None) -> Page:
        return cls(id=_generate_id(), name=name, program=program)

    def find_block(self, block_id: Optional[int]) -> Optional[Block]:
        if block_id is None:
            return None
        for block in self.blocks:
            if block.id == block_id:
                return block
        return None

    @property
    def block_ids(self) -> set[int]:
        return {b.id for b in self.blocks}

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "blocks": [b.to_dict() for b in self.blocks],
            "connections": [c.to_dict() for c in self.connections],
            "viewport": self.viewport.to_dict(),
            "selectedIds": list(self.interaction.selected_ids),
        }
        if self.program is not None:
            d["program"] = self.program.to_dict()
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Page:
        blocks = tuple(Block.from_dict(b) for b in d.get("blocks", []))
        ids = {b.id for b in blocks}
        program = d.get("program")
        return cls(
            id=d["id"],
            name=d.get("name", "New Page"),
            blocks=blocks,
            connections=tuple(Connection.from_dict(c) for c in d.get("connections", [])),
            viewport=Viewport.from_dict(d.get("viewport", {})),
            interaction=Interaction(
                selected_ids=tuple(i for i in d.get("selectedIds", []) if i in ids),
            ),
            program=ProgramData.from_dict(program) if program else None,
        )


@dataclass(frozen=True)
class Memento:
    """immutable deep copy of canvas-level state, taken before a mutation."""

    pages: tuple[Page, ...]
    current_page_id: str
    selection: tuple[int, ...]


@dataclass(frozen=True)
class History:
    """linear undo/redo stacks (oldest entry first)."""

    undo_stack: tuple[Memento, ...] = ()
    redo_stack: tuple[Memento, ...] = ()


@dataclass(frozen=True)
class CanvasState:
    """the global tree: every page plus application-level state."""

    pages: tuple[Page, ...]
    current_page_id: str
    history: History = field(default_factory=History)
    clipboard: Optional[Block] = None
    pointer: tuple[float, float] = (0.0, 0.0)  # last pointer position, screen px
    screen: tuple[float, float] = DEFAULT_SCREEN_SIZE
    is_viewport_dragging: bool = False
    cursor: str = "default"
    notification: Optional[str] = None
    is_dark_mode: bool = False

    @classmethod
    def initial(cls) -> CanvasState:
        """fresh state with a single empty page."""
        page = Page.create()
        return cls(pages=(page,), current_page_id=page.id)

    @property
    def current_page(self) -> Page:
        for page in self.pages:
            if page.id == self.current_page_id:
                return page
        # current_page_id always names a page; fall back to the first one
        return self.pages[0]

    def find_page(self, page_id: str) -> Optional[Page]:
        for page in self.pages:
            if page.id == page_id:
                return page
        return None

    def to_document(self) -> dict:
        """serialize the persistent part ({pages, currentPageId})."""
        return {
            "pages": [p.to_dict() for p in self.pages],
            "currentPageId": self.current_page_id,
        }

    @classmethod
    def from_document(cls, d: dict) -> CanvasState:
        """deserialize a saved document. raises ValueError if it has no pages
        or reuses a block id."""
        pages = tuple(Page.from_dict(p) for p in d.get("pages", []))
        if not pages:
            raise ValueError("document has no pages")
        seen: set[int] = set()
        for page in pages:
            for block in page.blocks:
                if block.id in seen:
                    raise ValueError(f"duplicate block id {block.id}")
                seen.add(block.id)
        current = d.get("currentPageId")
        if current not in {p.id for p in pages}:
            current = pages[0].id
        return cls(pages=pages, current_page_id=current)


def _generate_id() -> str:
    """generate a unique page id."""
    return uuid.uuid4().hex
