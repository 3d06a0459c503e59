"""fastapi server for blockcanvas.

exposes canvas operations as REST endpoints. every mutation goes through
the runtime, so the api sees the same undo history, reconciliation and
effects as the terminal front end.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ..core import store
from ..core.composition import CompositionEngine
from ..core.constants import DEFAULT_AUTOSAVE_INTERVAL, MIN_SIZE, RESIZE_HANDLES, get_data_dir
from ..core.host import Host, MemoryHost
from ..core.manipulation import (
    PointerEvent,
    double_click,
    hover,
    pointer_down_on_block,
    pointer_down_on_canvas,
    pointer_down_on_handle,
    pointer_move,
    pointer_up,
    wheel,
)
from ..core.memento import can_redo, can_undo, redo as redo_state, undo as undo_state
from ..core.models import Block, CanvasState, Connection, Geometry, Page, ProgramData
from ..core.persistence import Autosaver, FileStorage, Storage, load_state, save_state
from ..core.errors import PersistenceError
from ..core.programs import ProgramRegistry
from ..core.runtime import Runtime
from ..core.viewport import WheelEvent
from ..programs import builtin_registry


# --- pydantic models for api ---

class BlockCreate(BaseModel):
    """request to add a block to the current page."""
    program: str
    state: Optional[Any] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: float = Field(200, ge=MIN_SIZE)
    height: float = Field(200, ge=MIN_SIZE)


class BlockGeometry(BaseModel):
    """request to move/resize a block."""
    x: float
    y: float
    width: Optional[float] = Field(None, ge=MIN_SIZE)
    height: Optional[float] = Field(None, ge=MIN_SIZE)


class ActionRun(BaseModel):
    """request to run one of a block's program actions."""
    payload: Optional[Any] = None


class PageCreate(BaseModel):
    name: Optional[str] = None
    program: Optional[str] = None


class PageRename(BaseModel):
    name: str


class ConnectionCreate(BaseModel):
    """request to connect source's slot `name` to target."""
    name: str
    source_id: int
    target_id: int


class PointerInput(BaseModel):
    """a pointer gesture step in screen coordinates.

    kind is one of down, move, up, double_click, hover. for down, set
    block_id to press on a block, handle (with or without block_id) to
    press on a resize handle, or neither to press on the empty canvas.
    """
    kind: str
    x: float = 0
    y: float = 0
    button: int = 0
    shift: bool = False
    alt: bool = False
    ctrl: bool = False
    meta: bool = False
    block_id: Optional[int] = None
    handle: Optional[str] = None


class WheelInput(BaseModel):
    x: float
    y: float
    delta_x: float = 0
    delta_y: float = 0
    ctrl: bool = False
    meta: bool = False


class BlockResponse(BaseModel):
    """block in api response."""
    id: int
    x: float
    y: float
    width: float
    height: float
    z_order: int
    program: str
    state: Any = None
    status: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_block(cls, block: Block, engine: Optional[CompositionEngine] = None) -> "BlockResponse":
        inst = engine.instance(block.id) if engine else None
        return cls(
            id=block.id,
            x=block.x,
            y=block.y,
            width=block.width,
            height=block.height,
            z_order=block.z_order,
            program=block.program.name,
            state=block.program.state,
            status=inst.status.value if inst else None,
            error=inst.error if inst else None,
        )


class ConnectionResponse(BaseModel):
    name: str
    source_id: int
    target_id: int

    @classmethod
    def from_connection(cls, c: Connection) -> "ConnectionResponse":
        return cls(name=c.name, source_id=c.source_block_id, target_id=c.target_block_id)


class PageResponse(BaseModel):
    """page in api response."""
    id: str
    name: str
    blocks: list[BlockResponse]
    connections: list[ConnectionResponse]
    viewport: dict[str, float]
    selected_ids: list[int]
    editing_id: Optional[int] = None
    connecting_id: Optional[int] = None
    hovering_id: Optional[int] = None
    program: Optional[str] = None

    @classmethod
    def from_page(cls, page: Page, engine: Optional[CompositionEngine] = None) -> "PageResponse":
        return cls(
            id=page.id,
            name=page.name,
            blocks=[BlockResponse.from_block(b, engine) for b in page.blocks],
            connections=[ConnectionResponse.from_connection(c) for c in page.connections],
            viewport=page.viewport.to_dict(),
            selected_ids=list(page.interaction.selected_ids),
            editing_id=page.interaction.editing_id,
            connecting_id=page.interaction.connecting_id,
            hovering_id=page.interaction.hovering_id,
            program=page.program.name if page.program else None,
        )


class CanvasResponse(BaseModel):
    """whole canvas in api response."""
    pages: list[PageResponse]
    current_page_id: str
    can_undo: bool
    can_redo: bool
    has_clipboard: bool = False
    cursor: str = "default"
    notification: Optional[str] = None
    is_dirty: bool = False
    last_saved_at: Optional[str] = None

    @classmethod
    def from_state(
        cls,
        canvas: CanvasState,
        engine: Optional[CompositionEngine] = None,
        is_dirty: bool = False,
        last_saved_at: Optional[str] = None,
    ) -> "CanvasResponse":
        return cls(
            pages=[PageResponse.from_page(p, engine) for p in canvas.pages],
            current_page_id=canvas.current_page_id,
            can_undo=can_undo(canvas),
            can_redo=can_redo(canvas),
            has_clipboard=canvas.clipboard is not None,
            cursor=canvas.cursor,
            notification=canvas.notification,
            is_dirty=is_dirty,
            last_saved_at=last_saved_at,
        )


class ProgramInfo(BaseModel):
    """registered program for listing."""
    name: str
    description: str
    views: list[str]
    actions: list[str]
    slots: dict[str, list[str]]
    has_editor: bool = False


class ViewResponse(BaseModel):
    block_id: int
    view: Optional[str]
    text: str


# --- app state ---

class AppState:
    """shared application state: one runtime, its storage and autosave."""

    def __init__(
        self,
        storage: Optional[Storage] = None,
        host: Optional[Host] = None,
        registry: Optional[ProgramRegistry] = None,
        autosave_interval: float = DEFAULT_AUTOSAVE_INTERVAL,
        data_dir: Optional[Path] = None,
    ):
        self.registry = registry or builtin_registry()
        self.storage = storage or FileStorage(data_dir or get_data_dir())
        self.host = host or MemoryHost()
        self.runtime = Runtime(self.registry, host=self.host)
        self.autosave_interval = autosave_interval
        self.autosaver = Autosaver(self.runtime, self.storage, interval=autosave_interval)

    @property
    def canvas(self) -> CanvasState:
        return self.runtime.state

    @property
    def engine(self) -> CompositionEngine:
        return self.runtime.engine

    @property
    def is_dirty(self) -> bool:
        return self.autosaver.is_dirty

    async def load(self) -> None:
        """replace the canvas with the saved document (or a fresh one)."""
        self.runtime.replace_state(await load_state(self.storage))
        self.autosaver.mark_clean()

    async def save(self) -> None:
        await save_state(self.storage, self.canvas)
        self.autosaver.mark_clean()


state = AppState()


def _canvas_response() -> CanvasResponse:
    """helper to build CanvasResponse with current state info."""
    return CanvasResponse.from_state(
        state.canvas,
        state.engine,
        is_dirty=state.is_dirty,
        last_saved_at=state.autosaver.last_saved_at,
    )


def _require_block(block_id: int) -> Block:
    block = store.find_block(state.canvas, block_id)
    if block is None:
        raise HTTPException(status_code=404, detail=f"block not found: {block_id}")
    return block


def _require_page(page_id: str) -> Page:
    page = state.canvas.find_page(page_id)
    if page is None:
        raise HTTPException(status_code=404, detail=f"page not found: {page_id}")
    return page


def _block_response(block_id: int) -> BlockResponse:
    return BlockResponse.from_block(_require_block(block_id), state.engine)


# --- lifespan ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup: restore the saved canvas and start autosave
    await state.load()
    await state.autosaver.start()
    yield
    # shutdown: flush pending changes
    await state.autosaver.save()
    await state.autosaver.stop()
    await state.runtime.drain()
    state.runtime.close()


# --- app ---

app = FastAPI(
    title="blockcanvas api",
    description="REST API for the blockcanvas program canvas",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- endpoints ---

@app.get("/health")
async def health():
    """health check."""
    return {"status": "ok"}


@app.get("/status")
async def status():
    """application status including dirty state."""
    canvas = state.canvas
    return {
        "page_count": len(canvas.pages),
        "block_count": len(store.global_blocks(canvas)),
        "current_page_id": canvas.current_page_id,
        "is_dirty": state.is_dirty,
        "last_saved_at": state.autosaver.last_saved_at,
        "autosave_interval": state.autosave_interval,
        "programs": state.registry.names(),
    }


@app.get("/programs", response_model=list[ProgramInfo])
async def list_programs():
    """list registered programs."""
    infos = []
    for name in state.registry.names():
        program = state.registry.require(name)
        infos.append(ProgramInfo(
            name=program.name,
            description=program.description,
            views=list(program.views),
            actions=list(program.actions),
            slots={slot: list(conn.allowed) for slot, conn in program.connections.items()},
            has_editor=state.registry.editor_for(name) is not None,
        ))
    return infos


@app.get("/canvas", response_model=CanvasResponse)
async def get_canvas():
    """get the whole canvas."""
    return _canvas_response()


@app.post("/canvas/save")
async def save_canvas():
    """write the canvas document to storage."""
    try:
        await state.save()
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"saved": True, "last_saved_at": state.autosaver.last_saved_at}


@app.post("/canvas/load", response_model=CanvasResponse)
async def load_canvas():
    """reload the canvas from storage (falls back to a fresh canvas)."""
    await state.load()
    return _canvas_response()


# --- undo/redo endpoints ---

@app.post("/canvas/undo", response_model=CanvasResponse)
async def undo():
    """undo last action."""
    if not can_undo(state.canvas):
        raise HTTPException(status_code=400, detail="nothing to undo")
    state.runtime.apply(undo_state)
    return _canvas_response()


@app.post("/canvas/redo", response_model=CanvasResponse)
async def redo():
    """redo last undone action."""
    if not can_redo(state.canvas):
        raise HTTPException(status_code=400, detail="nothing to redo")
    state.runtime.apply(redo_state)
    return _canvas_response()


# --- page endpoints ---

@app.get("/pages", response_model=list[PageResponse])
async def list_pages():
    return [PageResponse.from_page(p, state.engine) for p in state.canvas.pages]


@app.post("/pages", response_model=PageResponse)
async def create_page(req: PageCreate):
    """create a page and switch to it."""
    program = None
    if req.program is not None:
        found = state.registry.get(req.program)
        if found is None:
            raise HTTPException(status_code=400, detail=f"unknown program: {req.program}")
        program = ProgramData(name=found.name, state=found.fresh_state())
    state.runtime.apply(store.create_page, req.name, program)
    return PageResponse.from_page(state.canvas.current_page, state.engine)


@app.put("/pages/{page_id}", response_model=PageResponse)
async def rename_page(page_id: str, req: PageRename):
    _require_page(page_id)
    state.runtime.apply(store.rename_page, page_id, req.name)
    return PageResponse.from_page(_require_page(page_id), state.engine)


@app.delete("/pages/{page_id}")
async def delete_page(page_id: str):
    """delete a page. the last page cannot be deleted."""
    _require_page(page_id)
    if len(state.canvas.pages) <= 1:
        raise HTTPException(status_code=400, detail="cannot delete the last page")
    state.runtime.apply(store.delete_page, page_id)
    return {"deleted": page_id, "current_page_id": state.canvas.current_page_id}


@app.post("/pages/{page_id}/switch", response_model=CanvasResponse)
async def switch_page(page_id: str):
    _require_page(page_id)
    state.runtime.apply(store.switch_page, page_id)
    return _canvas_response()


@app.post("/pages/{page_id}/reset-program", response_model=PageResponse)
async def reset_page_program(page_id: str):
    page = _require_page(page_id)
    if page.program is None:
        raise HTTPException(status_code=400, detail="page has no program")
    state.runtime.apply(store.reset_page_program, page_id, state.registry)
    return PageResponse.from_page(_require_page(page_id), state.engine)


@app.post("/pages/{page_id}/actions/{action_name}", response_model=PageResponse)
async def run_page_action(page_id: str, action_name: str, req: ActionRun):
    """run an action of the page-level program."""
    _require_page(page_id)
    actions = state.engine.lifted_page_actions(state.canvas, page_id)
    if action_name not in actions:
        raise HTTPException(status_code=404, detail=f"action not found: {action_name}")
    state.runtime.dispatch(actions[action_name], req.payload)
    return PageResponse.from_page(_require_page(page_id), state.engine)


# --- block endpoints ---

@app.post("/blocks", response_model=BlockResponse)
async def create_block(req: BlockCreate):
    """add a block to the current page."""
    if req.program not in state.registry:
        raise HTTPException(status_code=400, detail=f"unknown program: {req.program}")
    state.runtime.apply(
        store.add_block,
        req.program,
        req.state,
        req.x,
        req.y,
        req.width,
        req.height,
        registry=state.registry,
    )
    return _block_response(state.canvas.current_page.interaction.selected_ids[0])


@app.get("/blocks/{block_id}", response_model=BlockResponse)
async def get_block(block_id: int):
    return _block_response(block_id)


@app.delete("/blocks/{block_id}")
async def delete_block(block_id: int):
    _require_block(block_id)
    state.runtime.apply(store.delete_block, block_id)
    return {"deleted": block_id}


@app.put("/blocks/{block_id}/geometry", response_model=BlockResponse)
async def set_geometry(block_id: int, req: BlockGeometry):
    """move and/or resize a block as one undo step."""
    block = _require_block(block_id)
    geometry = Geometry(
        req.x,
        req.y,
        req.width if req.width is not None else block.width,
        req.height if req.height is not None else block.height,
    )
    state.runtime.apply(store.resize_block, block_id, geometry)
    return _block_response(block_id)


@app.post("/blocks/{block_id}/front", response_model=BlockResponse)
async def bring_to_front(block_id: int):
    _require_block(block_id)
    state.runtime.apply(store.send_to_front, block_id)
    return _block_response(block_id)


@app.post("/blocks/{block_id}/back", response_model=BlockResponse)
async def send_to_back(block_id: int):
    _require_block(block_id)
    state.runtime.apply(store.send_to_back, block_id)
    return _block_response(block_id)


@app.post("/blocks/{block_id}/select", response_model=CanvasResponse)
async def select_block(block_id: int, additive: bool = False):
    if state.canvas.current_page.find_block(block_id) is None:
        raise HTTPException(status_code=404, detail=f"block not on current page: {block_id}")
    fn = store.toggle_selection if additive else store.select_block
    state.runtime.apply(fn, block_id)
    return _canvas_response()


@app.post("/blocks/{block_id}/edit", response_model=CanvasResponse)
async def edit_block(block_id: int):
    """enter edit mode on a block."""
    if state.canvas.current_page.find_block(block_id) is None:
        raise HTTPException(status_code=404, detail=f"block not on current page: {block_id}")
    state.runtime.apply(store.enter_edit_mode, block_id)
    return _canvas_response()


@app.post("/selection/clear", response_model=CanvasResponse)
async def clear_selection():
    state.runtime.apply(store.deselect_all)
    return _canvas_response()


@app.post("/selection/connect-mode", response_model=CanvasResponse)
async def toggle_connect_mode():
    """start or stop connecting from the single selected block."""
    state.runtime.apply(store.toggle_connect_mode)
    return _canvas_response()


@app.post("/blocks/copy", response_model=CanvasResponse)
async def copy_block():
    """copy the selected block into the clipboard."""
    if not state.canvas.current_page.interaction.selected_ids:
        raise HTTPException(status_code=400, detail="nothing selected")
    state.runtime.apply(store.copy_selected_block)
    return _canvas_response()


@app.post("/blocks/paste", response_model=BlockResponse)
async def paste_block():
    """paste the clipboard block onto the current page."""
    if state.canvas.clipboard is None:
        raise HTTPException(status_code=400, detail="clipboard is empty")
    state.runtime.apply(store.paste_block, state.host)
    await state.runtime.drain()
    return _block_response(state.canvas.current_page.interaction.selected_ids[0])


@app.get("/blocks/{block_id}/view", response_model=ViewResponse)
async def render_block(block_id: int, name: Optional[str] = Query(None)):
    """render one of the block's program views as plain text."""
    _require_block(block_id)
    text = state.engine.render(block_id, name)
    return ViewResponse(block_id=block_id, view=name, text=text.plain)


@app.post("/blocks/{block_id}/actions/{action_name}", response_model=BlockResponse)
async def run_action(block_id: int, action_name: str, req: ActionRun):
    """run a program action inside its block."""
    _require_block(block_id)
    actions = state.engine.lifted_actions(block_id)
    if action_name not in actions:
        raise HTTPException(status_code=404, detail=f"action not found: {action_name}")
    state.runtime.dispatch(actions[action_name], req.payload)
    return _block_response(block_id)


# --- connection endpoints ---

@app.post("/connections", response_model=ConnectionResponse)
async def create_connection(req: ConnectionCreate):
    """connect two blocks; 400 when the source slot does not accept the target."""
    _require_block(req.source_id)
    _require_block(req.target_id)
    state.runtime.apply(store.connect_blocks, req.name, req.source_id, req.target_id, state.registry)
    conn = Connection(req.name, req.source_id, req.target_id)
    if not any(conn in p.connections for p in state.canvas.pages):
        raise HTTPException(status_code=400, detail="connection rejected")
    return ConnectionResponse.from_connection(conn)


@app.delete("/connections")
async def remove_connection(name: str, source_id: int):
    _require_block(source_id)
    state.runtime.apply(store.disconnect, name, source_id)
    return {"removed": name, "source_id": source_id}


# --- gesture endpoints ---

@app.post("/pointer", response_model=CanvasResponse)
async def pointer(req: PointerInput):
    """feed one pointer event to the manipulation engine."""
    event = PointerEvent(req.x, req.y, req.button, req.shift, req.alt, req.ctrl, req.meta)
    if req.kind == "down":
        if req.handle is not None:
            if req.handle not in RESIZE_HANDLES:
                raise HTTPException(status_code=400, detail=f"unknown handle: {req.handle}")
            state.runtime.apply(pointer_down_on_handle, req.handle, event, req.block_id)
        elif req.block_id is not None:
            _require_block(req.block_id)
            state.runtime.apply(pointer_down_on_block, req.block_id, event, state.registry)
        else:
            state.runtime.apply(pointer_down_on_canvas, event)
    elif req.kind == "move":
        state.runtime.apply(pointer_move, event)
    elif req.kind == "up":
        state.runtime.apply(pointer_up, event)
    elif req.kind == "double_click":
        if req.block_id is None:
            raise HTTPException(status_code=400, detail="double_click needs block_id")
        state.runtime.apply(double_click, req.block_id)
    elif req.kind == "hover":
        state.runtime.apply(hover, req.block_id)
    else:
        raise HTTPException(status_code=400, detail=f"unknown pointer kind: {req.kind}")
    return _canvas_response()


@app.post("/wheel", response_model=CanvasResponse)
async def wheel_input(req: WheelInput):
    """pan or zoom the current page."""
    event = WheelEvent(req.x, req.y, req.delta_x, req.delta_y, req.ctrl, req.meta)
    state.runtime.apply(wheel, event)
    return _canvas_response()


# --- entrypoint ---

def main(argv: Optional[list[str]] = None):
    """run the api server."""
    import argparse

    parser = argparse.ArgumentParser(description="blockcanvas api server")
    parser.add_argument("--host", default="0.0.0.0", help="host to bind")
    parser.add_argument("--port", "-p", type=int, default=8000, help="port to bind")
    parser.add_argument("--data-dir", "-d", help="storage directory (default: ~/.blockcanvas)")
    parser.add_argument(
        "--autosave-interval",
        type=float,
        default=DEFAULT_AUTOSAVE_INTERVAL,
        help=f"auto-save interval in seconds (default: {DEFAULT_AUTOSAVE_INTERVAL})"
    )
    parser.add_argument(
        "--no-autosave",
        action="store_true",
        help="disable auto-save"
    )

    args = parser.parse_args(argv)
    serve(
        host=args.host,
        port=args.port,
        data_dir=args.data_dir,
        autosave_interval=0 if args.no_autosave else args.autosave_interval,
    )


def serve(
    host: str = "0.0.0.0",
    port: int = 8000,
    data_dir: Optional[str] = None,
    autosave_interval: float = DEFAULT_AUTOSAVE_INTERVAL,
) -> None:
    """configure the shared state and run uvicorn."""
    import uvicorn

    global state
    state.runtime.close()
    state = AppState(
        data_dir=Path(data_dir) if data_dir else None,
        autosave_interval=autosave_interval,
    )
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
