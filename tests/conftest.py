"""pytest fixtures for blockcanvas tests."""

import os
import tempfile

import pytest
from pathlib import Path

# keep the api module's default storage out of the real home directory
os.environ.setdefault("BLOCKCANVAS_HOME", tempfile.mkdtemp(prefix="blockcanvas-test-"))

from blockcanvas.core.models import Block, CanvasState, Interaction, Page, ProgramData, Viewport
from blockcanvas.core.programs import Program
from blockcanvas.core.runtime import Runtime
from blockcanvas.programs import builtin_registry


def explode(state, payload=None):
    raise ValueError("kaboom")


BOOM = Program(
    name="boom",
    initial_state={"ok": True},
    views={"main": lambda s: "fine"},
    actions={"explode": explode},
)


@pytest.fixture
def temp_dir():
    """temporary directory that cleans up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def registry():
    """built-in programs plus one whose action always raises."""
    reg = builtin_registry()
    reg.register(BOOM)
    return reg


@pytest.fixture
def runtime(registry):
    """runtime over a fresh single-page canvas."""
    rt = Runtime(registry)
    yield rt
    rt.close()


@pytest.fixture
def make_block():
    """factory for blocks: make_block(id, x, y, w, h, z=0, program="counter", state=None)."""

    def factory(block_id, x=0.0, y=0.0, width=100.0, height=100.0, z_order=0, program="counter", state=None):
        if state is None and program == "counter":
            state = {"n": 0}
        return Block(
            id=block_id,
            x=x,
            y=y,
            width=width,
            height=height,
            z_order=z_order,
            program=ProgramData(name=program, state=state),
        )

    return factory


@pytest.fixture
def make_state():
    """factory for a one-page canvas holding the given blocks."""

    def factory(*blocks, selected=(), viewport=None, connections=(), page_program=None):
        page = Page(
            id="p1",
            name="test",
            blocks=tuple(blocks),
            connections=tuple(connections),
            viewport=viewport or Viewport(),
            interaction=Interaction(selected_ids=tuple(selected)),
            program=page_program,
        )
        return CanvasState(pages=(page,), current_page_id="p1")

    return factory


@pytest.fixture
def two_blocks(make_block, make_state):
    """A(z=1) and B(z=2) on one page."""
    a = make_block(1, 0, 0, 100, 100, z_order=1)
    b = make_block(2, 200, 0, 100, 100, z_order=2)
    return make_state(a, b)
