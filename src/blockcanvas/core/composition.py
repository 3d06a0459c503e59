"""program composition engine.

owns one ``ProgramInstance`` per block and keeps them in step with the
global tree. ``reconcile`` runs once per render cycle:

1. prune connections that point at missing blocks
2. tear down instances whose block vanished
3. mount instances for new blocks (or blocks whose program name changed)
4. sync state both ways between instance and block
5. (re)wire and unwire connection observers
6. push changed states to their observers

the engine is an explicit context object: everything it needs (registry,
dispatch) is handed to it, nothing is ambient.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Optional

from rich.text import Text

from .errors import ActionFailure, ConnectionRejected
from .lifting import BlockSlice, PageSlice, Target, lift_action, lift_dispatch
from .models import Block, CanvasState, Connection
from .programs import Action, Dispatch, Program, ProgramRegistry, Subscription
from .store import global_blocks, prune_connections, update_block_program_state


class InstanceStatus(str, Enum):
    UNBOUND = "unbound"
    MOUNTING = "mounting"
    RUNNING = "running"
    FAILED = "failed"
    TORN_DOWN = "torn_down"


class ProgramInstance:
    """a live program bound to one block."""

    def __init__(self, block_id: int, program_name: str):
        self.block_id = block_id
        self.program_name = program_name
        self.status = InstanceStatus.UNBOUND
        self.program: Optional[Program] = None
        self.state: Any = None
        self.error: Optional[str] = None
        # last state agreed between instance and tree
        self.synced: Any = None
        # outgoing: slot -> target block id
        self.connections: dict[str, int] = {}
        # incoming: (source block id, slot) pairs observing this instance
        self.observers: set[tuple[int, str]] = set()
        self._subscriptions: tuple[Subscription, ...] = ()
        self._cleanups: list[Callable[[], None]] = []

    @property
    def is_running(self) -> bool:
        return self.status == InstanceStatus.RUNNING

    def modify_state(self, state: Any) -> None:
        """change state from outside the action path; mirrored on next reconcile."""
        self.state = state

    def __repr__(self) -> str:
        return f"ProgramInstance(block={self.block_id}, program={self.program_name!r}, status={self.status.value})"


class CompositionEngine:
    def __init__(self, registry: ProgramRegistry, dispatch: Optional[Dispatch] = None):
        self.registry = registry
        self._dispatch = dispatch
        self._instances: dict[int, ProgramInstance] = {}
        self.page_errors: dict[str, str] = {}

    def bind(self, dispatch: Dispatch) -> None:
        self._dispatch = dispatch

    def dispatch(self, action: Action, payload: Any = None) -> None:
        if self._dispatch is None:
            logging.warning("engine has no dispatch bound; dropping action")
            return
        self._dispatch(action, payload)

    # --- queries ---

    def instance(self, block_id: int) -> Optional[ProgramInstance]:
        return self._instances.get(block_id)

    def instances(self) -> list[ProgramInstance]:
        return list(self._instances.values())

    def error_for(self, block_id: int) -> Optional[str]:
        inst = self._instances.get(block_id)
        return inst.error if inst else None

    # --- reconciliation ---

    def reconcile(self, state: CanvasState) -> CanvasState:
        """bring instances in line with the tree; returns the synced tree."""
        state = prune_connections(state)
        blocks = {b.id: b for b in global_blocks(state)}

        for block_id in [i for i in self._instances if i not in blocks]:
            self._teardown(block_id)

        notify: dict[tuple[int, str], Any] = {}
        for block in blocks.values():
            inst = self._instances.get(block.id)
            if inst is not None and inst.program_name != block.program.name:
                # program swapped: also the only way a failed lookup is retried
                self._teardown(block.id)
                inst = None
            if inst is None:
                self._mount(block)

        state, changed = self._sync_states(state, blocks)
        self._wire(state, notify)

        for block_id in changed:
            inst = self._instances[block_id]
            for observer in sorted(inst.observers):
                notify[observer] = inst.state
        for (source_id, slot), peer_state in notify.items():
            self._deliver(source_id, slot, peer_state)
        return state

    def _mount(self, block: Block) -> ProgramInstance:
        inst = ProgramInstance(block.id, block.program.name)
        self._instances[block.id] = inst
        inst.status = InstanceStatus.MOUNTING

        program = self.registry.get(block.program.name)
        if program is None:
            inst.status = InstanceStatus.FAILED
            inst.error = f"program '{block.program.name}' not found"
            logging.warning(f"block {block.id}: {inst.error}")
            return inst

        inst.program = program
        # synced stays at the tree's value so a missing state gets mirrored
        inst.synced = block.program.state
        inst.state = block.program.state if block.program.state is not None else program.fresh_state()
        inst.status = InstanceStatus.RUNNING
        self._refresh_subscriptions(inst)
        logging.debug(f"mounted {inst!r}")
        return inst

    def _refresh_subscriptions(self, inst: ProgramInstance) -> None:
        """restart subscriptions when the list derived from state changes."""
        if inst.program.subscriptions is None:
            return
        target = BlockSlice(inst.block_id)
        try:
            wanted = tuple(inst.program.subscriptions(inst.state) or ())
        except Exception as e:
            self._on_error(target, e)
            return
        if wanted == inst._subscriptions:
            return
        self._stop_subscriptions(inst)
        inst._subscriptions = wanted
        local_dispatch = lift_dispatch(target, self.dispatch, self._on_error)
        for sub in wanted:
            try:
                cleanup = sub.fn(local_dispatch, *sub.args)
            except Exception as e:
                self._on_error(target, e)
                continue
            if callable(cleanup):
                inst._cleanups.append(cleanup)

    def _stop_subscriptions(self, inst: ProgramInstance) -> None:
        for cleanup in inst._cleanups:
            try:
                cleanup()
            except Exception as e:
                logging.warning(f"cleanup failed for block {inst.block_id}: {e}")
        inst._cleanups.clear()
        inst._subscriptions = ()

    def _teardown(self, block_id: int) -> None:
        inst = self._instances.pop(block_id, None)
        if inst is None:
            return
        self._stop_subscriptions(inst)

        for target_id in inst.connections.values():
            target = self._instances.get(target_id)
            if target is not None:
                target.observers = {o for o in target.observers if o[0] != block_id}
        for source_id, slot in inst.observers:
            source = self._instances.get(source_id)
            if source is not None and source.connections.get(slot) == block_id:
                del source.connections[slot]
        inst.connections.clear()
        inst.observers.clear()
        inst.status = InstanceStatus.TORN_DOWN
        logging.debug(f"tore down {inst!r}")

    def _sync_states(self, state: CanvasState, blocks: dict[int, Block]) -> tuple[CanvasState, list[int]]:
        changed = []
        for block_id, inst in self._instances.items():
            if not inst.is_running:
                continue
            tree_state = blocks[block_id].program.state
            if tree_state is not inst.synced:
                # tree moved (lifted action, undo, load): instance adopts it
                if tree_state != inst.state:
                    changed.append(block_id)
                inst.state = inst.synced = tree_state
                inst.error = None
            elif inst.state is not inst.synced:
                # instance moved on its own: mirror into the tree
                state = update_block_program_state(state, block_id, inst.state)
                inst.synced = inst.state
                changed.append(block_id)
        for block_id in changed:
            self._refresh_subscriptions(self._instances[block_id])
        return state, changed

    def _wire(self, state: CanvasState, notify: dict[tuple[int, str], Any]) -> None:
        ordered = [c for page in state.pages for c in page.connections]
        present = set(ordered)

        for inst in self._instances.values():
            for slot, target_id in list(inst.connections.items()):
                if Connection(slot, inst.block_id, target_id) not in present:
                    self._unwire(inst, slot)

        for conn in ordered:
            source = self._instances.get(conn.source_block_id)
            target = self._instances.get(conn.target_block_id)
            if source is None or target is None or not (source.is_running and target.is_running):
                continue
            if source.connections.get(conn.name) == target.block_id:
                continue
            if not source.program.accepts(conn.name, target.program_name):
                err = ConnectionRejected(
                    f"{source.program_name}.{conn.name} does not accept {target.program_name}"
                )
                logging.debug(f"not wiring {conn}: {err}")
                continue
            if conn.name in source.connections:
                self._unwire(source, conn.name)
            source.connections[conn.name] = target.block_id
            target.observers.add((source.block_id, conn.name))
            # a fresh subscriber gets the peer's current state once
            notify[(source.block_id, conn.name)] = target.state

    def _unwire(self, inst: ProgramInstance, slot: str) -> None:
        target_id = inst.connections.pop(slot, None)
        target = self._instances.get(target_id) if target_id is not None else None
        if target is not None:
            target.observers.discard((inst.block_id, slot))

    def _deliver(self, source_id: int, slot: str, peer_state: Any) -> None:
        source = self._instances.get(source_id)
        if source is None or not source.is_running:
            return
        conn = source.program.connections.get(slot)
        if conn is None:
            return
        self.dispatch(lift_action(BlockSlice(source_id), conn.on_change, self._on_error), peer_state)

    def _on_error(self, target: Target, error: Exception) -> None:
        if isinstance(target, PageSlice):
            self.page_errors[target.page_id] = str(error)
            logging.warning(f"{ActionFailure(None, error)} (page {target.page_id})")
            return
        failure = ActionFailure(target.block_id, error)
        logging.warning(str(failure))
        inst = self._instances.get(target.block_id)
        if inst is not None:
            inst.error = str(error)

    # --- program-facing api ---

    def lifted_actions(self, block_id: int) -> dict[str, Action]:
        """the block's program actions, lifted to global actions."""
        inst = self._instances.get(block_id)
        if inst is None or not inst.is_running:
            return {}
        target = BlockSlice(block_id)
        return {
            name: lift_action(target, action, self._on_error)
            for name, action in inst.program.actions.items()
        }

    def lifted_page_actions(self, state: CanvasState, page_id: str) -> dict[str, Action]:
        """actions of a page-level program, lifted to that page."""
        page = state.find_page(page_id)
        if page is None or page.program is None:
            return {}
        program = self.registry.get(page.program.name)
        if program is None:
            return {}
        target = PageSlice(page_id)
        return {
            name: lift_action(target, action, self._on_error)
            for name, action in program.actions.items()
        }

    def modify_state(self, block_id: int, state: Any) -> None:
        """set an instance's state directly and schedule a render to mirror it."""
        inst = self._instances.get(block_id)
        if inst is None or not inst.is_running:
            return
        inst.modify_state(state)
        self.dispatch(_render_only)

    def render(self, block_id: int, view: Optional[str] = None) -> Text:
        """render one of the block's views (default: the first declared)."""
        inst = self._instances.get(block_id)
        if inst is None:
            return Text("not mounted", style="dim")
        if inst.status == InstanceStatus.FAILED:
            return Text(f"ERROR: program '{inst.program_name}' not initialized.", style="bold red")
        if inst.error:
            return Text(f"error: {inst.error}", style="bold red")

        name = view or inst.program.default_view
        fn = inst.program.views.get(name) if name else None
        if fn is None:
            return Text(f"error: no view '{name}'", style="red")
        try:
            out = fn(inst.state)
        except Exception as e:
            self._on_error(BlockSlice(block_id), e)
            return Text(f"error: {e}", style="bold red")
        return out if isinstance(out, Text) else Text(str(out))

    def render_page(self, state: CanvasState, page_id: str, view: Optional[str] = None) -> Optional[Text]:
        page = state.find_page(page_id)
        if page is None or page.program is None:
            return None
        if page_id in self.page_errors:
            return Text(f"error: {self.page_errors[page_id]}", style="bold red")
        program = self.registry.get(page.program.name)
        if program is None:
            return Text(f"ERROR: program '{page.program.name}' not initialized.", style="bold red")
        fn = program.views.get(view or program.default_view or "")
        if fn is None:
            return None
        out = fn(page.program.state)
        return out if isinstance(out, Text) else Text(str(out))

    def dispose(self) -> None:
        """tear every instance down (application shutdown)."""
        for block_id in list(self._instances):
            self._teardown(block_id)


def _render_only(state: CanvasState, payload: Any = None) -> CanvasState:
    return state
