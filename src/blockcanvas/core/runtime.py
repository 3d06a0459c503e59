"""the dispatch loop.

single-threaded and cooperative: ``dispatch`` runs the reducer, then one
render (reconciliation) pass, then starts that action's effects. a
dispatch issued while another is in progress (from a synchronous effect,
or from a connection notification during render) is queued and processed
in arrival order.

effects returning an awaitable become asyncio tasks on the running loop.
with no loop running they are parked until ``drain()`` is awaited.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Optional

from .composition import CompositionEngine
from .models import CanvasState
from .programs import Action, Effect, ProgramRegistry, resolve

Listener = Callable[[CanvasState], None]


class Runtime:
    """holds the global tree and runs every action against it."""

    def __init__(
        self,
        registry: ProgramRegistry,
        state: Optional[CanvasState] = None,
        host: Any = None,
    ):
        self.registry = registry
        self.host = host
        self.state = state or CanvasState.initial()
        self.engine = CompositionEngine(registry, self.dispatch)
        self._queue: deque[tuple[Action, Any]] = deque()
        self._dispatching = False
        self._pending: list[Awaitable[Any]] = []
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []
        self.dispatch(_noop)

    def dispatch(self, action: Action, payload: Any = None) -> None:
        self._queue.append((action, payload))
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                action, payload = self._queue.popleft()
                self._process(action, payload)
        finally:
            self._dispatching = False

    def apply(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> CanvasState:
        """dispatch fn(state, *args, **kwargs) and return the resulting state."""
        self.dispatch(lambda state, _payload: fn(state, *args, **kwargs))
        return self.state

    def replace_state(self, state: CanvasState) -> None:
        """swap in a whole new tree (e.g. after loading a document)."""
        self.dispatch(lambda _state, _payload: state)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """call listener with the tree after every render; returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _process(self, action: Action, payload: Any) -> None:
        try:
            new_state, effects = resolve(action, self.state, payload)
        except Exception as e:
            # block-level failures are caught in lifting; this is a global action
            logging.warning(f"action {getattr(action, '__name__', action)!s} failed: {e}")
            return
        self.state = self.engine.reconcile(new_state)
        for listener in list(self._listeners):
            listener(self.state)
        for effect in effects:
            self._run_effect(effect)

    def _run_effect(self, effect: Effect) -> None:
        try:
            result = effect.run(self.dispatch)
        except Exception as e:
            logging.warning(f"effect {getattr(effect.fn, '__name__', effect.fn)!s} failed: {e}")
            return
        if inspect.isawaitable(result):
            self._schedule(result)

    def _schedule(self, awaitable: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._pending.append(awaitable)
            return
        task = loop.create_task(self._guard(awaitable))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, awaitable: Awaitable[Any]) -> None:
        try:
            await awaitable
        except Exception as e:
            logging.warning(f"async effect failed: {e}")

    async def drain(self) -> None:
        """wait until every scheduled or parked effect has finished."""
        while self._pending or self._tasks:
            pending, self._pending = self._pending, []
            for awaitable in pending:
                self._schedule(awaitable)
            if self._tasks:
                await asyncio.gather(*list(self._tasks))

    @property
    def busy(self) -> bool:
        return bool(self._pending or self._tasks)

    def close(self) -> None:
        """tear down program instances and cancel in-flight effects."""
        self.engine.dispose()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        for awaitable in self._pending:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
        self._pending.clear()


def _noop(state: CanvasState, payload: Any = None) -> CanvasState:
    return state
