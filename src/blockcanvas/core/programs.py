"""program descriptors, the action-result protocol, and the registry.

a program is written without any knowledge of blocks, pages or peers: it
only sees its own local state. actions are ``(state, payload) -> result``
where result is one of:

- ``Replace(state)`` (or a bare value): replace the local state
- ``WithEffects(state, effects)``: replace and schedule effects
- ``Redirect(action, payload)``: run another action instead

redirects are resolved by a trampoline in ``resolve``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from .constants import MAX_REDIRECTS
from .errors import ProgramNotFoundError


Action = Callable[[Any, Any], Any]
Dispatch = Callable[..., None]


@dataclass(frozen=True)
class Effect:
    """deferred side effect: ``fn(dispatch, *args)``."""

    fn: Callable[..., Any]
    args: tuple = ()

    @classmethod
    def of(cls, fn: Callable[..., Any], *args: Any) -> Effect:
        return cls(fn=fn, args=args)

    def run(self, dispatch: Dispatch) -> Any:
        return self.fn(dispatch, *self.args)


class ActionResult:
    """base for the tagged action results."""


@dataclass(frozen=True)
class Replace(ActionResult):
    state: Any


@dataclass(frozen=True)
class WithEffects(ActionResult):
    state: Any
    effects: tuple[Effect, ...] = ()


@dataclass(frozen=True)
class Redirect(ActionResult):
    action: Action
    payload: Any = None


def as_effect(effect: Any) -> Effect:
    """normalize a bare effect function or an ``(fn, *args)`` sequence."""
    if isinstance(effect, Effect):
        return effect
    if callable(effect):
        return Effect(fn=effect)
    if isinstance(effect, (tuple, list)) and effect and callable(effect[0]):
        fn, *args = effect
        return Effect(fn=fn, args=tuple(args))
    raise TypeError(f"not an effect: {effect!r}")


def with_effects(state: Any, *effects: Any) -> WithEffects:
    """build a WithEffects result, accepting any effect spelling."""
    return WithEffects(state=state, effects=tuple(as_effect(e) for e in effects if e))


def resolve(action: Action, state: Any, payload: Any = None) -> tuple[Any, tuple[Effect, ...]]:
    """run an action to completion, following redirects.

    returns (new_state, effects). an action returning None leaves the
    state unchanged.
    """
    result = action(state, payload)
    for _ in range(MAX_REDIRECTS):
        if isinstance(result, Redirect):
            result = result.action(state, result.payload)
            continue
        if isinstance(result, WithEffects):
            return result.state, result.effects
        if isinstance(result, Replace):
            return result.state, ()
        if result is None:
            return state, ()
        return result, ()
    raise RuntimeError(f"action redirected more than {MAX_REDIRECTS} times")


# --- program descriptors ---

@dataclass(frozen=True)
class Subscription:
    """long-lived listener: ``fn(dispatch, *args)`` returns a cleanup callable."""

    fn: Callable[..., Optional[Callable[[], None]]]
    args: tuple = ()

    @classmethod
    def of(cls, fn: Callable[..., Any], *args: Any) -> Subscription:
        return cls(fn=fn, args=args)


@dataclass(frozen=True)
class ConnectionSlot:
    """named connection a program accepts, and what it does on peer updates.

    on_change is a local action receiving the peer's new state as payload.
    """

    allowed: tuple[str, ...]
    on_change: Action


@dataclass
class Program:
    """an independently authored reactive unit."""

    name: str
    initial_state: Any
    views: dict[str, Callable[[Any], Any]]
    actions: dict[str, Action] = field(default_factory=dict)
    subscriptions: Optional[Callable[[Any], Iterable[Subscription]]] = None
    connections: dict[str, ConnectionSlot] = field(default_factory=dict)
    description: str = ""

    @property
    def default_view(self) -> Optional[str]:
        return next(iter(self.views), None)

    def fresh_state(self) -> Any:
        """a private copy of the initial state."""
        return copy.deepcopy(self.initial_state)

    def accepts(self, slot: str, program_name: str) -> bool:
        """check if a peer of type program_name may fill the named slot."""
        conn = self.connections.get(slot)
        return conn is not None and program_name in conn.allowed

    def slot_for(self, program_name: str) -> Optional[str]:
        """first slot that accepts a peer of this type, if any."""
        for slot, conn in self.connections.items():
            if program_name in conn.allowed:
                return slot
        return None


@dataclass(frozen=True)
class RegistryEntry:
    program: Program
    editor: Optional[Program] = None


class ProgramRegistry:
    """explicit name -> program table. built once at startup, lookups only."""

    def __init__(self, entries: Optional[Iterable[RegistryEntry]] = None):
        self._entries: dict[str, RegistryEntry] = {}
        for entry in entries or ():
            self._entries[entry.program.name] = entry

    def register(self, program: Program, editor: Optional[Program] = None) -> None:
        self._entries[program.name] = RegistryEntry(program=program, editor=editor)

    def get(self, name: str) -> Optional[Program]:
        """get a program by name, or None."""
        entry = self._entries.get(name)
        return entry.program if entry else None

    def require(self, name: str) -> Program:
        """get a program by name. raises ProgramNotFoundError if missing."""
        program = self.get(name)
        if program is None:
            raise ProgramNotFoundError(name)
        return program

    def editor_for(self, name: str) -> Optional[Program]:
        entry = self._entries.get(name)
        return entry.editor if entry else None

    def names(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
