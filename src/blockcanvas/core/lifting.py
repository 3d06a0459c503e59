"""lift local program actions into global canvas actions.

a lifted action reads the addressed slice (one block's program state, or
one page's program state), runs the local action on it, and writes back
only that slice. effects are wrapped so that only their ``dispatch``
argument changes: anything they dispatch is lifted to the same slice.

if the slice no longer exists when a lifted action runs (the block was
deleted while an effect was in flight) the action is a logged no-op.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, Union

from .errors import StaleEffectResult
from .models import CanvasState
from .programs import Action, Dispatch, Effect, WithEffects, resolve
from .store import find_block, replace_block, update_page


@dataclass(frozen=True)
class BlockSlice:
    block_id: int

    def __str__(self) -> str:
        return f"block {self.block_id}"


@dataclass(frozen=True)
class PageSlice:
    page_id: str

    def __str__(self) -> str:
        return f"page {self.page_id}"


Target = Union[BlockSlice, PageSlice]
ErrorHandler = Callable[[Target, Exception], None]

_MISSING = object()


def read_slice(state: CanvasState, target: Target) -> Any:
    """local state at target, or _MISSING when the slice is gone."""
    if isinstance(target, BlockSlice):
        block = find_block(state, target.block_id)
        return _MISSING if block is None else block.program.state
    page = state.find_page(target.page_id)
    if page is None or page.program is None:
        return _MISSING
    return page.program.state


def write_slice(state: CanvasState, target: Target, local: Any) -> CanvasState:
    """replace only the addressed slice; everything else keeps its identity."""
    if isinstance(target, BlockSlice):
        block = find_block(state, target.block_id)
        if block is None or block.program.state is local:
            return state
        return replace_block(state, replace(block, program=replace(block.program, state=local)))
    page = state.find_page(target.page_id)
    if page is None or page.program is None or page.program.state is local:
        return state
    return update_page(
        state,
        target.page_id,
        lambda p: replace(p, program=replace(p.program, state=local)),
    )


def has_slice(state: CanvasState, target: Target) -> bool:
    return read_slice(state, target) is not _MISSING


def lift_action(target: Target, action: Action, on_error: Optional[ErrorHandler] = None) -> Action:
    """turn a local action into a global one addressed to target.

    with on_error set, exceptions raised by the local action are reported
    there and the global state is left as it was.
    """

    def lifted(state: CanvasState, payload: Any = None) -> Union[CanvasState, WithEffects]:
        local = read_slice(state, target)
        if local is _MISSING:
            logging.debug(f"{StaleEffectResult(f'{target} is gone')}; dropping action")
            return state
        try:
            new_local, effects = resolve(action, local, payload)
        except Exception as e:
            if on_error is None:
                raise
            on_error(target, e)
            return state
        new_state = write_slice(state, target, new_local)
        if not effects:
            return new_state
        return WithEffects(
            state=new_state,
            effects=tuple(lift_effect(target, effect, on_error) for effect in effects),
        )

    lifted.__name__ = f"lifted_{getattr(action, '__name__', 'action')}"
    return lifted


def lift_dispatch(target: Target, dispatch: Dispatch, on_error: Optional[ErrorHandler] = None) -> Dispatch:
    """a dispatch that program code can call with its own local actions."""

    def local_dispatch(action: Action, payload: Any = None) -> None:
        dispatch(lift_action(target, action, on_error), payload)

    return local_dispatch


def lift_effect(target: Target, effect: Effect, on_error: Optional[ErrorHandler] = None) -> Effect:
    """same effect, but its dispatch is lifted to target."""

    def wrapped(dispatch: Dispatch, *args: Any) -> Any:
        local_dispatch = lift_dispatch(target, dispatch, on_error)
        try:
            result = effect.fn(local_dispatch, *args)
        except Exception as e:
            if on_error is None:
                raise
            on_error(target, e)
            return None
        if on_error is not None and inspect.isawaitable(result):
            return _guard(target, result, on_error)
        return result

    return Effect(fn=wrapped, args=effect.args)


async def _guard(target: Target, awaitable: Awaitable[Any], on_error: ErrorHandler) -> Any:
    try:
        return await awaitable
    except Exception as e:
        on_error(target, e)
        return None
