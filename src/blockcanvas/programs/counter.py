"""counter: the smallest useful program.

state is ``{"n": int}``. ``delayed_increment`` shows an async effect
dispatching back into its own block.
"""

from __future__ import annotations

import asyncio

from rich.text import Text

from ..core.programs import Effect, Program, with_effects


def increment(state: dict, payload=None) -> dict:
    step = payload if isinstance(payload, int) else 1
    return {**state, "n": state["n"] + step}


def decrement(state: dict, payload=None) -> dict:
    step = payload if isinstance(payload, int) else 1
    return {**state, "n": state["n"] - step}


def reset(state: dict, payload=None) -> dict:
    return {**state, "n": 0}


async def _after(dispatch, delay: float, action) -> None:
    await asyncio.sleep(delay)
    dispatch(action)


def delayed_increment(state: dict, payload=None):
    """increment after `payload` seconds (default 0)."""
    delay = float(payload) if isinstance(payload, (int, float)) else 0.0
    return with_effects(state, Effect.of(_after, delay, increment))


def view(state: dict) -> Text:
    return Text(f"count: {state['n']}", style="bold")


def compact(state: dict) -> str:
    return str(state["n"])


program = Program(
    name="counter",
    initial_state={"n": 0},
    views={"main": view, "compact": compact},
    actions={
        "increment": increment,
        "decrement": decrement,
        "reset": reset,
        "delayed_increment": delayed_increment,
    },
    description="a number you can bump up and down",
)
