"""ticker: counts seconds while running, via a subscription."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from rich.text import Text

from ..core.programs import Program, Subscription


def tick(state: dict, payload=None) -> dict:
    return {**state, "ticks": state["ticks"] + 1}


def toggle(state: dict, payload=None) -> dict:
    return {**state, "running": not state["running"]}


def _every(dispatch, interval: float):
    """start a timer task on the running loop; returns its cleanup."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logging.debug("ticker: no running loop, timer not started")
        return None

    async def run() -> None:
        while True:
            await asyncio.sleep(interval)
            dispatch(tick)

    task: Optional[asyncio.Task] = loop.create_task(run())
    return task.cancel


def subscriptions(state: dict) -> list[Subscription]:
    if not state.get("running"):
        return []
    return [Subscription.of(_every, state.get("interval", 1.0))]


def view(state: dict) -> Text:
    mark = "▶" if state["running"] else "■"
    return Text(f"{mark} {state['ticks']}s")


program = Program(
    name="ticker",
    initial_state={"ticks": 0, "running": True, "interval": 1.0},
    views={"main": view},
    actions={"tick": tick, "toggle": toggle},
    subscriptions=subscriptions,
    description="counts seconds",
)
