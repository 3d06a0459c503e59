"""mirror: shows whatever its connected source program holds.

has one connection slot, ``source``, which accepts counters and notes.
"""

from __future__ import annotations

from rich.text import Text

from ..core.programs import ConnectionSlot, Program


def on_source_change(state: dict, peer_state=None) -> dict:
    return {**state, "value": peer_state, "updates": state["updates"] + 1}


def clear(state: dict, payload=None) -> dict:
    return {**state, "value": None}


def view(state: dict) -> Text:
    value = state.get("value")
    if value is None:
        return Text("(not connected)", style="dim")
    if isinstance(value, dict) and len(value) == 1:
        value = next(iter(value.values()))
    return Text(f"⇐ {value}", style="cyan")


program = Program(
    name="mirror",
    initial_state={"value": None, "updates": 0},
    views={"main": view},
    actions={"clear": clear},
    connections={
        "source": ConnectionSlot(allowed=("counter", "note"), on_change=on_source_change),
    },
    description="mirrors a connected counter or note",
)
