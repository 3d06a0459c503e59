"""note: free text, with a companion editor program."""

from __future__ import annotations

from rich.text import Text

from ..core.programs import Program


def set_text(state: dict, payload=None) -> dict:
    return {**state, "text": str(payload or "")}


def append(state: dict, payload=None) -> dict:
    if not payload:
        return state
    return {**state, "text": state["text"] + str(payload)}


def clear(state: dict, payload=None) -> dict:
    return {**state, "text": ""}


def view(state: dict) -> Text:
    text = state.get("text", "")
    return Text(text) if text else Text("(empty note)", style="dim")


def editor_view(state: dict) -> Text:
    text = state.get("text", "")
    return Text(f"{text}▏  [{len(text)} chars]")


program = Program(
    name="note",
    initial_state={"text": ""},
    views={"main": view},
    actions={"set_text": set_text, "append": append, "clear": clear},
    description="plain text",
)

# the editor works on the same state shape as the note it edits
editor = Program(
    name="note-editor",
    initial_state={"text": ""},
    views={"main": editor_view},
    actions={"set_text": set_text, "append": append, "clear": clear},
)
