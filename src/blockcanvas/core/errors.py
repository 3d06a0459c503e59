"""error taxonomy for the canvas core.

none of these are allowed to take the whole application down: the
isolation boundary is the block.
"""

from __future__ import annotations

from typing import Optional


class CanvasError(Exception):
    """base class for canvas errors."""


class ProgramNotFoundError(CanvasError, LookupError):
    """a block names a program that is not in the registry."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"program not found: {name}")


class ActionFailure(CanvasError):
    """a program action or effect raised inside its block."""

    def __init__(self, block_id: Optional[int], error: BaseException):
        self.block_id = block_id
        self.error = error
        where = f"block {block_id}" if block_id is not None else "page program"
        super().__init__(f"action failed in {where}: {error}")


class ConnectionRejected(CanvasError):
    """the target's program type is not in the source slot's allow-list."""


class PersistenceError(CanvasError):
    """reading or writing the canvas document failed."""


class StaleEffectResult(CanvasError):
    """an effect resolved after the slice it addresses was removed."""
