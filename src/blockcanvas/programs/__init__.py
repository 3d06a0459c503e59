"""built-in programs.

registration is a static table: add a program here to make it available
to blocks. there is no directory scanning.
"""

from ..core.programs import ProgramRegistry, RegistryEntry
from . import counter, mirror, note, ticker

BUILTIN_PROGRAMS = [
    RegistryEntry(counter.program),
    RegistryEntry(note.program, editor=note.editor),
    RegistryEntry(mirror.program),
    RegistryEntry(ticker.program),
]


def builtin_registry() -> ProgramRegistry:
    """fresh registry holding every built-in program."""
    return ProgramRegistry(BUILTIN_PROGRAMS)


__all__ = ["BUILTIN_PROGRAMS", "builtin_registry"]
