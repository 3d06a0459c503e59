"""canvas core shared between frontends."""

from .constants import MAX_UNDO_HISTORY, MIN_SIZE, get_data_dir
from .errors import (
    CanvasError,
    ProgramNotFoundError,
    ActionFailure,
    ConnectionRejected,
    PersistenceError,
    StaleEffectResult,
)
from .models import (
    Block,
    CanvasState,
    Connection,
    Geometry,
    Interaction,
    Memento,
    Page,
    ProgramData,
    Viewport,
)
from .programs import (
    ConnectionSlot,
    Effect,
    Program,
    ProgramRegistry,
    Redirect,
    RegistryEntry,
    Replace,
    Subscription,
    WithEffects,
    resolve,
    with_effects,
)
from .lifting import BlockSlice, PageSlice, lift_action
from .composition import CompositionEngine, InstanceStatus, ProgramInstance
from .runtime import Runtime
from .memento import undo, redo, can_undo, can_redo
from .manipulation import PointerEvent
from .viewport import WheelEvent
from .persistence import Autosaver, FileStorage, MemoryStorage, Storage, load_state, save_state
from .host import Host, MemoryHost

__all__ = [
    # config
    "MAX_UNDO_HISTORY",
    "MIN_SIZE",
    "get_data_dir",
    # errors
    "CanvasError",
    "ProgramNotFoundError",
    "ActionFailure",
    "ConnectionRejected",
    "PersistenceError",
    "StaleEffectResult",
    # models
    "Block",
    "CanvasState",
    "Connection",
    "Geometry",
    "Interaction",
    "Memento",
    "Page",
    "ProgramData",
    "Viewport",
    # programs
    "ConnectionSlot",
    "Effect",
    "Program",
    "ProgramRegistry",
    "Redirect",
    "RegistryEntry",
    "Replace",
    "Subscription",
    "WithEffects",
    "resolve",
    "with_effects",
    "BlockSlice",
    "PageSlice",
    "lift_action",
    # engine
    "CompositionEngine",
    "InstanceStatus",
    "ProgramInstance",
    "Runtime",
    # history
    "undo",
    "redo",
    "can_undo",
    "can_redo",
    # input
    "PointerEvent",
    "WheelEvent",
    # persistence / host
    "Autosaver",
    "FileStorage",
    "MemoryStorage",
    "Storage",
    "load_state",
    "save_state",
    "Host",
    "MemoryHost",
]
