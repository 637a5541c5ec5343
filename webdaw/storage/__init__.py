"""Project persistence: schema, codec, store and controller."""

from .codec import check_integrity, decode, encode, integrity_problems
from .controller import AUTOSAVE_SLOT, ControllerState, ManualClock, MonotonicClock, PersistenceController, WriteSlot
from .errors import (
    IntegrityError,
    PersistenceError,
    RecordNotFound,
    SchemaError,
    StoreUnavailable,
    UnresolvedInstrumentError,
)
from .io import dumps, export_project, import_project, loads, new_project
from .save_file import SAVE_FILE_VERSION, SaveFile
from .store import AUTOSAVE_KEY, MemoryStore, Partition, SqlStore, StoreAdapter

__all__ = [
    "AUTOSAVE_KEY",
    "AUTOSAVE_SLOT",
    "ControllerState",
    "IntegrityError",
    "ManualClock",
    "MemoryStore",
    "MonotonicClock",
    "Partition",
    "PersistenceController",
    "PersistenceError",
    "RecordNotFound",
    "SAVE_FILE_VERSION",
    "SaveFile",
    "SchemaError",
    "SqlStore",
    "StoreAdapter",
    "StoreUnavailable",
    "UnresolvedInstrumentError",
    "WriteSlot",
    "check_integrity",
    "decode",
    "dumps",
    "encode",
    "export_project",
    "import_project",
    "integrity_problems",
    "loads",
    "new_project",
]
