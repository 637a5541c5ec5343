"""Errors raised by the persistence engine.

SchemaError                the stored payload is unparseable, has an unknown
                           version or lacks required fields
IntegrityError             a reference does not resolve or a key is duplicated
UnresolvedInstrumentError  the synth registry cannot rebuild an instrument
StoreUnavailable           the storage engine failed (quota, not opened, I/O)
RecordNotFound             a read found no record under the key
"""

from __future__ import annotations


class PersistenceError(Exception):
    """Base class for every persistence failure."""


class SchemaError(PersistenceError, ValueError):
    pass


class IntegrityError(PersistenceError, ValueError):
    pass


class UnresolvedInstrumentError(PersistenceError, LookupError):
    def __init__(self, synth_id: str, synth_num: int, reason: str = "not registered") -> None:
        self.synth_id = synth_id
        self.synth_num = synth_num
        super().__init__(f"Cannot resolve instrument {synth_id}#{synth_num}: {reason}")


class StoreUnavailable(PersistenceError, OSError):
    pass


class RecordNotFound(PersistenceError, KeyError):
    def __init__(self, partition: str, key: str) -> None:
        self.partition = partition
        self.key = key
        super().__init__(f"No record {key!r} in {partition}")

    def __str__(self) -> str:
        return self.args[0]


__all__ = [
    "IntegrityError",
    "PersistenceError",
    "RecordNotFound",
    "SchemaError",
    "StoreUnavailable",
    "UnresolvedInstrumentError",
]
