"""Monotonic per-entity-class ID allocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict


class EntityKind(str, Enum):
    """Entity classes that carry allocator-issued integer IDs."""

    CHANNEL = "channel"
    CLIP = "clip"
    PATTERN = "pattern"
    MIXER = "mixer"
    TRACK = "track"


def _fresh_counters() -> Dict[EntityKind, int]:
    return {kind: 1 for kind in EntityKind}


@dataclass
class IdAllocator:
    """Issues strictly increasing IDs per entity kind.

    Mixer ID 0 is reserved for the master track, so every kind starts at 1.
    Counters only ever move up: ``seed`` raises the floor after a load and
    never lowers it.
    """

    _next: Dict[EntityKind, int] = field(default_factory=_fresh_counters)

    def next_id(self, kind: EntityKind) -> int:
        value = self._next[kind]
        self._next[kind] = value + 1
        return value

    def peek(self, kind: EntityKind) -> int:
        """Return the value the next ``next_id(kind)`` call will issue."""
        return self._next[kind]

    def seed(self, kind: EntityKind, minimum_next: int) -> None:
        if minimum_next > self._next[kind]:
            self._next[kind] = int(minimum_next)

    def counters(self) -> Dict[EntityKind, int]:
        return dict(self._next)

    def copy(self) -> "IdAllocator":
        return IdAllocator(dict(self._next))


__all__ = ["EntityKind", "IdAllocator"]
