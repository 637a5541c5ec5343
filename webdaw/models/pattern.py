"""Patterns and the notes they own."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .automation import AutomationCurve


@dataclass
class Note:
    """A piano-roll note block.

    ``automation`` maps parameter id to its curve. The map keeps insertion
    order, which is also the order curves are written to disk.
    """

    id: str
    row: int
    col: float
    length: float
    velocity: float
    channel_id: int
    midi: int
    automation: Dict[str, AutomationCurve] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.length <= 0:
            raise ValueError("length must be > 0")

    def set_curve(self, curve: AutomationCurve) -> None:
        self.automation[curve.parameter_id] = curve


@dataclass
class Pattern:
    id: int
    name: str
    visible: bool = False
    notes: List[Note] = field(default_factory=list)

    def find_note(self, note_id: str) -> Optional[Note]:
        for note in self.notes:
            if note.id == note_id:
                return note
        return None


__all__ = ["Note", "Pattern"]
