"""Arrangement timeline: tracks and the pattern clips placed on them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ArrangementTrack:
    id: int
    name: str
    height: int = 100
    muted: bool = False
    solo: bool = False


@dataclass
class ArrangementClip:
    """A pattern instance placed on an arrangement track."""

    id: int
    pattern_id: int
    track_id: int
    start_beat: float
    duration: float
    offset: float = 0.0  # trimmed from the clip start
    muted: bool = False

    def __post_init__(self) -> None:
        if self.start_beat < 0:
            raise ValueError("start_beat must be >= 0")
        if self.duration <= 0:
            raise ValueError("duration must be > 0")


@dataclass
class Arrangement:
    tracks: List[ArrangementTrack] = field(default_factory=list)
    clips: List[ArrangementClip] = field(default_factory=list)

    def get_track(self, track_id: int) -> Optional[ArrangementTrack]:
        return next((track for track in self.tracks if track.id == track_id), None)


__all__ = ["Arrangement", "ArrangementClip", "ArrangementTrack"]
