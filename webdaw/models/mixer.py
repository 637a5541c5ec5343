"""Channel rack entries and mixer tracks."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

MASTER_MIXER_ID = 0
NO_ROUTE = -1  # only the master track is unrouted


@dataclass
class Channel:
    """A channel rack entry bound to a live synth instance.

    ``synth_id`` and ``synth_num`` identify the instrument; ``instrument`` is
    the runtime object built from them and is never persisted.
    """

    id: int
    name: str
    synth_id: str
    synth_num: int
    instrument: Any = field(default=None, compare=False, repr=False)
    mixer_track: int = MASTER_MIXER_ID
    volume: float = 1.0
    pan: float = 0.0
    muted: bool = False
    solo: bool = False

    def __post_init__(self) -> None:
        self.volume = max(0.0, float(self.volume))
        self.pan = max(-1.0, min(1.0, float(self.pan)))


@dataclass
class MixerTrack:
    id: int
    name: str
    route: int = MASTER_MIXER_ID
    volume: float = 1.0
    pan: float = 0.0
    muted: bool = False
    solo: bool = False
    # Meter readings, refreshed by the audio thread.
    peak_db_l: float = field(default=-math.inf, compare=False)
    peak_db_r: float = field(default=-math.inf, compare=False)

    @property
    def is_master(self) -> bool:
        return self.id == MASTER_MIXER_ID


def master_track() -> MixerTrack:
    return MixerTrack(id=MASTER_MIXER_ID, name="Master", route=NO_ROUTE)


__all__ = ["Channel", "MixerTrack", "MASTER_MIXER_ID", "NO_ROUTE", "master_track"]
