"""Project model - the live graph the editor mutates and the controller persists."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

from .arrangement import Arrangement, ArrangementClip, ArrangementTrack
from .automation import AutomationCurve
from .ids import EntityKind, IdAllocator
from .mixer import Channel, MixerTrack, MASTER_MIXER_ID, master_track
from .pattern import Note, Pattern
from .ui import UIState

DEFAULT_PROJECT_NAME = "Untitled Project"
DEFAULT_SYNTH_ID = "minisynth"
SNAP_DIVISIONS = (0, 1, 2, 3, 4, 6, 8, 16, 32)  # 0 disables snapping

MutationListener = Callable[[], None]


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class PlaybackMode(str, Enum):
    PATTERN = "pattern"
    ARRANGEMENT = "arrangement"


@dataclass
class Metadata:
    project_name: str = DEFAULT_PROJECT_NAME
    created: int = field(default_factory=now_ms)
    last_modified: int = field(default_factory=now_ms)


@dataclass
class GlobalSettings:
    bpm: float = 120.0
    global_volume: float = 1.0
    snap_division: int = 4
    playback_mode: PlaybackMode = PlaybackMode.PATTERN


@dataclass
class PlaybackState:
    """Transport position needed to resume where the user left off."""

    pause_time: float = 0.0
    loop_enabled: bool = False
    loop_start: float = 0.0
    loop_end: float = 4.0


@dataclass
class Project:
    """Root of the live graph.

    Every mutator allocates IDs through ``ids`` and then notifies the
    subscribed listeners; the persistence controller is one of them.
    Code that edits the dataclasses directly calls ``mark_dirty()``.
    """

    metadata: Metadata = field(default_factory=Metadata)
    settings: GlobalSettings = field(default_factory=GlobalSettings)
    playback: PlaybackState = field(default_factory=PlaybackState)
    patterns: List[Pattern] = field(default_factory=list)
    channels: List[Channel] = field(default_factory=list)
    mixers: List[MixerTrack] = field(default_factory=lambda: [master_track()])
    arrangement: Arrangement = field(default_factory=Arrangement)
    ui: UIState = field(default_factory=UIState)
    ids: IdAllocator = field(default_factory=IdAllocator)

    revision: int = field(default=0, compare=False)
    _listeners: List[MutationListener] = field(default_factory=list, compare=False, repr=False)

    # Mutation notifications -------------------------------------------
    def subscribe(self, listener: MutationListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: MutationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def mark_dirty(self) -> None:
        self.revision += 1
        for listener in list(self._listeners):
            listener()

    # Lookups ----------------------------------------------------------
    def get_pattern(self, pattern_id: int) -> Optional[Pattern]:
        return next((p for p in self.patterns if p.id == pattern_id), None)

    def get_channel(self, channel_id: int) -> Optional[Channel]:
        return next((c for c in self.channels if c.id == channel_id), None)

    def get_mixer(self, mixer_id: int) -> Optional[MixerTrack]:
        return next((m for m in self.mixers if m.id == mixer_id), None)

    # Patterns & notes -------------------------------------------------
    def add_pattern(self, name: Optional[str] = None, visible: bool = False) -> Pattern:
        pattern_id = self.ids.next_id(EntityKind.PATTERN)
        pattern = Pattern(id=pattern_id, name=name or f"Pattern {pattern_id}", visible=visible)
        self.patterns.append(pattern)
        self.mark_dirty()
        return pattern

    def remove_pattern(self, pattern_id: int) -> None:
        """Remove a pattern and every arrangement clip that plays it."""
        self.patterns = [p for p in self.patterns if p.id != pattern_id]
        self.arrangement.clips = [c for c in self.arrangement.clips if c.pattern_id != pattern_id]
        self.mark_dirty()

    def add_note(self, pattern_id: int, note: Note) -> Note:
        pattern = self.get_pattern(pattern_id)
        if pattern is None:
            raise KeyError(f"Unknown pattern {pattern_id}")
        if self.get_channel(note.channel_id) is None:
            raise KeyError(f"Unknown channel {note.channel_id}")
        pattern.notes.append(note)
        self.mark_dirty()
        return note

    def set_automation(self, pattern_id: int, note_id: str, curve: AutomationCurve) -> None:
        pattern = self.get_pattern(pattern_id)
        note = pattern.find_note(note_id) if pattern else None
        if note is None:
            raise KeyError(f"Unknown note {note_id} in pattern {pattern_id}")
        note.set_curve(curve)
        self.mark_dirty()

    # Channels & mixers ------------------------------------------------
    def add_channel(
        self,
        instrument: Any = None,
        synth_id: str = DEFAULT_SYNTH_ID,
        synth_num: int = 1,
        name: Optional[str] = None,
    ) -> Channel:
        channel_id = self.ids.next_id(EntityKind.CHANNEL)
        channel = Channel(
            id=channel_id,
            name=name or f"Channel {channel_id}",
            synth_id=synth_id,
            synth_num=synth_num,
            instrument=instrument,
        )
        self.channels.append(channel)
        self.mark_dirty()
        return channel

    def remove_channel(self, channel_id: int) -> None:
        """Remove a channel together with the notes it plays."""
        self.channels = [c for c in self.channels if c.id != channel_id]
        for pattern in self.patterns:
            pattern.notes = [n for n in pattern.notes if n.channel_id != channel_id]
        self.mark_dirty()

    def add_mixer(self, name: Optional[str] = None) -> MixerTrack:
        mixer_id = self.ids.next_id(EntityKind.MIXER)
        mixer = MixerTrack(id=mixer_id, name=name or f"Mixer {mixer_id}")
        self.mixers.append(mixer)
        self.mark_dirty()
        return mixer

    def route_channel(self, channel_id: int, mixer_id: int) -> None:
        channel = self.get_channel(channel_id)
        if channel is None or self.get_mixer(mixer_id) is None:
            raise KeyError(f"Cannot route channel {channel_id} to mixer {mixer_id}")
        channel.mixer_track = mixer_id
        self.mark_dirty()

    # Arrangement ------------------------------------------------------
    def add_track(self, name: Optional[str] = None) -> ArrangementTrack:
        track_id = self.ids.next_id(EntityKind.TRACK)
        track = ArrangementTrack(id=track_id, name=name or f"Track {track_id}")
        self.arrangement.tracks.append(track)
        self.mark_dirty()
        return track

    def add_clip(
        self,
        pattern_id: int,
        track_id: int,
        start_beat: float,
        duration: float,
        offset: float = 0.0,
    ) -> ArrangementClip:
        if self.get_pattern(pattern_id) is None:
            raise KeyError(f"Unknown pattern {pattern_id}")
        if self.arrangement.get_track(track_id) is None:
            raise KeyError(f"Unknown track {track_id}")
        clip = ArrangementClip(
            id=self.ids.next_id(EntityKind.CLIP),
            pattern_id=pattern_id,
            track_id=track_id,
            start_beat=start_beat,
            duration=duration,
            offset=offset,
        )
        self.arrangement.clips.append(clip)
        self.mark_dirty()
        return clip

    def remove_clip(self, clip_id: int) -> None:
        self.arrangement.clips = [c for c in self.arrangement.clips if c.id != clip_id]
        self.mark_dirty()

    # Global & transport -----------------------------------------------
    def set_bpm(self, bpm: float) -> None:
        if bpm <= 0:
            raise ValueError("bpm must be > 0")
        self.settings.bpm = bpm
        self.mark_dirty()

    def set_global_volume(self, volume: float) -> None:
        self.settings.global_volume = max(0.0, float(volume))
        self.mark_dirty()

    def set_snap_division(self, division: int) -> None:
        if division not in SNAP_DIVISIONS:
            raise ValueError(f"Unsupported snap division {division}")
        self.settings.snap_division = division
        self.mark_dirty()

    def set_playback_mode(self, mode: PlaybackMode) -> None:
        self.settings.playback_mode = PlaybackMode(mode)
        self.mark_dirty()

    def set_loop(self, enabled: bool, start: float, end: float) -> None:
        if end <= start:
            raise ValueError("loop end must be after loop start")
        self.playback.loop_enabled = enabled
        self.playback.loop_start = start
        self.playback.loop_end = end
        self.mark_dirty()

    def seek(self, beat: float) -> None:
        self.playback.pause_time = max(0.0, beat)
        self.mark_dirty()


def new_project(name: str = DEFAULT_PROJECT_NAME, registry: Any = None) -> Project:
    """Build the editor's start-up graph.

    Master mixer, four arrangement tracks, one open pattern and, when a synth
    registry is given, one channel playing its default instrument.
    """
    project = Project(metadata=Metadata(project_name=name))
    for _ in range(4):
        project.add_track()
    project.add_pattern("Pattern 1", visible=True)
    if registry is not None:
        instrument = registry.resolve_instrument(DEFAULT_SYNTH_ID, 1)
        project.add_channel(instrument, DEFAULT_SYNTH_ID, 1)
    # Construction is not an edit.
    project.revision = 0
    return project


__all__ = [
    "DEFAULT_PROJECT_NAME",
    "GlobalSettings",
    "MASTER_MIXER_ID",
    "Metadata",
    "PlaybackMode",
    "PlaybackState",
    "Project",
    "SNAP_DIVISIONS",
    "new_project",
    "now_ms",
]
