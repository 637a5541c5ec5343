"""Graph codec: live project graph <-> SaveFile.

Both directions are pure: no I/O, and ``decode`` never touches an existing
graph. Everything ``decode`` can reject (version, references, duplicate keys,
instruments) is checked before the first live object is built.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..models.arrangement import Arrangement, ArrangementClip, ArrangementTrack
from ..models.automation import AutomationCurve, AutomationNode
from ..models.ids import EntityKind, IdAllocator
from ..models.mixer import NO_ROUTE, Channel, MixerTrack
from ..models.pattern import Note, Pattern
from ..models.project import GlobalSettings, Metadata, PlaybackMode, PlaybackState, Project
from ..models.ui import UIState, WindowGeometry, WindowVisibility
from .errors import IntegrityError, SchemaError
from .save_file import (
    SAVE_FILE_VERSION,
    SaveFile,
    SavedArrangement,
    SavedAutomationCurve,
    SavedAutomationNode,
    SavedChannel,
    SavedClip,
    SavedGlobal,
    SavedIdCounters,
    SavedMetadata,
    SavedMixer,
    SavedNote,
    SavedPattern,
    SavedPlayback,
    SavedTrack,
    SavedUI,
    SavedWindow,
    check_version,
)

logger = logging.getLogger(__name__)

# EntityKind -> SavedIdCounters attribute
COUNTER_FIELDS: Dict[EntityKind, str] = {
    EntityKind.CHANNEL: "next_channel_id",
    EntityKind.CLIP: "next_clip_id",
    EntityKind.PATTERN: "next_pattern_id",
    EntityKind.MIXER: "next_mixer_id",
    EntityKind.TRACK: "next_track_id",
}


def _floor(ids: Iterable[int]) -> int:
    """Smallest counter value that cannot collide with ``ids``."""
    return max(ids, default=0) + 1


def saved_ids(save: SaveFile) -> Dict[EntityKind, List[int]]:
    return {
        EntityKind.CHANNEL: [c.id for c in save.channels],
        EntityKind.CLIP: [c.id for c in save.arrangement.clips],
        EntityKind.PATTERN: [p.id for p in save.patterns],
        EntityKind.MIXER: [m.id for m in save.mixers],
        EntityKind.TRACK: [t.id for t in save.arrangement.tracks],
    }


def live_ids(project: Project) -> Dict[EntityKind, List[int]]:
    return {
        EntityKind.CHANNEL: [c.id for c in project.channels],
        EntityKind.CLIP: [c.id for c in project.arrangement.clips],
        EntityKind.PATTERN: [p.id for p in project.patterns],
        EntityKind.MIXER: [m.id for m in project.mixers],
        EntityKind.TRACK: [t.id for t in project.arrangement.tracks],
    }


# Encode ---------------------------------------------------------------


def _encode_note(note: Note) -> SavedNote:
    return SavedNote(
        id=note.id,
        row=note.row,
        col=note.col,
        length=note.length,
        velocity=note.velocity,
        channel_id=note.channel_id,
        midi=note.midi,
        # map iteration order is insertion order, which keeps saves diff-stable
        automation=[
            SavedAutomationCurve(
                parameter_id=parameter_id,
                nodes=[
                    SavedAutomationNode(
                        id=node.id,
                        beat=node.beat,
                        value=node.value,
                        curve_tension=node.curve_tension,
                    )
                    for node in curve.nodes
                ],
            )
            for parameter_id, curve in note.automation.items()
        ],
    )


def encode(project: Project) -> SaveFile:
    """Project the live graph onto the storable schema."""
    counters = SavedIdCounters()
    for kind, ids in live_ids(project).items():
        setattr(counters, COUNTER_FIELDS[kind], max(project.ids.peek(kind), _floor(ids)))

    ui = project.ui
    return SaveFile(
        version=SAVE_FILE_VERSION,
        metadata=SavedMetadata(
            project_name=project.metadata.project_name,
            created=project.metadata.created,
            last_modified=project.metadata.last_modified,
        ),
        global_=SavedGlobal(
            bpm=project.settings.bpm,
            global_volume=project.settings.global_volume,
            snap_division=project.settings.snap_division,
            playback_mode=PlaybackMode(project.settings.playback_mode).value,
        ),
        playback=SavedPlayback(
            pause_time=project.playback.pause_time,
            loop_enabled=project.playback.loop_enabled,
            loop_start=project.playback.loop_start,
            loop_end=project.playback.loop_end,
        ),
        patterns=[
            SavedPattern(
                id=pattern.id,
                name=pattern.name,
                visible=pattern.visible,
                notes=[_encode_note(note) for note in pattern.notes],
            )
            for pattern in project.patterns
        ],
        channels=[
            SavedChannel(
                id=channel.id,
                name=channel.name,
                synth_id=channel.synth_id,
                synth_num=channel.synth_num,
                mixer_track=channel.mixer_track,
                volume=channel.volume,
                pan=channel.pan,
                muted=channel.muted,
                solo=channel.solo,
            )
            for channel in project.channels
        ],
        mixers=[
            SavedMixer(
                id=mixer.id,
                name=mixer.name,
                route=mixer.route,
                volume=mixer.volume,
                pan=mixer.pan,
                muted=mixer.muted,
                solo=mixer.solo,
            )
            for mixer in project.mixers
        ],
        arrangement=SavedArrangement(
            clips=[
                SavedClip(
                    id=clip.id,
                    pattern_id=clip.pattern_id,
                    track_id=clip.track_id,
                    start_beat=clip.start_beat,
                    duration=clip.duration,
                    offset=clip.offset,
                    muted=clip.muted,
                )
                for clip in project.arrangement.clips
            ],
            tracks=[
                SavedTrack(
                    id=track.id,
                    name=track.name,
                    height=track.height,
                    muted=track.muted,
                    solo=track.solo,
                )
                for track in project.arrangement.tracks
            ],
        ),
        ui=SavedUI(
            patterns_list_width=ui.patterns_list_width,
            header_height=ui.header_height,
            arrangement_visible=ui.visibility.arrangement,
            channel_rack_visible=ui.visibility.channel_rack,
            mixer_visible=ui.visibility.mixer,
            windows=[
                SavedWindow(
                    id=win.id,
                    x=win.x,
                    y=win.y,
                    width=win.width,
                    height=win.height,
                    z=win.z,
                    user_modified=win.user_modified,
                )
                for win in ui.windows
            ],
        ),
        id_counters=counters,
    )


# Integrity ------------------------------------------------------------


def _duplicates(values: Iterable[Any]) -> List[Any]:
    seen = set()
    dupes = []
    for value in values:
        if value in seen and value not in dupes:
            dupes.append(value)
        seen.add(value)
    return dupes


def integrity_problems(save: SaveFile) -> List[str]:
    """List every broken reference and duplicated key in ``save``."""
    problems: List[str] = []

    for kind, ids in saved_ids(save).items():
        for dupe in _duplicates(ids):
            problems.append(f"duplicate {kind.value} id {dupe}")

    channel_ids = {c.id for c in save.channels}
    mixer_ids = {m.id for m in save.mixers}
    pattern_ids = {p.id for p in save.patterns}
    track_ids = {t.id for t in save.arrangement.tracks}

    for pattern in save.patterns:
        for note in pattern.notes:
            if note.channel_id not in channel_ids:
                problems.append(f"note {note.id} in pattern {pattern.id} plays unknown channel {note.channel_id}")
            for parameter_id in _duplicates(curve.parameter_id for curve in note.automation):
                problems.append(f"note {note.id} in pattern {pattern.id} has duplicate automation for {parameter_id!r}")

    for channel in save.channels:
        if channel.mixer_track not in mixer_ids:
            problems.append(f"channel {channel.id} routes to unknown mixer {channel.mixer_track}")

    for mixer in save.mixers:
        if mixer.route == mixer.id:
            problems.append(f"mixer {mixer.id} routes to itself")
        elif mixer.route != NO_ROUTE and mixer.route not in mixer_ids:
            problems.append(f"mixer {mixer.id} routes to unknown mixer {mixer.route}")

    for clip in save.arrangement.clips:
        if clip.track_id not in track_ids:
            problems.append(f"clip {clip.id} is on unknown track {clip.track_id}")
        if clip.pattern_id not in pattern_ids:
            problems.append(f"clip {clip.id} plays unknown pattern {clip.pattern_id}")

    return problems


def check_integrity(save: SaveFile) -> None:
    problems = integrity_problems(save)
    if problems:
        raise IntegrityError("; ".join(problems))


# Decode ---------------------------------------------------------------


def _decode_automation(note: SavedNote) -> Dict[str, AutomationCurve]:
    automation: Dict[str, AutomationCurve] = {}
    for curve in note.automation:
        if curve.parameter_id in automation:
            raise IntegrityError(f"note {note.id} has duplicate automation for {curve.parameter_id!r}")
        automation[curve.parameter_id] = AutomationCurve(
            parameter_id=curve.parameter_id,
            nodes=[
                AutomationNode(id=n.id, beat=n.beat, value=n.value, curve_tension=n.curve_tension)
                for n in curve.nodes
            ],
        )
    return automation


def _decode_ui(saved: Optional[SavedUI]) -> UIState:
    if saved is None:
        return UIState()
    return UIState(
        patterns_list_width=saved.patterns_list_width,
        header_height=saved.header_height,
        visibility=WindowVisibility(
            arrangement=saved.arrangement_visible,
            channel_rack=saved.channel_rack_visible,
            mixer=saved.mixer_visible,
        ),
        windows=[
            WindowGeometry(
                id=w.id,
                x=w.x,
                y=w.y,
                width=w.width,
                height=w.height,
                z=w.z,
                user_modified=w.user_modified,
            )
            for w in saved.windows
        ],
    )


def _build_project(save: SaveFile, instruments: Dict[int, Any]) -> Project:
    return Project(
        metadata=Metadata(
            project_name=save.metadata.project_name,
            created=save.metadata.created,
            last_modified=save.metadata.last_modified,
        ),
        settings=GlobalSettings(
            bpm=save.global_.bpm,
            global_volume=save.global_.global_volume,
            snap_division=save.global_.snap_division,
            playback_mode=PlaybackMode(save.global_.playback_mode),
        ),
        playback=PlaybackState(
            pause_time=save.playback.pause_time,
            loop_enabled=save.playback.loop_enabled,
            loop_start=save.playback.loop_start,
            loop_end=save.playback.loop_end,
        ),
        mixers=[
            MixerTrack(
                id=m.id,
                name=m.name,
                route=m.route,
                volume=m.volume,
                pan=m.pan,
                muted=m.muted,
                solo=m.solo,
            )
            for m in save.mixers
        ],
        channels=[
            Channel(
                id=c.id,
                name=c.name,
                synth_id=c.synth_id,
                synth_num=c.synth_num,
                instrument=instruments[c.id],
                mixer_track=c.mixer_track,
                volume=c.volume,
                pan=c.pan,
                muted=c.muted,
                solo=c.solo,
            )
            for c in save.channels
        ],
        patterns=[
            Pattern(
                id=p.id,
                name=p.name,
                visible=p.visible,
                notes=[
                    Note(
                        id=n.id,
                        row=n.row,
                        col=n.col,
                        length=n.length,
                        velocity=n.velocity,
                        channel_id=n.channel_id,
                        midi=n.midi,
                        automation=_decode_automation(n),
                    )
                    for n in p.notes
                ],
            )
            for p in save.patterns
        ],
        arrangement=Arrangement(
            tracks=[
                ArrangementTrack(id=t.id, name=t.name, height=t.height, muted=t.muted, solo=t.solo)
                for t in save.arrangement.tracks
            ],
            clips=[
                ArrangementClip(
                    id=c.id,
                    pattern_id=c.pattern_id,
                    track_id=c.track_id,
                    start_beat=c.start_beat,
                    duration=c.duration,
                    offset=c.offset,
                    muted=c.muted,
                )
                for c in save.arrangement.clips
            ],
        ),
        ui=_decode_ui(save.ui),
    )


def seed_counters(save: SaveFile, allocator: IdAllocator) -> None:
    """Raise ``allocator`` so no ID present in ``save`` can be issued again.

    Stored counters are trusted only when they clear every stored ID;
    otherwise the floor ``max(id) + 1`` is used.
    """
    stored = save.id_counters
    if stored is None:
        logger.warning("Save file has no idCounters; deriving them from stored ids")
    for kind, ids in saved_ids(save).items():
        floor = _floor(ids)
        value = getattr(stored, COUNTER_FIELDS[kind]) if stored is not None else None
        if stored is not None and (value is None or value < floor):
            logger.warning(f"Stored counter for {kind.value} ({value}) is below {floor}; repairing")
        allocator.seed(kind, max(value or 0, floor))


def decode(save: SaveFile, registry: Any, *, allocator: Optional[IdAllocator] = None) -> Project:
    """Rebuild a live graph from ``save``.

    Args:
        save: parsed save file.
        registry: synth registry providing ``resolve_instrument``.
        allocator: process-scoped allocator to seed in place; a fresh one is
            created when omitted.

    Raises:
        SchemaError: unsupported version or values the live model rejects.
        IntegrityError: broken reference or duplicated key.
        UnresolvedInstrumentError: the registry cannot build an instrument.
    """
    check_version(save.version)
    check_integrity(save)

    instruments = {c.id: registry.resolve_instrument(c.synth_id, c.synth_num) for c in save.channels}

    try:
        project = _build_project(save, instruments)
    except (IntegrityError, SchemaError):
        raise
    except ValueError as exc:
        raise SchemaError(f"Invalid value in save file: {exc}") from exc

    allocator = allocator if allocator is not None else IdAllocator()
    seed_counters(save, allocator)
    project.ids = allocator
    logger.debug(
        f"Decoded project {project.metadata.project_name!r}: {len(project.patterns)} patterns, "
        f"{len(project.channels)} channels, {len(project.arrangement.clips)} clips"
    )
    return project


__all__ = [
    "COUNTER_FIELDS",
    "check_integrity",
    "decode",
    "encode",
    "integrity_problems",
    "seed_counters",
]
