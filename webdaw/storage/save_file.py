"""Data structures describing the stored webdaw project format.

Records mirror the live graph but hold only plain, portable data: IDs instead
of object references, arrays instead of maps, no runtime-only fields. Keys on
the wire are camelCase.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type

from .errors import SchemaError

SAVE_FILE_VERSION = "1.0.0"
DB_NAME = "webdaw"
DB_VERSION = 1
AUTOSAVE_STORE = "autosave"
PROJECTS_STORE = "projects"

PLAYBACK_MODES = ("pattern", "arrangement")

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")

_STR: Tuple[Type, ...] = (str,)
_INT: Tuple[Type, ...] = (int,)
_NUM: Tuple[Type, ...] = (int, float)
_BOOL: Tuple[Type, ...] = (bool,)
_LIST: Tuple[Type, ...] = (list,)
_OBJ: Tuple[Type, ...] = (dict,)

_MISSING = object()


def parse_version(value: Any) -> Tuple[int, int, int]:
    if not isinstance(value, str) or not value:
        raise SchemaError("version must be a non-empty string")
    match = _VERSION_RE.match(value)
    if match is None:
        raise SchemaError(f"Unparseable version {value!r}")
    major, minor, patch = (int(part) for part in match.groups())
    return major, minor, patch


def check_version(value: Any) -> str:
    """Accept only the current schema generation; there are no migrations yet."""
    parse_version(value)
    if value != SAVE_FILE_VERSION:
        raise SchemaError(f"Unsupported save file version {value} (expected {SAVE_FILE_VERSION})")
    return value


def _typed(value: Any, path: str, kinds: Tuple[Type, ...]) -> Any:
    # bool is an int subclass; only accept it where a bool is expected
    if isinstance(value, bool) and bool not in kinds:
        raise SchemaError(f"{path} must be {'/'.join(k.__name__ for k in kinds)}, got bool")
    if not isinstance(value, kinds):
        raise SchemaError(
            f"{path} must be {'/'.join(k.__name__ for k in kinds)}, got {type(value).__name__}"
        )
    return value


def _section(data: Any, path: str) -> Dict[str, Any]:
    return _typed(data, path, _OBJ)


def _field(data: Dict[str, Any], key: str, path: str, kinds: Tuple[Type, ...]) -> Any:
    value = data.get(key, _MISSING)
    if value is _MISSING:
        raise SchemaError(f"Missing required field {path}.{key}")
    return _typed(value, f"{path}.{key}", kinds)


def _optional(data: Dict[str, Any], key: str, path: str, kinds: Tuple[Type, ...], default: Any) -> Any:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        return default
    return _typed(value, f"{path}.{key}", kinds)


def _items(data: Dict[str, Any], key: str, path: str) -> List[Tuple[str, Dict[str, Any]]]:
    values = _field(data, key, path, _LIST)
    return [(f"{path}.{key}[{i}]", _section(item, f"{path}.{key}[{i}]")) for i, item in enumerate(values)]


@dataclass
class SavedAutomationNode:
    id: str
    beat: float
    value: float
    curve_tension: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "beat": self.beat,
            "value": self.value,
            "curveTension": self.curve_tension,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "node") -> "SavedAutomationNode":
        return cls(
            id=_field(data, "id", path, _STR),
            beat=_field(data, "beat", path, _NUM),
            value=_field(data, "value", path, _NUM),
            curve_tension=_optional(data, "curveTension", path, _NUM, 0.0),
        )


@dataclass
class SavedAutomationCurve:
    parameter_id: str
    nodes: List[SavedAutomationNode] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameterId": self.parameter_id,
            "nodes": [node.to_dict() for node in self.nodes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "curve") -> "SavedAutomationCurve":
        return cls(
            parameter_id=_field(data, "parameterId", path, _STR),
            nodes=[SavedAutomationNode.from_dict(item, p) for p, item in _items(data, "nodes", path)],
        )


@dataclass
class SavedNote:
    id: str
    row: int
    col: float
    length: float
    velocity: float
    channel_id: int
    midi: int
    automation: List[SavedAutomationCurve] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "row": self.row,
            "col": self.col,
            "length": self.length,
            "velocity": self.velocity,
            "channelId": self.channel_id,
            "midi": self.midi,
            "automation": [curve.to_dict() for curve in self.automation],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "note") -> "SavedNote":
        automation = _optional(data, "automation", path, _LIST, [])
        return cls(
            id=_field(data, "id", path, _STR),
            row=_field(data, "row", path, _INT),
            col=_field(data, "col", path, _NUM),
            length=_field(data, "length", path, _NUM),
            velocity=_field(data, "velocity", path, _NUM),
            channel_id=_field(data, "channelId", path, _INT),
            midi=_field(data, "midi", path, _INT),
            automation=[
                SavedAutomationCurve.from_dict(_section(item, f"{path}.automation[{i}]"), f"{path}.automation[{i}]")
                for i, item in enumerate(automation)
            ],
        )


@dataclass
class SavedPattern:
    id: int
    name: str
    visible: bool = False
    notes: List[SavedNote] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "visible": self.visible,
            "notes": [note.to_dict() for note in self.notes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "pattern") -> "SavedPattern":
        return cls(
            id=_field(data, "id", path, _INT),
            name=_optional(data, "name", path, _STR, "Untitled Pattern"),
            visible=_optional(data, "visible", path, _BOOL, False),
            notes=[SavedNote.from_dict(item, p) for p, item in _items(data, "notes", path)],
        )


@dataclass
class SavedChannel:
    """Channel without its instrument object; ``synth_id``/``synth_num`` rebuild it."""

    id: int
    name: str
    synth_id: str
    synth_num: int
    mixer_track: int = 0
    volume: float = 1.0
    pan: float = 0.0
    muted: bool = False
    solo: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "synthId": self.synth_id,
            "synthNum": self.synth_num,
            "mixerTrack": self.mixer_track,
            "volume": self.volume,
            "pan": self.pan,
            "muted": self.muted,
            "solo": self.solo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "channel") -> "SavedChannel":
        return cls(
            id=_field(data, "id", path, _INT),
            name=_optional(data, "name", path, _STR, "Channel"),
            synth_id=_field(data, "synthId", path, _STR),
            synth_num=_field(data, "synthNum", path, _INT),
            mixer_track=_optional(data, "mixerTrack", path, _INT, 0),
            volume=_optional(data, "volume", path, _NUM, 1.0),
            pan=_optional(data, "pan", path, _NUM, 0.0),
            muted=_optional(data, "muted", path, _BOOL, False),
            solo=_optional(data, "solo", path, _BOOL, False),
        )


@dataclass
class SavedMixer:
    """Mixer track minus the peak meters."""

    id: int
    name: str
    route: int = 0
    volume: float = 1.0
    pan: float = 0.0
    muted: bool = False
    solo: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "route": self.route,
            "volume": self.volume,
            "pan": self.pan,
            "muted": self.muted,
            "solo": self.solo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "mixer") -> "SavedMixer":
        return cls(
            id=_field(data, "id", path, _INT),
            name=_optional(data, "name", path, _STR, "Mixer"),
            route=_field(data, "route", path, _INT),
            volume=_optional(data, "volume", path, _NUM, 1.0),
            pan=_optional(data, "pan", path, _NUM, 0.0),
            muted=_optional(data, "muted", path, _BOOL, False),
            solo=_optional(data, "solo", path, _BOOL, False),
        )


@dataclass
class SavedClip:
    id: int
    pattern_id: int
    track_id: int
    start_beat: float
    duration: float
    offset: float = 0.0
    muted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patternId": self.pattern_id,
            "trackId": self.track_id,
            "startBeat": self.start_beat,
            "duration": self.duration,
            "offset": self.offset,
            "muted": self.muted,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "clip") -> "SavedClip":
        return cls(
            id=_field(data, "id", path, _INT),
            pattern_id=_field(data, "patternId", path, _INT),
            track_id=_field(data, "trackId", path, _INT),
            start_beat=_field(data, "startBeat", path, _NUM),
            duration=_field(data, "duration", path, _NUM),
            offset=_optional(data, "offset", path, _NUM, 0.0),
            muted=_optional(data, "muted", path, _BOOL, False),
        )


@dataclass
class SavedTrack:
    id: int
    name: str
    height: int = 100
    muted: bool = False
    solo: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "height": self.height,
            "muted": self.muted,
            "solo": self.solo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "track") -> "SavedTrack":
        return cls(
            id=_field(data, "id", path, _INT),
            name=_optional(data, "name", path, _STR, "Track"),
            height=_optional(data, "height", path, _INT, 100),
            muted=_optional(data, "muted", path, _BOOL, False),
            solo=_optional(data, "solo", path, _BOOL, False),
        )


@dataclass
class SavedArrangement:
    clips: List[SavedClip] = field(default_factory=list)
    tracks: List[SavedTrack] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clips": [clip.to_dict() for clip in self.clips],
            "tracks": [track.to_dict() for track in self.tracks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "arrangement") -> "SavedArrangement":
        return cls(
            clips=[SavedClip.from_dict(item, p) for p, item in _items(data, "clips", path)],
            tracks=[SavedTrack.from_dict(item, p) for p, item in _items(data, "tracks", path)],
        )


@dataclass
class SavedWindow:
    id: str
    x: float
    y: float
    width: float
    height: float
    z: int = 0
    user_modified: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "z": self.z,
            "userModified": self.user_modified,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "window") -> "SavedWindow":
        return cls(
            id=_field(data, "id", path, _STR),
            x=_field(data, "x", path, _NUM),
            y=_field(data, "y", path, _NUM),
            width=_field(data, "width", path, _NUM),
            height=_field(data, "height", path, _NUM),
            z=_optional(data, "z", path, _INT, 0),
            user_modified=_optional(data, "userModified", path, _BOOL, False),
        )


@dataclass
class SavedUI:
    patterns_list_width: int
    header_height: int
    arrangement_visible: bool = False
    channel_rack_visible: bool = True
    mixer_visible: bool = False
    windows: List[SavedWindow] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patternsListWidth": self.patterns_list_width,
            "headerHeight": self.header_height,
            "windowVisibility": {
                "arrangementVisible": self.arrangement_visible,
                "channelRackVisible": self.channel_rack_visible,
                "mixerVisible": self.mixer_visible,
            },
            "windows": [window.to_dict() for window in self.windows],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "ui") -> "SavedUI":
        visibility = _optional(data, "windowVisibility", path, _OBJ, {})
        vpath = f"{path}.windowVisibility"
        windows = _optional(data, "windows", path, _LIST, [])
        return cls(
            patterns_list_width=_field(data, "patternsListWidth", path, _INT),
            header_height=_field(data, "headerHeight", path, _INT),
            arrangement_visible=_optional(visibility, "arrangementVisible", vpath, _BOOL, False),
            channel_rack_visible=_optional(visibility, "channelRackVisible", vpath, _BOOL, True),
            mixer_visible=_optional(visibility, "mixerVisible", vpath, _BOOL, False),
            windows=[
                SavedWindow.from_dict(_section(item, f"{path}.windows[{i}]"), f"{path}.windows[{i}]")
                for i, item in enumerate(windows)
            ],
        )


@dataclass
class SavedIdCounters:
    """Next-to-allocate ID per entity class; ``None`` where the file omits one."""

    next_channel_id: Optional[int] = None
    next_clip_id: Optional[int] = None
    next_pattern_id: Optional[int] = None
    next_mixer_id: Optional[int] = None
    next_track_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nextChannelId": self.next_channel_id,
            "nextClipId": self.next_clip_id,
            "nextPatternId": self.next_pattern_id,
            "nextMixerId": self.next_mixer_id,
            "nextTrackId": self.next_track_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "idCounters") -> "SavedIdCounters":
        return cls(
            next_channel_id=_optional(data, "nextChannelId", path, _INT, None),
            next_clip_id=_optional(data, "nextClipId", path, _INT, None),
            next_pattern_id=_optional(data, "nextPatternId", path, _INT, None),
            next_mixer_id=_optional(data, "nextMixerId", path, _INT, None),
            next_track_id=_optional(data, "nextTrackId", path, _INT, None),
        )


@dataclass
class SavedMetadata:
    project_name: str
    created: int
    last_modified: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectName": self.project_name,
            "created": self.created,
            "lastModified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "metadata") -> "SavedMetadata":
        return cls(
            project_name=_field(data, "projectName", path, _STR),
            created=_field(data, "created", path, _INT),
            last_modified=_field(data, "lastModified", path, _INT),
        )


@dataclass
class SavedGlobal:
    bpm: float
    global_volume: float
    snap_division: int
    playback_mode: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bpm": self.bpm,
            "globalVolume": self.global_volume,
            "snapDivision": self.snap_division,
            "playbackMode": self.playback_mode,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "global") -> "SavedGlobal":
        mode = _field(data, "playbackMode", path, _STR)
        if mode not in PLAYBACK_MODES:
            raise SchemaError(f"{path}.playbackMode must be one of {PLAYBACK_MODES}, got {mode!r}")
        return cls(
            bpm=_field(data, "bpm", path, _NUM),
            global_volume=_field(data, "globalVolume", path, _NUM),
            snap_division=_field(data, "snapDivision", path, _INT),
            playback_mode=mode,
        )


@dataclass
class SavedPlayback:
    pause_time: float = 0.0
    loop_enabled: bool = False
    loop_start: float = 0.0
    loop_end: float = 4.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pauseTime": self.pause_time,
            "loopEnabled": self.loop_enabled,
            "loopStart": self.loop_start,
            "loopEnd": self.loop_end,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "playback") -> "SavedPlayback":
        return cls(
            pause_time=_field(data, "pauseTime", path, _NUM),
            loop_enabled=_field(data, "loopEnabled", path, _BOOL),
            loop_start=_field(data, "loopStart", path, _NUM),
            loop_end=_field(data, "loopEnd", path, _NUM),
        )


@dataclass
class SaveFile:
    version: str
    metadata: SavedMetadata
    global_: SavedGlobal
    playback: SavedPlayback
    patterns: List[SavedPattern] = field(default_factory=list)
    channels: List[SavedChannel] = field(default_factory=list)
    mixers: List[SavedMixer] = field(default_factory=list)
    arrangement: SavedArrangement = field(default_factory=SavedArrangement)
    ui: Optional[SavedUI] = None
    id_counters: Optional[SavedIdCounters] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "version": self.version,
            "metadata": self.metadata.to_dict(),
            "global": self.global_.to_dict(),
            "playback": self.playback.to_dict(),
            "patterns": [pattern.to_dict() for pattern in self.patterns],
            "channels": [channel.to_dict() for channel in self.channels],
            "mixers": [mixer.to_dict() for mixer in self.mixers],
            "arrangement": self.arrangement.to_dict(),
        }
        if self.ui is not None:
            data["ui"] = self.ui.to_dict()
        if self.id_counters is not None:
            data["idCounters"] = self.id_counters.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "SaveFile":
        """Parse a decoded JSON document.

        The version is checked before anything else so a file from another
        schema generation is never read with this generation's layout.
        """
        root = _section(data, "file")
        version = check_version(root.get("version"))
        ui = root.get("ui")
        counters = root.get("idCounters")
        return cls(
            version=version,
            metadata=SavedMetadata.from_dict(_field(root, "metadata", "file", _OBJ)),
            global_=SavedGlobal.from_dict(_field(root, "global", "file", _OBJ)),
            playback=SavedPlayback.from_dict(_field(root, "playback", "file", _OBJ)),
            patterns=[SavedPattern.from_dict(item, p) for p, item in _items(root, "patterns", "file")],
            channels=[SavedChannel.from_dict(item, p) for p, item in _items(root, "channels", "file")],
            mixers=[SavedMixer.from_dict(item, p) for p, item in _items(root, "mixers", "file")],
            arrangement=SavedArrangement.from_dict(_field(root, "arrangement", "file", _OBJ)),
            ui=SavedUI.from_dict(_section(ui, "ui")) if ui is not None else None,
            id_counters=(
                SavedIdCounters.from_dict(_section(counters, "idCounters")) if counters is not None else None
            ),
        )


__all__ = [
    "AUTOSAVE_STORE",
    "DB_NAME",
    "DB_VERSION",
    "PLAYBACK_MODES",
    "PROJECTS_STORE",
    "SAVE_FILE_VERSION",
    "SaveFile",
    "SavedArrangement",
    "SavedAutomationCurve",
    "SavedAutomationNode",
    "SavedChannel",
    "SavedClip",
    "SavedGlobal",
    "SavedIdCounters",
    "SavedMetadata",
    "SavedMixer",
    "SavedNote",
    "SavedPattern",
    "SavedPlayback",
    "SavedTrack",
    "SavedUI",
    "SavedWindow",
    "check_version",
    "parse_version",
]
