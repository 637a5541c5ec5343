"""Domain models for webdaw - the live project graph, no storage concerns."""

from __future__ import annotations

from .arrangement import Arrangement, ArrangementClip, ArrangementTrack
from .automation import AutomationCurve, AutomationNode
from .ids import EntityKind, IdAllocator
from .mixer import MASTER_MIXER_ID, NO_ROUTE, Channel, MixerTrack
from .pattern import Note, Pattern
from .project import (
    GlobalSettings,
    Metadata,
    PlaybackMode,
    PlaybackState,
    Project,
    new_project,
)
from .ui import UIState, WindowGeometry, WindowVisibility

__all__ = [
    "Arrangement",
    "ArrangementClip",
    "ArrangementTrack",
    "AutomationCurve",
    "AutomationNode",
    "Channel",
    "EntityKind",
    "GlobalSettings",
    "IdAllocator",
    "MASTER_MIXER_ID",
    "Metadata",
    "MixerTrack",
    "NO_ROUTE",
    "Note",
    "Pattern",
    "PlaybackMode",
    "PlaybackState",
    "Project",
    "UIState",
    "WindowGeometry",
    "WindowVisibility",
    "new_project",
]
