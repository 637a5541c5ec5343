"""Cosmetic UI state carried along with a project."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

PATTERNS_LIST_WIDTH = 180
HEADER_HEIGHT = 48


@dataclass
class WindowGeometry:
    id: str
    x: float
    y: float
    width: float
    height: float
    z: int = 0
    user_modified: bool = False  # only user-placed windows are restored


@dataclass
class WindowVisibility:
    arrangement: bool = False
    channel_rack: bool = True
    mixer: bool = False


@dataclass
class UIState:
    patterns_list_width: int = PATTERNS_LIST_WIDTH
    header_height: int = HEADER_HEIGHT
    visibility: WindowVisibility = field(default_factory=WindowVisibility)
    windows: List[WindowGeometry] = field(default_factory=list)


__all__ = [
    "HEADER_HEIGHT",
    "PATTERNS_LIST_WIDTH",
    "UIState",
    "WindowGeometry",
    "WindowVisibility",
]
