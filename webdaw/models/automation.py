"""Automation curves attached to notes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass
class AutomationNode:
    """One breakpoint of an automation curve."""

    id: str
    beat: float
    value: float
    curve_tension: float = 0.0  # applies to the segment leaving this node


@dataclass
class AutomationCurve:
    """Value-over-time data for a single synth parameter."""

    parameter_id: str
    nodes: List[AutomationNode] = field(default_factory=list)


__all__ = ["AutomationNode", "AutomationCurve"]
