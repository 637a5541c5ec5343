"""MiniSynth - the built-in instrument bound to new channels."""

from __future__ import annotations

from typing import Any, Dict

SYNTH_ID = "minisynth"

DEFAULT_PARAMETERS: Dict[str, float] = {
    "cutoff": 8000.0,
    "resonance": 0.7,
    "attack": 0.01,
    "decay": 0.1,
    "sustain": 0.8,
    "release": 0.3,
    "gain": 0.8,
}


class MiniSynth:
    """Runtime instrument instance.

    Holds only live state (voices, parameter values); the project file stores
    the ``(synth_id, num)`` pair and the registry builds a fresh instance on
    load.
    """

    synth_id = SYNTH_ID

    def __init__(self, num: int) -> None:
        self.num = num
        self.parameters: Dict[str, float] = dict(DEFAULT_PARAMETERS)
        self.active_voices: Dict[str, int] = {}

    def get_state(self) -> Dict[str, Any]:
        return dict(self.parameters)

    def set_state(self, state: Dict[str, Any]) -> None:
        for key, value in state.items():
            if key not in self.parameters:
                raise KeyError(f"Unknown MiniSynth parameter {key}")
            self.parameters[key] = float(value)

    def __repr__(self) -> str:
        return f"MiniSynth(num={self.num})"


__all__ = ["DEFAULT_PARAMETERS", "MiniSynth", "SYNTH_ID"]
