"""Instrument helpers for webdaw."""

from .minisynth import MiniSynth
from .registry import SynthEntry, SynthRegistry, default_registry

__all__ = [
    "MiniSynth",
    "SynthEntry",
    "SynthRegistry",
    "default_registry",
]
