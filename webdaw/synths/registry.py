"""Registry that rebuilds live instruments from their stored identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from ..storage.errors import UnresolvedInstrumentError
from .minisynth import MiniSynth, SYNTH_ID as MINISYNTH_ID

logger = logging.getLogger(__name__)

InstrumentFactory = Callable[[int], Any]


@dataclass(frozen=True)
class SynthEntry:
    id: str
    display_name: str
    factory: InstrumentFactory


class SynthRegistry:
    def __init__(self) -> None:
        self._entries: Dict[str, SynthEntry] = {}

    def register(self, entry: SynthEntry) -> None:
        if entry.id in self._entries:
            raise ValueError(f"Synth {entry.id} already registered")
        self._entries[entry.id] = entry

    def entries(self) -> List[SynthEntry]:
        return list(self._entries.values())

    def resolve_instrument(self, synth_id: str, synth_num: int) -> Any:
        """Build the instrument for ``(synth_id, synth_num)``.

        Raises:
            UnresolvedInstrumentError: unknown synth, invalid number or a
                factory that failed.
        """
        entry = self._entries.get(synth_id)
        if entry is None:
            raise UnresolvedInstrumentError(synth_id, synth_num)
        if synth_num < 1:
            raise UnresolvedInstrumentError(synth_id, synth_num, "instance number must be >= 1")
        try:
            return entry.factory(synth_num)
        except Exception as exc:
            logger.error(f"Synth factory {synth_id} failed: {exc}")
            raise UnresolvedInstrumentError(synth_id, synth_num, str(exc)) from exc


def default_registry() -> SynthRegistry:
    registry = SynthRegistry()
    registry.register(SynthEntry(id=MINISYNTH_ID, display_name="MiniSynth", factory=MiniSynth))
    return registry


__all__ = ["InstrumentFactory", "SynthEntry", "SynthRegistry", "default_registry"]
