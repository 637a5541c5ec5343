import pytest

from webdaw.storage import UnresolvedInstrumentError
from webdaw.synths import MiniSynth, SynthEntry, SynthRegistry, default_registry


def test_default_registry_builds_minisynth():
    registry = default_registry()
    synth = registry.resolve_instrument("minisynth", 3)

    assert isinstance(synth, MiniSynth)
    assert synth.num == 3
    assert [entry.id for entry in registry.entries()] == ["minisynth"]


def test_unknown_synth_and_bad_number():
    registry = default_registry()
    with pytest.raises(UnresolvedInstrumentError, match="not registered"):
        registry.resolve_instrument("fm8", 1)
    with pytest.raises(UnresolvedInstrumentError, match=">= 1"):
        registry.resolve_instrument("minisynth", 0)


def test_failing_factory_is_wrapped():
    def broken(num):
        raise RuntimeError("sample bank missing")

    registry = SynthRegistry()
    registry.register(SynthEntry(id="sampler", display_name="Sampler", factory=broken))

    with pytest.raises(UnresolvedInstrumentError, match="sample bank missing") as info:
        registry.resolve_instrument("sampler", 1)
    assert isinstance(info.value.__cause__, RuntimeError)


def test_duplicate_registration_is_rejected():
    registry = default_registry()
    with pytest.raises(ValueError):
        registry.register(SynthEntry(id="minisynth", display_name="Again", factory=MiniSynth))


def test_minisynth_state():
    synth = MiniSynth(1)
    synth.set_state({"cutoff": 1200})
    assert synth.get_state()["cutoff"] == 1200.0
    with pytest.raises(KeyError):
        synth.set_state({"wobble": 1})
