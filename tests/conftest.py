import pytest
import pytest_asyncio

from webdaw.models import AutomationCurve, AutomationNode, Note, WindowGeometry, new_project
from webdaw.storage import MemoryStore, SqlStore
from webdaw.synths import default_registry


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def project(registry):
    """A small but fully populated graph: every entity class and every reference kind."""
    project = new_project("Demo Song", registry=registry)
    lead = project.channels[0]
    bass = project.add_channel(registry.resolve_instrument("minisynth", 2), "minisynth", 2, name="Bass")
    bus = project.add_mixer("Drum Bus")
    project.route_channel(bass.id, bus.id)

    pattern = project.patterns[0]
    project.add_note(pattern.id, Note(id="n1", row=60, col=0, length=1, velocity=0.8, channel_id=lead.id, midi=60))
    project.add_note(pattern.id, Note(id="n2", row=36, col=2, length=0.5, velocity=1.0, channel_id=bass.id, midi=36))
    project.set_automation(
        pattern.id,
        "n1",
        AutomationCurve("cutoff", [AutomationNode("a1", 0.0, 0.2), AutomationNode("a2", 1.0, 0.9, 0.5)]),
    )
    project.set_automation(pattern.id, "n1", AutomationCurve("resonance", [AutomationNode("r1", 0.0, 0.7)]))

    verse = project.add_pattern("Verse")
    track = project.arrangement.tracks[1]
    project.add_clip(pattern.id, track.id, start_beat=0, duration=4)
    project.add_clip(verse.id, track.id, start_beat=4, duration=8, offset=1)

    project.set_bpm(128)
    project.set_loop(True, 0, 8)
    project.ui.windows.append(WindowGeometry("mixer", 40, 60, 600, 300, z=2, user_modified=True))
    project.mark_dirty()
    return project


@pytest_asyncio.fixture
async def memory_store():
    store = MemoryStore()
    await store.open()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    store = SqlStore(f"sqlite+aiosqlite:///{tmp_path}/webdaw.db")
    await store.open()
    yield store
    await store.close()
