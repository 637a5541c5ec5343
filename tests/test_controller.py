import asyncio
import itertools
import json

import pytest
import pytest_asyncio

from webdaw.models import new_project
from webdaw.storage import (
    AUTOSAVE_KEY,
    ControllerState,
    ManualClock,
    MemoryStore,
    Partition,
    PersistenceController,
    RecordNotFound,
    SchemaError,
    StoreUnavailable,
    UnresolvedInstrumentError,
    WriteSlot,
    dumps,
    encode,
    loads,
)
from webdaw.synths import SynthRegistry


class GatedStore(MemoryStore):
    """MemoryStore whose writes wait for ``gate``; records every call in ``log``."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.entered = asyncio.Event()
        self.log = []

    async def write(self, partition, key, payload):
        self.log.append(("write-start", key, payload))
        self.entered.set()
        await self.gate.wait()
        await super().write(partition, key, payload)
        self.log.append(("write-end", key, payload))

    async def read(self, partition, key):
        self.log.append(("read", key))
        return await super().read(partition, key)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def ticks():
    return itertools.count(1_000, 1_000)


def _controller(store, registry, clock, ticks):
    return PersistenceController(store, registry, clock=clock, wall_clock=lambda: next(ticks))


@pytest_asyncio.fixture
async def controller(memory_store, registry, clock, ticks):
    controller = _controller(memory_store, registry, clock, ticks)
    await controller.boot()
    return controller


@pytest_asyncio.fixture
async def gated_store():
    store = GatedStore()
    await store.open()
    yield store
    await store.close()


# Boot ---------------------------------------------------------------------


@pytest.mark.asyncio
async def test_boot_without_autosave_starts_new_project(memory_store, registry, clock, ticks):
    controller = _controller(memory_store, registry, clock, ticks)
    assert controller.state is ControllerState.IDLE

    project = await controller.boot()

    assert controller.state is ControllerState.READY
    assert project.metadata.project_name == "Untitled Project"
    assert len(project.channels) == 1
    assert controller.warnings == []
    assert not controller.autosave_pending


@pytest.mark.asyncio
async def test_boot_restores_autosave(memory_store, registry, clock, ticks, project):
    await memory_store.write(Partition.AUTOSAVE, AUTOSAVE_KEY, dumps(encode(project)))
    controller = _controller(memory_store, registry, clock, ticks)

    restored = await controller.boot()

    assert restored == project
    assert controller.warnings == []


@pytest.mark.asyncio
async def test_boot_falls_back_on_corrupted_autosave(memory_store, registry, clock, ticks):
    await memory_store.write(Partition.AUTOSAVE, AUTOSAVE_KEY, b"{ truncated")
    controller = _controller(memory_store, registry, clock, ticks)

    project = await controller.boot()

    assert controller.state is ControllerState.READY
    assert project.metadata.project_name == "Untitled Project"
    assert len(controller.warnings) == 1
    assert "could not be restored" in controller.warnings[0]


@pytest.mark.asyncio
async def test_boot_falls_back_when_store_unavailable(registry, clock, ticks):
    controller = _controller(MemoryStore(), registry, clock, ticks)  # never opened

    project = await controller.boot()

    assert project is controller.project
    assert controller.degraded is True
    assert controller.state is ControllerState.READY


@pytest.mark.asyncio
async def test_boot_survives_a_registry_without_instruments(memory_store, clock, ticks, project):
    await memory_store.write(Partition.AUTOSAVE, AUTOSAVE_KEY, dumps(encode(project)))
    controller = _controller(memory_store, SynthRegistry(), clock, ticks)

    booted = await controller.boot()

    assert booted.channels == []
    assert len(controller.warnings) == 2


@pytest.mark.asyncio
async def test_boot_only_once(controller):
    with pytest.raises(RuntimeError):
        await controller.boot()


# Autosave -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_burst_of_edits_is_one_autosave(controller, memory_store, clock):
    project = controller.project
    for bpm in range(100, 110):
        project.set_bpm(bpm)
        clock.advance(0.5)
        assert await controller.poll() is False

    clock.advance(2.0)
    assert await controller.poll() is True
    assert await controller.poll() is False

    assert memory_store.write_counts[Partition.AUTOSAVE] == 1
    saved = loads(await memory_store.read(Partition.AUTOSAVE, AUTOSAVE_KEY))
    assert saved.global_.bpm == 109


@pytest.mark.asyncio
async def test_no_autosave_without_edits(controller, memory_store, clock):
    clock.advance(10)
    assert await controller.poll() is False
    assert await controller.flush() is False
    assert memory_store.write_counts[Partition.AUTOSAVE] == 0


@pytest.mark.asyncio
async def test_flush_writes_immediately(controller, memory_store):
    controller.project.add_pattern("Chorus")
    assert controller.autosave_pending

    assert await controller.flush() is True
    assert not controller.autosave_pending
    saved = loads(await memory_store.read(Partition.AUTOSAVE, AUTOSAVE_KEY))
    assert [p.name for p in saved.patterns] == ["Pattern 1", "Chorus"]


@pytest.mark.asyncio
async def test_failed_autosave_is_retried(controller, memory_store, clock):
    controller.project.set_bpm(150)
    memory_store.available = False

    clock.advance(2)
    assert await controller.poll() is False
    assert controller.degraded is True
    assert controller.autosave_pending
    assert len(controller.warnings) == 1

    # still failing: no second warning
    clock.advance(2)
    assert await controller.poll() is False
    assert len(controller.warnings) == 1

    memory_store.available = True
    clock.advance(2)
    assert await controller.poll() is True
    assert controller.degraded is False
    assert loads(await memory_store.read(Partition.AUTOSAVE, AUTOSAVE_KEY)).global_.bpm == 150


@pytest.mark.asyncio
async def test_edit_during_write_rearms(gated_store, registry, clock, ticks):
    controller = _controller(gated_store, registry, clock, ticks)
    project = await controller.boot()

    gated_store.gate.clear()
    project.set_bpm(100)
    clock.advance(2)
    in_flight = asyncio.create_task(controller.poll())
    await gated_store.entered.wait()
    assert not controller.autosave_pending

    project.set_bpm(101)
    assert controller.autosave_pending

    gated_store.gate.set()
    assert await in_flight is True
    clock.advance(2)
    assert await controller.poll() is True
    saved = loads(await gated_store.read(Partition.AUTOSAVE, AUTOSAVE_KEY))
    assert saved.global_.bpm == 101


@pytest.mark.asyncio
async def test_stop_flushes_pending_autosave(controller, memory_store):
    controller.start()
    controller.project.set_bpm(90)

    await controller.stop()

    assert memory_store.write_counts[Partition.AUTOSAVE] == 1
    assert not controller.autosave_pending


@pytest.mark.asyncio
async def test_stop_rewrites_autosave_cut_off_mid_write(gated_store, registry, clock, ticks):
    controller = PersistenceController(
        gated_store, registry, clock=clock, wall_clock=lambda: next(ticks), poll_interval=0.01
    )
    await controller.boot()
    gated_store.log.clear()

    gated_store.gate.clear()
    controller.project.set_bpm(133)
    clock.advance(2)
    controller.start()
    await gated_store.entered.wait()

    stopping = asyncio.create_task(controller.stop())
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    gated_store.gate.set()
    await stopping

    assert [entry[0] for entry in gated_store.log] == ["write-start", "write-start", "write-end"]
    assert not controller.autosave_pending
    saved = loads(await gated_store.read(Partition.AUTOSAVE, AUTOSAVE_KEY))
    assert saved.global_.bpm == 133


# Save / load --------------------------------------------------------------


@pytest.mark.asyncio
async def test_save_as_is_idempotent(controller, memory_store):
    controller.project.set_bpm(140)

    meta = await controller.save_as("Song")
    first = await memory_store.read(Partition.PROJECTS, "Song")
    await controller.save_as("Song")
    second = await memory_store.read(Partition.PROJECTS, "Song")

    assert meta.project_name == "Song"
    assert meta.last_modified == 1_000
    assert first == second

    controller.project.set_bpm(141)
    meta = await controller.save()
    assert meta.last_modified == 2_000
    assert await memory_store.list(Partition.PROJECTS) == ["Song"]


@pytest.mark.asyncio
async def test_save_as_leaves_autosave_alone(controller, memory_store):
    controller.project.set_bpm(140)
    await controller.save_as("Song")

    assert memory_store.write_counts[Partition.AUTOSAVE] == 0
    assert controller.autosave_pending


@pytest.mark.asyncio
async def test_save_as_rename_reaches_autosave(controller, memory_store, registry, clock, ticks):
    await controller.save_as("Song")
    assert controller.autosave_pending
    await controller.flush()

    # re-saving under the same name changes nothing the autosave holds
    await controller.save()
    assert not controller.autosave_pending

    rebooted = _controller(memory_store, registry, clock, ticks)
    project = await rebooted.boot()
    assert project.metadata.project_name == "Song"


@pytest.mark.asyncio
async def test_save_as_rejects_bad_names(controller):
    with pytest.raises(ValueError):
        await controller.save_as("   ")
    with pytest.raises(ValueError):
        await controller.save_as("autosave")


@pytest.mark.asyncio
async def test_save_as_propagates_store_failure(controller, memory_store):
    memory_store.available = False
    with pytest.raises(StoreUnavailable):
        await controller.save_as("Song")
    assert controller.project.metadata.project_name == "Untitled Project"


@pytest.mark.asyncio
async def test_load_swaps_graph_and_listener(controller, memory_store, project):
    await memory_store.write(Partition.PROJECTS, "Demo Song", dumps(encode(project)))
    old = controller.project

    loaded = await controller.load("Demo Song")

    assert controller.project is loaded
    assert loaded == project
    assert controller.current_metadata().project_name == "Demo Song"
    # the autosave slot follows the newly opened project
    assert controller.autosave_pending
    await controller.flush()

    old.set_bpm(50)
    assert not controller.autosave_pending
    loaded.set_bpm(51)
    assert controller.autosave_pending


@pytest.mark.asyncio
async def test_load_autosave_slot(controller, memory_store):
    controller.project.add_pattern("Bridge")
    await controller.flush()

    loaded = await controller.load("autosave")

    assert [p.name for p in loaded.patterns] == ["Pattern 1", "Bridge"]
    assert not controller.autosave_pending


@pytest.mark.asyncio
async def test_failed_load_keeps_current_graph(controller, memory_store, project):
    bad = encode(project).to_dict()
    bad["channels"][0]["synthId"] = "gone"
    await memory_store.write(Partition.PROJECTS, "bad", json.dumps(bad).encode("utf-8"))
    await memory_store.write(Partition.PROJECTS, "garbage", b"\x00\x01")

    current = controller.project
    current.set_bpm(77)
    before = dumps(encode(current))

    with pytest.raises(UnresolvedInstrumentError):
        await controller.load("bad")
    with pytest.raises(SchemaError):
        await controller.load("garbage")
    with pytest.raises(RecordNotFound):
        await controller.load("missing")

    assert controller.project is current
    assert dumps(encode(current)) == before
    # the pending autosave of the current graph survives
    assert controller.autosave_pending


@pytest.mark.asyncio
async def test_ids_are_not_reissued_after_load(controller, memory_store):
    for _ in range(5):
        controller.project.add_pattern()
    small = new_project("Small")
    await memory_store.write(Partition.PROJECTS, "Small", dumps(encode(small)))

    loaded = await controller.load("Small")

    assert [p.id for p in loaded.patterns] == [1]
    assert loaded.add_pattern().id == 7


@pytest.mark.asyncio
async def test_load_waits_for_inflight_autosave(gated_store, registry, clock, ticks, project):
    await gated_store.write(Partition.PROJECTS, "Demo Song", dumps(encode(project)))
    controller = _controller(gated_store, registry, clock, ticks)
    await controller.boot()
    gated_store.log.clear()

    gated_store.gate.clear()
    gated_store.entered.clear()
    controller.project.set_bpm(99)
    clock.advance(2)
    autosave = asyncio.create_task(controller.poll())
    await gated_store.entered.wait()

    loading = asyncio.create_task(controller.load("Demo Song"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert not loading.done()

    gated_store.gate.set()
    await autosave
    loaded = await loading

    assert [entry[:2] for entry in gated_store.log] == [
        ("write-start", AUTOSAVE_KEY),
        ("write-end", AUTOSAVE_KEY),
        ("read", "Demo Song"),
    ]
    assert controller.project is loaded


@pytest.mark.asyncio
async def test_list_and_delete_projects(controller):
    await controller.save_as("B")
    await controller.save_as("A")
    assert await controller.list_projects() == ["A", "B"]

    await controller.delete_project("A")
    assert await controller.list_projects() == ["B"]


@pytest.mark.asyncio
async def test_current_metadata_is_a_copy(controller):
    meta = controller.current_metadata()
    meta.project_name = "Changed"
    assert controller.project.metadata.project_name == "Untitled Project"


# Write slot ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_write_slot_supersedes_queued_payload(gated_store):
    slot = WriteSlot(gated_store, Partition.PROJECTS, "song")
    gated_store.gate.clear()

    first = asyncio.create_task(slot.submit(b"A"))
    await gated_store.entered.wait()
    second = asyncio.create_task(slot.submit(b"B"))
    third = asyncio.create_task(slot.submit(b"C"))
    await asyncio.sleep(0)
    assert slot.busy

    gated_store.gate.set()
    await asyncio.gather(first, second, third)

    written = [entry[2] for entry in gated_store.log if entry[0] == "write-end"]
    assert written == [b"A", b"C"]
    assert slot.writes == 2
    assert slot.superseded == 1
    assert await gated_store.read(Partition.PROJECTS, "song") == b"C"


@pytest.mark.asyncio
async def test_write_slot_reports_failure_to_submitter(memory_store):
    slot = WriteSlot(memory_store, Partition.PROJECTS, "song")
    memory_store.available = False

    with pytest.raises(StoreUnavailable):
        await slot.submit(b"A")

    memory_store.available = True
    await slot.submit(b"B")
    assert slot.writes == 1
    assert not slot.busy
