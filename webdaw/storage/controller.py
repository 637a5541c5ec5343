"""
Persistence controller: decides when the live graph is encoded and stored.

States:
    IDLE     constructed, nothing read yet
    LOADING  boot is reading and decoding the autosave slot
    READY    a live graph is adopted; ``autosave_pending`` is true while the
             debounce deadline is armed

Mutations arm (or push back) a debounce deadline measured on a monotonic
clock; ``poll()`` performs the autosave once the deadline has passed, so a
burst of edits produces one write. Writes go through a WriteSlot per
partition/key: at most one write in flight, and a newer payload replaces a
queued older one instead of stacking behind it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..models.ids import IdAllocator
from ..models.project import Metadata, Project, new_project, now_ms
from .codec import decode, encode
from .errors import PersistenceError, RecordNotFound, StoreUnavailable, UnresolvedInstrumentError
from .io import dumps, loads
from .store import AUTOSAVE_KEY, Partition, StoreAdapter

logger = logging.getLogger(__name__)

AUTOSAVE_SLOT = "autosave"
DEFAULT_DEBOUNCE_SECONDS = 2.0
DEFAULT_POLL_INTERVAL = 0.25


class ControllerState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


class MonotonicClock:
    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock that only moves when told to; keeps debounce tests sleep-free."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._now += seconds


@dataclass
class _QueuedWrite:
    payload: bytes
    done: "asyncio.Future[None]"


class WriteSlot:
    """Single-slot write queue for one ``(partition, key)``.

    Every submitter waits for the write that carried its payload, including
    when a later submitter replaced that payload before it was written.
    """

    def __init__(self, store: StoreAdapter, partition: Partition, key: str) -> None:
        self.store = store
        self.partition = partition
        self.key = key
        self.writes = 0
        self.superseded = 0
        self._lock = asyncio.Lock()
        self._queued: Optional[_QueuedWrite] = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def submit(self, payload: bytes) -> None:
        if self._queued is None:
            self._queued = _QueuedWrite(payload, asyncio.get_running_loop().create_future())
        else:
            self._queued.payload = payload
            self.superseded += 1
        queued = self._queued

        async with self._lock:
            if self._queued is queued:
                self._queued = None
                try:
                    await self.store.write(self.partition, self.key, queued.payload)
                except asyncio.CancelledError:
                    queued.done.cancel()
                    raise
                except Exception as exc:
                    queued.done.set_exception(exc)
                else:
                    self.writes += 1
                    queued.done.set_result(None)
        await queued.done

    async def wait_idle(self) -> None:
        """Return once no write is in flight or queued ahead of the caller."""
        async with self._lock:
            pass


class PersistenceController:
    def __init__(
        self,
        store: StoreAdapter,
        registry: Any,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Any = None,
        wall_clock: Callable[[], int] = now_ms,
        allocator: Optional[IdAllocator] = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.debounce_seconds = debounce_seconds
        self.poll_interval = poll_interval
        self.clock = clock or MonotonicClock()
        self.wall_clock = wall_clock
        self.state = ControllerState.IDLE
        self.warnings: List[str] = []
        self.degraded = False

        self._allocator = allocator or IdAllocator()
        self._project: Optional[Project] = None
        self._deadline: Optional[float] = None
        self._saved_revision = 0
        self._autosave_slot = WriteSlot(store, Partition.AUTOSAVE, AUTOSAVE_KEY)
        self._project_slots: Dict[str, WriteSlot] = {}
        self._poll_task: Optional[asyncio.Task] = None

    # Live graph ---------------------------------------------------------
    @property
    def project(self) -> Project:
        if self._project is None:
            raise RuntimeError("Persistence controller has not booted")
        return self._project

    @property
    def autosave_pending(self) -> bool:
        return self._deadline is not None

    @property
    def autosave_slot(self) -> WriteSlot:
        return self._autosave_slot

    def current_metadata(self) -> Metadata:
        return replace(self.project.metadata)

    def _adopt(self, project: Project) -> None:
        """Make ``project`` the live graph in one step."""
        # Keep one allocator for the whole process so IDs issued before a
        # load are never issued again after it.
        if project.ids is not self._allocator:
            for kind, value in project.ids.counters().items():
                self._allocator.seed(kind, value)
            project.ids = self._allocator
        previous = self._project
        if previous is not None:
            previous.unsubscribe(self.notify_mutation)
        project.subscribe(self.notify_mutation)
        self._project = project
        self._saved_revision = project.revision

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def _default_project(self) -> Project:
        try:
            return new_project(registry=self.registry)
        except UnresolvedInstrumentError as exc:
            self._warn(f"Default instrument unavailable ({exc}); starting without channels")
            return new_project()

    # Boot ---------------------------------------------------------------
    async def boot(self) -> Project:
        """Adopt the autosaved project, or a new one; never raises."""
        if self.state is not ControllerState.IDLE:
            raise RuntimeError(f"Cannot boot from state {self.state.value}")
        self.state = ControllerState.LOADING

        project: Optional[Project] = None
        try:
            payload = await self.store.read(Partition.AUTOSAVE, AUTOSAVE_KEY)
        except RecordNotFound:
            logger.info("No autosave found; starting a new project")
        except StoreUnavailable as exc:
            self.degraded = True
            self._warn(f"Storage unavailable ({exc}); changes will only be kept in memory")
        else:
            try:
                project = decode(loads(payload), self.registry, allocator=self._allocator)
            except PersistenceError as exc:
                self._warn(f"Autosave could not be restored ({exc}); starting a new project")
            else:
                logger.info(f"Restored autosaved project {project.metadata.project_name!r}")

        self._adopt(project if project is not None else self._default_project())
        self.state = ControllerState.READY
        return self.project

    # Autosave -----------------------------------------------------------
    def notify_mutation(self) -> None:
        if self.state is ControllerState.READY:
            self._deadline = self.clock.now() + self.debounce_seconds

    async def poll(self) -> bool:
        """Autosave if the debounce window has elapsed; True when a write landed."""
        if self._deadline is None or self.clock.now() < self._deadline:
            return False
        return await self._autosave()

    async def flush(self) -> bool:
        """Write a pending autosave now instead of waiting for the deadline."""
        if self._deadline is None:
            return False
        return await self._autosave()

    async def _autosave(self) -> bool:
        self._deadline = None
        project = self.project
        payload = dumps(encode(project))
        try:
            await self._autosave_slot.submit(payload)
        except asyncio.CancelledError:
            # The write was abandoned; keep the edits pending for stop() to flush.
            if self._deadline is None:
                self._deadline = self.clock.now()
            raise
        except StoreUnavailable as exc:
            if not self.degraded:
                self._warn(f"Autosave failed ({exc}); changes are kept in memory and retried")
            self.degraded = True
            # Retry on the next debounce cycle unless an edit already re-armed it.
            if self._deadline is None:
                self._deadline = self.clock.now() + self.debounce_seconds
            return False
        if self.degraded:
            logger.info("Autosave recovered")
            self.degraded = False
        logger.debug(f"Autosaved {len(payload)} bytes at revision {project.revision}")
        return True

    def start(self) -> None:
        """Run ``poll()`` every ``poll_interval`` seconds on the running loop."""
        if self._poll_task is None:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_forever())

    async def _poll_forever(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.poll()

    async def stop(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._project is not None:
            await self.flush()

    # Named projects -----------------------------------------------------
    def _project_slot(self, name: str) -> WriteSlot:
        slot = self._project_slots.get(name)
        if slot is None:
            slot = self._project_slots[name] = WriteSlot(self.store, Partition.PROJECTS, name)
        return slot

    async def save_as(self, name: str) -> Metadata:
        """Store the live graph under ``name``; the autosave slot is untouched.

        ``lastModified`` is stamped when the graph changed since it was last
        saved or adopted, so re-saving an unchanged graph writes identical
        bytes. StoreUnavailable propagates to the caller.
        """
        name = name.strip()
        if not name:
            raise ValueError("Project name must not be empty")
        if name == AUTOSAVE_SLOT:
            raise ValueError(f"{AUTOSAVE_SLOT!r} is reserved for the autosave slot")

        project = self.project
        save = encode(project)
        save.metadata.project_name = name
        if project.revision != self._saved_revision:
            save.metadata.last_modified = self.wall_clock()
        await self._project_slot(name).submit(dumps(save))

        changed = (project.metadata.project_name, project.metadata.last_modified) != (
            name,
            save.metadata.last_modified,
        )
        project.metadata.project_name = name
        project.metadata.last_modified = save.metadata.last_modified
        self._saved_revision = project.revision
        if changed:
            # the autosave slot must carry the new name and stamp too
            self.notify_mutation()
        logger.info(f"Saved project {name!r}")
        return self.current_metadata()

    async def save(self) -> Metadata:
        return await self.save_as(self.project.metadata.project_name)

    async def load(self, name: str = AUTOSAVE_SLOT) -> Project:
        """Load a named project (or the autosave slot) and swap it in.

        Errors propagate and leave the live graph untouched.
        """
        pending, self._deadline = self._deadline, None
        loaded = False
        try:
            await self._autosave_slot.wait_idle()
            if name == AUTOSAVE_SLOT:
                payload = await self.store.read(Partition.AUTOSAVE, AUTOSAVE_KEY)
            else:
                payload = await self.store.read(Partition.PROJECTS, name)
            project = decode(loads(payload), self.registry, allocator=self._allocator)
            loaded = True
        finally:
            if not loaded and pending is not None and self._deadline is None:
                self._deadline = pending

        self._adopt(project)
        logger.info(f"Loaded project {project.metadata.project_name!r} from {name!r}")
        if name != AUTOSAVE_SLOT:
            # the autosave slot follows whatever project is open
            self.notify_mutation()
        return project

    async def list_projects(self) -> List[str]:
        return await self.store.list(Partition.PROJECTS)

    async def delete_project(self, name: str) -> None:
        await self.store.delete(Partition.PROJECTS, name)
        self._project_slots.pop(name, None)
        logger.info(f"Deleted project {name!r}")


__all__ = [
    "AUTOSAVE_SLOT",
    "ControllerState",
    "ManualClock",
    "MonotonicClock",
    "PersistenceController",
    "WriteSlot",
]
