"""
Key-value store adapter with two partitions.

    autosave   exactly one record under AUTOSAVE_KEY, always overwritten
    projects   one record per project name

Every operation is async and reports engine failures (not opened, quota
exceeded, database errors) as StoreUnavailable. Callers decide whether that
is fatal; the persistence controller keeps the editing session alive.

SqlStore is the durable implementation (SQLAlchemy async over aiosqlite);
MemoryStore keeps records in dicts behind the same interface.
"""

from __future__ import annotations

import abc
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Type, Union

from sqlalchemy import DateTime, LargeBinary, String, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from .errors import RecordNotFound, StoreUnavailable
from .save_file import AUTOSAVE_STORE, DB_NAME, DB_VERSION, PROJECTS_STORE

logger = logging.getLogger(__name__)

AUTOSAVE_KEY = "current"
DEFAULT_DATABASE_URL = f"sqlite+aiosqlite:///./{DB_NAME}.db"


class Partition(str, Enum):
    AUTOSAVE = AUTOSAVE_STORE
    PROJECTS = PROJECTS_STORE


PartitionLike = Union[Partition, str]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _check_key(partition: Partition, key: str) -> None:
    if not isinstance(key, str) or not key:
        raise ValueError("Store keys must be non-empty strings")
    if partition is Partition.AUTOSAVE and key != AUTOSAVE_KEY:
        raise ValueError(f"The autosave partition only holds {AUTOSAVE_KEY!r}, got {key!r}")


class StoreAdapter(abc.ABC):
    """Async key-value interface shared by every store implementation."""

    quota_bytes: Optional[int] = None

    async def __aenter__(self) -> "StoreAdapter":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @abc.abstractmethod
    async def open(self) -> None: ...

    @abc.abstractmethod
    async def close(self) -> None: ...

    @abc.abstractmethod
    async def write(self, partition: PartitionLike, key: str, payload: bytes) -> None: ...

    @abc.abstractmethod
    async def read(self, partition: PartitionLike, key: str) -> bytes:
        """Return the stored payload or raise RecordNotFound."""

    @abc.abstractmethod
    async def list(self, partition: PartitionLike) -> List[str]:
        """Return the keys of ``partition`` in sorted order."""

    @abc.abstractmethod
    async def delete(self, partition: PartitionLike, key: str) -> None:
        """Remove ``key``; a missing key is not an error."""

    def _check_quota(self, used_elsewhere: int, payload: bytes) -> None:
        if self.quota_bytes is not None and used_elsewhere + len(payload) > self.quota_bytes:
            raise StoreUnavailable(
                f"Storage quota exceeded: {used_elsewhere + len(payload)} > {self.quota_bytes} bytes"
            )


class MemoryStore(StoreAdapter):
    """Dict-backed store; records vanish with the process."""

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes
        self.available = True
        self.is_open = False
        self.write_counts: Dict[Partition, int] = {p: 0 for p in Partition}
        self._records: Dict[Partition, Dict[str, bytes]] = {p: {} for p in Partition}

    async def open(self) -> None:
        self.is_open = True

    async def close(self) -> None:
        self.is_open = False

    def _ensure_ready(self) -> None:
        if not self.is_open:
            raise StoreUnavailable("Store is not open")
        if not self.available:
            raise StoreUnavailable("Store is unavailable")

    async def write(self, partition: PartitionLike, key: str, payload: bytes) -> None:
        partition = Partition(partition)
        _check_key(partition, key)
        self._ensure_ready()
        used = sum(
            len(value)
            for part, records in self._records.items()
            for k, value in records.items()
            if not (part is partition and k == key)
        )
        self._check_quota(used, payload)
        self._records[partition][key] = bytes(payload)
        self.write_counts[partition] += 1

    async def read(self, partition: PartitionLike, key: str) -> bytes:
        partition = Partition(partition)
        self._ensure_ready()
        try:
            return self._records[partition][key]
        except KeyError:
            raise RecordNotFound(partition.value, key) from None

    async def list(self, partition: PartitionLike) -> List[str]:
        partition = Partition(partition)
        self._ensure_ready()
        return sorted(self._records[partition])

    async def delete(self, partition: PartitionLike, key: str) -> None:
        partition = Partition(partition)
        self._ensure_ready()
        self._records[partition].pop(key, None)


# SQL backend ------------------------------------------------------------


class Base(DeclarativeBase):
    """Base class for the store's SQLAlchemy models."""


class _RecordColumns:
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class AutosaveRecord(_RecordColumns, Base):
    __tablename__ = AUTOSAVE_STORE


class ProjectRecord(_RecordColumns, Base):
    __tablename__ = PROJECTS_STORE


_MODELS: Dict[Partition, Type[_RecordColumns]] = {
    Partition.AUTOSAVE: AutosaveRecord,
    Partition.PROJECTS: ProjectRecord,
}


class SqlStore(StoreAdapter):
    """Durable store backed by one SQL table per partition.

    Each write runs in its own transaction, so a crash mid-write leaves the
    previous record intact. The SQLite ``user_version`` pragma carries the
    store schema version.
    """

    def __init__(self, database_url: str = DEFAULT_DATABASE_URL, quota_bytes: Optional[int] = None) -> None:
        self.database_url = database_url
        self.quota_bytes = quota_bytes
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open(self) -> None:
        if self._engine is not None:
            return

        url = self.database_url
        connect_args: Dict[str, Any] = {}
        engine_args: Dict[str, Any] = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if ":memory:" in url:
                engine_args["poolclass"] = StaticPool

        engine = create_async_engine(url, connect_args=connect_args, **engine_args)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(self._prepare_schema)
        except StoreUnavailable:
            await engine.dispose()
            raise
        except (SQLAlchemyError, OSError) as exc:
            await engine.dispose()
            raise StoreUnavailable(f"Cannot open store {url}: {exc}") from exc

        self._engine = engine
        self._sessions = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        logger.info(f"Store opened: {url}")

    @staticmethod
    def _prepare_schema(conn: Any) -> None:
        is_sqlite = conn.dialect.name == "sqlite"
        version = conn.exec_driver_sql("PRAGMA user_version").scalar() if is_sqlite else DB_VERSION
        if version > DB_VERSION:
            raise StoreUnavailable(f"Store schema version {version} is newer than supported {DB_VERSION}")
        Base.metadata.create_all(conn)
        if is_sqlite and version < DB_VERSION:
            conn.exec_driver_sql(f"PRAGMA user_version = {DB_VERSION}")

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessions = None
            logger.info("Store closed")

    @asynccontextmanager
    async def _transaction(self, action: str) -> AsyncIterator[AsyncSession]:
        if self._sessions is None:
            raise StoreUnavailable("Store is not open")
        try:
            async with self._sessions() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            logger.error(f"Store {action} failed: {exc}")
            raise StoreUnavailable(f"Store {action} failed: {exc}") from exc

    async def _used_bytes_excluding(self, session: AsyncSession, partition: Partition, key: str) -> int:
        used = 0
        for part, model in _MODELS.items():
            query = select(func.coalesce(func.sum(func.length(model.payload)), 0))
            if part is partition:
                query = query.where(model.key != key)
            used += int(await session.scalar(query) or 0)
        return used

    async def write(self, partition: PartitionLike, key: str, payload: bytes) -> None:
        partition = Partition(partition)
        _check_key(partition, key)
        model = _MODELS[partition]
        async with self._transaction("write") as session:
            if self.quota_bytes is not None:
                self._check_quota(await self._used_bytes_excluding(session, partition, key), payload)
            await session.merge(model(key=key, payload=bytes(payload), updated_at=utc_now()))

    async def read(self, partition: PartitionLike, key: str) -> bytes:
        partition = Partition(partition)
        async with self._transaction("read") as session:
            record = await session.get(_MODELS[partition], key)
            if record is None:
                raise RecordNotFound(partition.value, key)
            return bytes(record.payload)

    async def list(self, partition: PartitionLike) -> List[str]:
        model = _MODELS[Partition(partition)]
        async with self._transaction("list") as session:
            keys = await session.scalars(select(model.key).order_by(model.key))
            return [key for key in keys]

    async def delete(self, partition: PartitionLike, key: str) -> None:
        model = _MODELS[Partition(partition)]
        async with self._transaction("delete") as session:
            await session.execute(delete(model).where(model.key == key))


__all__ = [
    "AUTOSAVE_KEY",
    "AutosaveRecord",
    "Base",
    "DEFAULT_DATABASE_URL",
    "MemoryStore",
    "Partition",
    "ProjectRecord",
    "SqlStore",
    "StoreAdapter",
]
