"""webdaw - command line access to the project store.

    webdaw list                     stored project names
    webdaw show NAME                metadata and entity counts
    webdaw export NAME PATH         write a project to a .webdaw file
    webdaw import PATH [--name N]   store a .webdaw file as a project
    webdaw delete NAME              remove a stored project
    webdaw check NAME               integrity report (exit 1 on problems)

NAME ``autosave`` refers to the autosave slot wherever a project is read.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional

import typer

from .config import LOG_FORMAT, get_settings
from .storage.codec import decode, encode, integrity_problems
from .storage.controller import AUTOSAVE_SLOT
from .storage.errors import PersistenceError, RecordNotFound, StoreUnavailable
from .storage.io import dumps, export_project, import_project, loads
from .storage.save_file import SaveFile
from .storage.store import AUTOSAVE_KEY, Partition, StoreAdapter
from .synths import default_registry

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="webdaw",
    help="Inspect and manage stored webdaw projects.",
    no_args_is_help=True,
)


class ExitCode(enum.IntEnum):
    SUCCESS = 0
    USER_ERROR = 1
    STORE_ERROR = 2


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format=LOG_FORMAT,
    )


def _run(command: str, action: Callable[[StoreAdapter], Awaitable[None]]) -> None:
    """Open the configured store, run ``action`` and map failures to exit codes."""
    store = get_settings().make_store()

    async def _session() -> None:
        async with store:
            await action(store)

    try:
        asyncio.run(_session())
    except typer.Exit:
        raise
    except RecordNotFound as exc:
        typer.echo(f"webdaw {command}: {exc}", err=True)
        raise typer.Exit(code=ExitCode.USER_ERROR)
    except StoreUnavailable as exc:
        typer.echo(f"webdaw {command}: storage unavailable: {exc}", err=True)
        logger.error(f"webdaw {command} error: {exc}")
        raise typer.Exit(code=ExitCode.STORE_ERROR)
    except (PersistenceError, ValueError, OSError) as exc:
        typer.echo(f"webdaw {command} failed: {exc}", err=True)
        raise typer.Exit(code=ExitCode.USER_ERROR)


async def _read_save(store: StoreAdapter, name: str) -> SaveFile:
    if name == AUTOSAVE_SLOT:
        payload = await store.read(Partition.AUTOSAVE, AUTOSAVE_KEY)
    else:
        payload = await store.read(Partition.PROJECTS, name)
    return loads(payload)


def _format_ms(value: int) -> str:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


@app.command("list")
def list_projects() -> None:
    """List stored project names."""

    async def _action(store: StoreAdapter) -> None:
        for name in await store.list(Partition.PROJECTS):
            typer.echo(name)

    _run("list", _action)


@app.command()
def show(name: str = typer.Argument(..., help="Project name, or 'autosave'.")) -> None:
    """Print a project's metadata and entity counts."""

    async def _action(store: StoreAdapter) -> None:
        save = await _read_save(store, name)
        typer.echo(f"Name:          {save.metadata.project_name}")
        typer.echo(f"Version:       {save.version}")
        typer.echo(f"Created:       {_format_ms(save.metadata.created)}")
        typer.echo(f"Last modified: {_format_ms(save.metadata.last_modified)}")
        typer.echo(f"BPM:           {save.global_.bpm:g}")
        typer.echo(f"Patterns:      {len(save.patterns)}")
        typer.echo(f"Notes:         {sum(len(p.notes) for p in save.patterns)}")
        typer.echo(f"Channels:      {len(save.channels)}")
        typer.echo(f"Mixer tracks:  {len(save.mixers)}")
        typer.echo(f"Tracks:        {len(save.arrangement.tracks)}")
        typer.echo(f"Clips:         {len(save.arrangement.clips)}")

    _run("show", _action)


@app.command()
def export(
    name: str = typer.Argument(..., help="Project name, or 'autosave'."),
    path: Path = typer.Argument(..., help="Destination file; .webdaw is appended if missing."),
) -> None:
    """Write a stored project to a .webdaw file."""

    async def _action(store: StoreAdapter) -> None:
        project = decode(await _read_save(store, name), default_registry())
        written = export_project(project, path)
        typer.echo(f"Exported {name} to {written}")

    _run("export", _action)


@app.command("import")
def import_(
    path: Path = typer.Argument(..., help="A .webdaw file."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Store under this name instead."),
) -> None:
    """Validate a .webdaw file and store it as a project."""

    async def _action(store: StoreAdapter) -> None:
        project = import_project(path, default_registry())
        save = encode(project)
        target = (name or save.metadata.project_name).strip()
        if not target or target == AUTOSAVE_SLOT:
            raise ValueError(f"invalid project name {target!r}")
        save.metadata.project_name = target
        await store.write(Partition.PROJECTS, target, dumps(save))
        typer.echo(f"Imported {path} as {target}")

    _run("import", _action)


@app.command()
def delete(name: str = typer.Argument(..., help="Project name.")) -> None:
    """Remove a stored project."""

    async def _action(store: StoreAdapter) -> None:
        await store.delete(Partition.PROJECTS, name)
        typer.echo(f"Deleted {name}")

    _run("delete", _action)


@app.command()
def check(name: str = typer.Argument(..., help="Project name, or 'autosave'.")) -> None:
    """Report broken references, duplicate keys and unresolvable instruments."""

    async def _action(store: StoreAdapter) -> None:
        save = await _read_save(store, name)
        problems = integrity_problems(save)
        if not problems:
            try:
                decode(save, default_registry())
            except PersistenceError as exc:
                problems.append(str(exc))
        if problems:
            for problem in problems:
                typer.echo(f"  - {problem}")
            typer.echo(f"{name}: {len(problems)} problem(s)")
            raise typer.Exit(code=ExitCode.USER_ERROR)
        typer.echo(f"{name}: OK")

    _run("check", _action)


if __name__ == "__main__":  # pragma: no cover
    app()
