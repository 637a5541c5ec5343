"""Byte and file persistence helpers for webdaw projects."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Union

from ..models.project import Project, new_project
from .codec import decode, encode
from .errors import SchemaError
from .save_file import SaveFile

PathLike = Union[str, Path]
DEFAULT_EXTENSION = ".webdaw"

logger = logging.getLogger(__name__)


def ensure_extension(path: Path) -> Path:
    if path.suffix != DEFAULT_EXTENSION:
        return path.with_suffix(DEFAULT_EXTENSION)
    return path


def dumps(save: SaveFile) -> bytes:
    """Serialize deterministically: the same graph always gives the same bytes."""
    return json.dumps(save.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")


def loads(payload: bytes) -> SaveFile:
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SchemaError(f"Save data is not valid JSON: {exc}") from exc
    return SaveFile.from_dict(data)


def export_project(project: Project, path: PathLike) -> Path:
    project_path = ensure_extension(Path(path))
    project_path.parent.mkdir(parents=True, exist_ok=True)
    project_path.write_bytes(dumps(encode(project)))
    logger.info(f"Exported {project.metadata.project_name!r} to {project_path}")
    return project_path


def import_project(path: PathLike, registry: Any) -> Project:
    project_path = Path(path)
    return decode(loads(project_path.read_bytes()), registry)


__all__ = [
    "DEFAULT_EXTENSION",
    "dumps",
    "ensure_extension",
    "export_project",
    "import_project",
    "loads",
    "new_project",
]
