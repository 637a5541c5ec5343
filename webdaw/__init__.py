"""webdaw package: project persistence for the webdaw multi-track editor."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("webdaw")
except PackageNotFoundError:  # pragma: no cover - during local dev without install
    __version__ = "0.0.0"

__all__ = ["__version__"]
