"""formdoc - Metadata-driven conversion between form records and JSON documents."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("formdoc")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["__version__"]
