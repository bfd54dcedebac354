"""opsquery - schema search and guarded read-only SQL for a Databricks warehouse."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("opsquery")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["__version__"]
