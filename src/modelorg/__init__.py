"""Organize downloaded model weights into a per-category library."""

from importlib import metadata as _metadata

__all__ = ["__version__"]


def __getattr__(name: str):
    # Resolved lazily so importing the package never touches distribution metadata.
    if name != "__version__":
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    try:
        return _metadata.version("modelorg")
    except _metadata.PackageNotFoundError:
        return "0.0.0"
