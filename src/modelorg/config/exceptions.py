"""Configuration errors."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class ConfigError(Exception):
    """Raised when a configuration source is unreadable or holds invalid values.

    Attributes:
        path: Configuration file involved, when the error came from a file.
    """

    def __init__(self, message: str, *, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


__all__ = ["ConfigError"]
