"""Data models for discovered model files."""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _normalize_segment(value: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("_", value).strip("._-")


class SourceKind(str, Enum):
    """Where a candidate was found."""

    FLAT = "flat"
    CACHE_SNAPSHOT = "cache_snapshot"


class CacheIdentity(BaseModel):
    """Repository identity recovered from a snapshot-cache directory name.

    Attributes:
        kind: Cache marker such as ``models`` or ``datasets``.
        namespace: Owner segment; empty for repositories without one.
        repository: Repository name.
        revision: Snapshot hash directory name.
        subfolder: POSIX path of the file's directory inside the snapshot.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    namespace: str
    repository: str
    revision: str
    subfolder: str = ""

    def friendly_name(self, filename: str) -> Optional[str]:
        """Return a collision-resistant destination filename.

        The repository identity (and any snapshot subfolder) prefixes the
        original filename, so two repositories shipping ``model.safetensors``
        land under different names.

        Args:
            filename: Original filename inside the snapshot.

        Returns:
            Optional[str]: Prefixed filename, or None when the identity
            normalizes to nothing.
        """
        segments = [self.namespace, self.repository]
        if self.subfolder:
            segments.extend(PurePosixPath(self.subfolder).parts)
        prefix = "_".join(part for part in map(_normalize_segment, segments) if part)
        if not prefix:
            return None
        if filename.lower().startswith(prefix.lower()):
            return filename
        return f"{prefix}_{filename}"


class Candidate(BaseModel):
    """A discovered file eligible for organization.

    Attributes:
        source_path: Absolute path as discovered (links are not resolved).
        size_bytes: Size of the resolved file at discovery time.
        source_kind: Flat download or snapshot-cache file.
        cache_identity: Repository identity for snapshot-cache files.
    """

    model_config = ConfigDict(frozen=True)

    source_path: Path
    size_bytes: int
    source_kind: SourceKind = SourceKind.FLAT
    cache_identity: Optional[CacheIdentity] = None

    @property
    def filename(self) -> str:
        """Return the discovered filename."""
        return self.source_path.name


class SourceDiagnostics(BaseModel):
    """Snapshot of a source tree used when nothing ends up organized.

    Attributes:
        root: Source directory inspected.
        exists: Whether the directory exists.
        file_count: Files found within the scan depth.
        model_file_count: Files with a recognized model extension.
        cache_directories: Snapshot-cache repository directories detected.
    """

    root: Path
    exists: bool
    file_count: int = 0
    model_file_count: int = 0
    cache_directories: List[str] = Field(default_factory=list)


__all__ = ["SourceKind", "CacheIdentity", "Candidate", "SourceDiagnostics"]
