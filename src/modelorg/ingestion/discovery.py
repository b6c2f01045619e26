"""Discovery of model files in flat and snapshot-cache download trees."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from modelorg.config.models import DEFAULT_EXTENSIONS, DiscoverySettings

from .models import CacheIdentity, Candidate, SourceDiagnostics, SourceKind

LOGGER = logging.getLogger(__name__)

_CACHE_REPO_DIR = re.compile(r"^(?P<kind>models|datasets|spaces)--(?P<name>.+)$")
_SNAPSHOT_DIRS = {"snapshots", "refs"}


def _is_hidden(name: str) -> bool:
    return name.startswith(".") and name not in (".", "..")


def parse_cache_identity(relative: Path) -> Optional[CacheIdentity]:
    """Recover the repository identity from a path relative to the source root.

    Recognizes ``<kind>--<namespace>--<repo>/(snapshots|refs)/<hash>/...`` and
    the namespace-less ``<kind>--<repo>`` variant.

    Args:
        relative: File path relative to the scanned root.

    Returns:
        Optional[CacheIdentity]: Identity when the path sits inside a snapshot.
    """
    parts = relative.parts
    # Need at least the repo dir, the snapshot dir, the hash dir and the file.
    for index in range(len(parts) - 3):
        match = _CACHE_REPO_DIR.match(parts[index])
        if match is None or parts[index + 1] not in _SNAPSHOT_DIRS:
            continue
        segments = match.group("name").split("--")
        if len(segments) >= 2:
            namespace, repository = segments[0], "--".join(segments[1:])
        else:
            namespace, repository = "", segments[0]
        return CacheIdentity(
            kind=match.group("kind"),
            namespace=namespace,
            repository=repository,
            revision=parts[index + 2],
            subfolder="/".join(parts[index + 3 : -1]),
        )
    return None


class CacheFlattener:
    """Produce a flat, deterministic candidate list from a download tree."""

    def __init__(
        self,
        *,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
        max_depth: int = 4,
        include_hidden: bool = False,
    ) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.extensions = frozenset(extension.lower() for extension in extensions)
        self.max_depth = max_depth
        self.include_hidden = include_hidden

    @classmethod
    def from_settings(cls, settings: DiscoverySettings) -> "CacheFlattener":
        """Build a flattener from the discovery config section."""
        return cls(
            extensions=settings.extensions,
            max_depth=settings.max_depth,
            include_hidden=settings.include_hidden,
        )

    def flatten(self, root: Path) -> list[Candidate]:
        """Return candidates found under ``root``.

        A missing or empty root yields an empty list rather than an error.

        Args:
            root: Download directory to scan.

        Returns:
            list[Candidate]: Candidates in sorted path order.
        """
        root = Path(root).expanduser().absolute()
        if not root.is_dir():
            LOGGER.info("Source directory %s does not exist; nothing to scan.", root)
            return []

        candidates: list[Candidate] = []
        for path in self._iter_files(root):
            if path.suffix.lower() not in self.extensions:
                continue
            candidate = self._build_candidate(root, path)
            if candidate is not None:
                candidates.append(candidate)

        LOGGER.info("Discovered %d candidate(s) under %s", len(candidates), root)
        return candidates

    def diagnose(self, root: Path) -> SourceDiagnostics:
        """Describe the source tree for operator-facing diagnostics."""
        root = Path(root).expanduser().absolute()
        if not root.is_dir():
            return SourceDiagnostics(root=root, exists=False)

        file_count = 0
        model_count = 0
        for path in self._iter_files(root):
            file_count += 1
            if path.suffix.lower() in self.extensions:
                model_count += 1

        cache_dirs = sorted(
            str(path.relative_to(root))
            for path in self._iter_dirs(root)
            if _CACHE_REPO_DIR.match(path.name)
        )
        return SourceDiagnostics(
            root=root,
            exists=True,
            file_count=file_count,
            model_file_count=model_count,
            cache_directories=cache_dirs,
        )

    # Internal helpers -------------------------------------------------

    def _build_candidate(self, root: Path, path: Path) -> Optional[Candidate]:
        try:
            if not path.is_file():
                # Dangling cache links point at blobs that never finished.
                LOGGER.debug("Skipping %s: not a regular file after dereferencing", path)
                return None
            size = path.stat().st_size
        except OSError as exc:
            LOGGER.warning("Skipping %s: %s", path, exc)
            return None

        relative = path.relative_to(root)
        identity = parse_cache_identity(relative)
        return Candidate(
            source_path=path,
            size_bytes=size,
            source_kind=SourceKind.CACHE_SNAPSHOT if identity else SourceKind.FLAT,
            cache_identity=identity,
        )

    def _walk(self, root: Path) -> Iterator[tuple[Path, list[str], list[str]]]:
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            depth = len(current.relative_to(root).parts)
            dirnames[:] = sorted(
                name for name in dirnames if self.include_hidden or not _is_hidden(name)
            )
            # Files in this directory sit at depth + 1; stop descending at the limit.
            if depth + 1 >= self.max_depth:
                dirnames[:] = []
            names = sorted(
                name for name in filenames if self.include_hidden or not _is_hidden(name)
            )
            yield current, dirnames, names

    def _iter_files(self, root: Path) -> Iterable[Path]:
        for current, _, filenames in self._walk(root):
            for name in filenames:
                yield current / name

    def _iter_dirs(self, root: Path) -> Iterable[Path]:
        for current, dirnames, _ in self._walk(root):
            for name in dirnames:
                yield current / name


def prune_empty_directories(root: Path) -> int:
    """Remove empty directories below ``root``, deepest first.

    ``root`` itself and hidden directories are kept.

    Args:
        root: Download directory to tidy.

    Returns:
        int: Number of directories removed.
    """
    root = Path(root).expanduser().absolute()
    if not root.is_dir():
        return 0

    removed = 0
    for dirpath, dirnames, _ in os.walk(root, topdown=False):
        parent = Path(dirpath)
        if any(_is_hidden(part) for part in parent.relative_to(root).parts):
            continue
        for name in dirnames:
            if _is_hidden(name):
                continue
            candidate = parent / name
            if candidate.is_symlink():
                continue
            try:
                candidate.rmdir()
            except OSError:
                continue
            removed += 1
    if removed:
        LOGGER.info("Removed %d empty director(ies) under %s", removed, root)
    return removed


__all__ = ["CacheFlattener", "parse_cache_identity", "prune_empty_directories"]
