"""Placement of classified candidates into the category tree."""

from __future__ import annotations

import errno
import filecmp
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Literal, Sequence

from modelorg.classification.models import CATEGORY_DIRECTORIES, Category
from modelorg.ingestion.models import Candidate

from .errors import SetupError
from .models import FailureKind, PlacementMethod, PlacementOutcome, PlacementStatus

LOGGER = logging.getLogger(__name__)

Strategy = Literal["symlink", "hardlink", "copy"]


class PlacementEngine:
    """Materialize candidates at their category destination.

    Placement never overwrites: an existing destination entry (including a
    dangling link) is reported as ``skipped_exists``. Links are preferred so
    large weight files are not duplicated; a copy is only accepted after a
    full content comparison with its source.
    """

    def __init__(
        self,
        destination_root: Path,
        *,
        strategies: Sequence[Strategy] = ("symlink", "copy"),
    ) -> None:
        if not strategies:
            raise ValueError("at least one placement strategy is required")
        self.destination_root = Path(destination_root).expanduser().absolute()
        self.strategies = tuple(strategies)

    def prepare(self) -> None:
        """Create the destination root and every category directory.

        Raises:
            SetupError: If the tree cannot be created.
        """
        try:
            for directory in CATEGORY_DIRECTORIES.values():
                (self.destination_root / directory).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SetupError(
                f"Unable to create destination tree at {self.destination_root}: {exc}"
            ) from exc

    def destination_for(self, candidate: Candidate, category: Category) -> Path:
        """Return the destination path for ``candidate`` without touching disk."""
        name = candidate.filename
        if candidate.cache_identity is not None:
            name = candidate.cache_identity.friendly_name(candidate.filename) or name
        return self.destination_root / category.directory / name

    def place(self, candidate: Candidate, category: Category) -> PlacementOutcome:
        """Place one candidate.

        Args:
            candidate: File to materialize.
            category: Category chosen by the classifier.

        Returns:
            PlacementOutcome: Placed, skipped, or failed outcome; never raises
            for per-file problems.
        """
        outcome = self._place(candidate, category)
        self._log(outcome)
        return outcome

    # Internal helpers -------------------------------------------------

    def _place(self, candidate: Candidate, category: Category) -> PlacementOutcome:
        destination = self.destination_for(candidate, category)

        try:
            target = candidate.source_path.resolve(strict=True)
            readable = target.is_file() and os.access(target, os.R_OK)
        except OSError:
            readable = False
        if not readable:
            return PlacementOutcome.failed(
                candidate, category, destination, FailureKind.SOURCE, "source vanished"
            )

        if os.path.lexists(destination):
            return PlacementOutcome.skipped(candidate, category, destination)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            return PlacementOutcome.failed(
                candidate,
                category,
                destination,
                FailureKind.IO,
                f"cannot create {destination.parent}: {exc}",
            )

        if not self._has_space(destination.parent, candidate.size_bytes):
            return PlacementOutcome.failed(
                candidate, category, destination, FailureKind.SPACE, "insufficient space"
            )

        last_error = "no strategy attempted"
        for strategy in self.strategies:
            if strategy == "copy":
                outcome = self._copy_verified(candidate, category, target, destination)
                if outcome.failure_kind is not FailureKind.IO:
                    return outcome
                last_error = outcome.error_detail or last_error
                continue
            method = PlacementMethod.SYMLINK if strategy == "symlink" else PlacementMethod.HARDLINK
            try:
                if method is PlacementMethod.SYMLINK:
                    os.symlink(target, destination)
                else:
                    os.link(target, destination)
            except FileExistsError:
                return PlacementOutcome.skipped(candidate, category, destination)
            except OSError as exc:
                LOGGER.debug("%s of %s failed: %s", strategy, candidate.filename, exc)
                last_error = str(exc)
                continue
            return PlacementOutcome.placed(candidate, category, destination, method)

        return PlacementOutcome.failed(
            candidate,
            category,
            destination,
            FailureKind.IO,
            f"all placement strategies failed: {last_error}",
        )

    def _copy_verified(
        self, candidate: Candidate, category: Category, source: Path, destination: Path
    ) -> PlacementOutcome:
        partial = destination.with_name(f".{destination.name}.{uuid.uuid4().hex[:8]}.partial")
        try:
            shutil.copy2(source, partial)
            if not filecmp.cmp(source, partial, shallow=False):
                return PlacementOutcome.failed(
                    candidate,
                    category,
                    destination,
                    FailureKind.INTEGRITY,
                    "copy verification mismatch",
                )
            if not _commit(partial, destination):
                return PlacementOutcome.skipped(candidate, category, destination)
        except OSError as exc:
            if exc.errno == errno.ENOSPC:
                return PlacementOutcome.failed(
                    candidate, category, destination, FailureKind.SPACE, "insufficient space"
                )
            return PlacementOutcome.failed(
                candidate, category, destination, FailureKind.IO, f"copy failed: {exc}"
            )
        finally:
            # Interrupted or not, no temporary copy stays in the library.
            partial.unlink(missing_ok=True)
        return PlacementOutcome.placed(
            candidate, category, destination, PlacementMethod.COPY_VERIFIED
        )

    def _has_space(self, directory: Path, required_bytes: int) -> bool:
        try:
            free = shutil.disk_usage(directory).free
        except OSError as exc:
            LOGGER.warning("Failed to check disk space for %s: %s", directory, exc)
            return True
        if free >= required_bytes:
            return True
        LOGGER.warning(
            "Insufficient disk space in %s: %s bytes free, %s bytes required",
            directory,
            f"{free:,}",
            f"{required_bytes:,}",
        )
        return False

    def _log(self, outcome: PlacementOutcome) -> None:
        name = outcome.candidate.filename
        category = outcome.category.value
        if outcome.status is PlacementStatus.PLACED:
            LOGGER.info(
                "Placed %s [%s] -> %s via %s",
                name,
                category,
                outcome.destination_path,
                outcome.method.value if outcome.method else "?",
            )
        elif outcome.status is PlacementStatus.SKIPPED_EXISTS:
            destination = outcome.destination_path
            if destination.is_symlink() and not destination.exists():
                LOGGER.warning("Existing link at %s is dangling; leaving it untouched", destination)
            LOGGER.info("Skipped %s [%s]: %s already exists", name, category, destination)
        else:
            LOGGER.warning(
                "Failed to place %s [%s] -> %s: %s",
                name,
                category,
                outcome.destination_path,
                outcome.error_detail,
            )


# Errors meaning the filesystem cannot hard-link at all.
_NO_HARDLINK_ERRNOS = frozenset({errno.EPERM, errno.ENOTSUP, errno.EOPNOTSUPP, errno.EMLINK})


def _commit(partial: Path, destination: Path) -> bool:
    """Publish a verified copy at ``destination`` without replacing anything.

    Hard-linking the temporary file fails atomically when the name is taken.
    Where hard links are unsupported the name is claimed with an exclusive
    create before the copy is moved over the placeholder.

    Args:
        partial: Verified temporary copy next to ``destination``.
        destination: Final path.

    Returns:
        bool: False when another entry already occupies ``destination``.
    """
    try:
        os.link(partial, destination)
        return True
    except FileExistsError:
        return False
    except OSError as exc:
        if exc.errno not in _NO_HARDLINK_ERRNOS:
            raise

    try:
        descriptor = os.open(destination, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    except FileExistsError:
        return False
    os.close(descriptor)
    try:
        os.replace(partial, destination)
    except BaseException:
        destination.unlink(missing_ok=True)
        raise
    return True


__all__ = ["PlacementEngine", "Strategy"]
