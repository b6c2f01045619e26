"""Placement outcome data models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict

from modelorg.classification.models import Category
from modelorg.ingestion.models import Candidate


class PlacementStatus(str, Enum):
    """Result of a placement attempt."""

    PLACED = "placed"
    SKIPPED_EXISTS = "skipped_exists"
    FAILED = "failed"


class PlacementMethod(str, Enum):
    """How a placed file was materialized."""

    SYMLINK = "symlink"
    HARDLINK = "hardlink"
    COPY_VERIFIED = "copy_verified"


class FailureKind(str, Enum):
    """Failure taxonomy; ``space`` is operator-actionable."""

    SOURCE = "source"
    SPACE = "space"
    INTEGRITY = "integrity"
    IO = "io"


class PlacementOutcome(BaseModel):
    """Represents the result of placing one candidate.

    Attributes:
        candidate: Candidate that was placed.
        category: Category chosen by the classifier.
        status: Placement status.
        destination_path: Computed destination for the candidate.
        method: Materialization method when placed.
        failure_kind: Failure classification when failed.
        error_detail: Human-readable failure reason when failed.
    """

    model_config = ConfigDict(frozen=True)

    candidate: Candidate
    category: Category
    status: PlacementStatus
    destination_path: Path
    method: Optional[PlacementMethod] = None
    failure_kind: Optional[FailureKind] = None
    error_detail: Optional[str] = None

    @classmethod
    def placed(
        cls, candidate: Candidate, category: Category, destination: Path, method: PlacementMethod
    ) -> "PlacementOutcome":
        return cls(
            candidate=candidate,
            category=category,
            status=PlacementStatus.PLACED,
            destination_path=destination,
            method=method,
        )

    @classmethod
    def skipped(
        cls, candidate: Candidate, category: Category, destination: Path
    ) -> "PlacementOutcome":
        return cls(
            candidate=candidate,
            category=category,
            status=PlacementStatus.SKIPPED_EXISTS,
            destination_path=destination,
        )

    @classmethod
    def failed(
        cls,
        candidate: Candidate,
        category: Category,
        destination: Path,
        kind: FailureKind,
        detail: str,
    ) -> "PlacementOutcome":
        return cls(
            candidate=candidate,
            category=category,
            status=PlacementStatus.FAILED,
            destination_path=destination,
            failure_kind=kind,
            error_detail=detail,
        )


__all__ = ["PlacementStatus", "PlacementMethod", "FailureKind", "PlacementOutcome"]
