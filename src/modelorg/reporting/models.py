"""Run summary data models."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from modelorg.ingestion.models import SourceDiagnostics
from modelorg.organization.models import PlacementOutcome


class DirectoryInventory(BaseModel):
    """Model files resident in one category directory.

    Attributes:
        category: Category the directory holds.
        directory: Absolute directory path.
        file_count: Regular model files.
        link_count: Symbolic links to model files.
        samples: First few entry names, sorted.
    """

    category: str
    directory: Path
    file_count: int = 0
    link_count: int = 0
    samples: List[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.file_count + self.link_count


class RunSummary(BaseModel):
    """Aggregate of every outcome from one invocation.

    ``placed + skipped_exists + failed + not_dispatched == total`` always
    holds; ``not_dispatched`` is non-zero only for cancelled or halted runs.
    """

    source_root: Path
    destination_root: Path
    total: int = 0
    placed: int = 0
    skipped_exists: int = 0
    failed: int = 0
    not_dispatched: int = 0
    cancelled: bool = False
    halted: bool = False
    workers: int = 1
    category_counts: Dict[str, int] = Field(default_factory=dict)
    method_counts: Dict[str, int] = Field(default_factory=dict)
    failure_counts: Dict[str, int] = Field(default_factory=dict)
    library: List[DirectoryInventory] = Field(default_factory=list)
    grand_total: int = 0
    diagnostics: Optional[SourceDiagnostics] = None
    outcomes: List[PlacementOutcome] = Field(default_factory=list)

    @property
    def conserved(self) -> bool:
        """Return True when every candidate is accounted for exactly once."""
        return self.placed + self.skipped_exists + self.failed + self.not_dispatched == self.total


__all__ = ["DirectoryInventory", "RunSummary"]
