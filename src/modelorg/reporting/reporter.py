"""Statistics accumulation and rendering for organization runs."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from rich.table import Table

from modelorg.classification.models import Category
from modelorg.config.models import DEFAULT_EXTENSIONS
from modelorg.ingestion.models import SourceDiagnostics
from modelorg.organization.models import PlacementStatus
from modelorg.organization.scheduler import SchedulerResult

from .models import DirectoryInventory, RunSummary

LOGGER = logging.getLogger(__name__)

_SAMPLE_LIMIT = 3

# (mode, renderable) pairs; mode is one of detail, summary, warning, error.
RenderedLine = tuple[str, Any]


class StatisticsReporter:
    """Count outcomes and rescan the destination tree after a run."""

    def __init__(
        self,
        destination_root: Path,
        *,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
    ) -> None:
        self.destination_root = Path(destination_root).expanduser().absolute()
        self.extensions = frozenset(extension.lower() for extension in extensions)

    def inventory(self) -> list[DirectoryInventory]:
        """Count model files resident in each category directory.

        Includes files placed by previous runs, so the totals describe the
        whole library rather than only this run's work.

        Returns:
            list[DirectoryInventory]: One entry per category, in category order.
        """
        entries: list[DirectoryInventory] = []
        for category in Category:
            directory = self.destination_root / category.directory
            record = DirectoryInventory(category=category.value, directory=directory)
            if directory.is_dir():
                names: list[str] = []
                for path in sorted(directory.iterdir()):
                    if path.name.startswith(".") or path.suffix.lower() not in self.extensions:
                        continue
                    if path.is_symlink():
                        record.link_count += 1
                    elif path.is_file():
                        record.file_count += 1
                    else:
                        continue
                    names.append(path.name)
                record.samples = names[:_SAMPLE_LIMIT]
            entries.append(record)
        return entries

    def summarize(
        self,
        *,
        source_root: Path,
        total: int,
        result: SchedulerResult,
        diagnose: Optional[Callable[[Path], SourceDiagnostics]] = None,
    ) -> RunSummary:
        """Build the run summary.

        Args:
            source_root: Directory that was organized.
            total: Number of candidates discovered.
            result: Scheduler result holding every outcome.
            diagnose: Source inspector used when the library ends up empty.

        Returns:
            RunSummary: Counts, library inventory and optional diagnostics.
        """
        statuses = Counter(outcome.status for outcome in result.outcomes)
        placed = [o for o in result.outcomes if o.status is PlacementStatus.PLACED]
        failures = [o for o in result.outcomes if o.status is PlacementStatus.FAILED]

        library = self.inventory()
        summary = RunSummary(
            source_root=source_root,
            destination_root=self.destination_root,
            total=total,
            placed=statuses[PlacementStatus.PLACED],
            skipped_exists=statuses[PlacementStatus.SKIPPED_EXISTS],
            failed=statuses[PlacementStatus.FAILED],
            not_dispatched=len(result.not_dispatched),
            cancelled=result.cancelled,
            halted=result.halted,
            workers=result.workers,
            category_counts=dict(Counter(o.category.value for o in placed)),
            method_counts=dict(Counter(o.method.value for o in placed if o.method)),
            failure_counts=dict(Counter(o.failure_kind.value for o in failures if o.failure_kind)),
            library=library,
            grand_total=sum(entry.total for entry in library),
            outcomes=list(result.outcomes),
        )

        if summary.grand_total == 0 and diagnose is not None:
            diagnostics = diagnose(source_root)
            # An absent or empty source is expected to organize nothing.
            if diagnostics.exists and diagnostics.file_count > 0:
                summary.diagnostics = diagnostics
                LOGGER.warning(
                    "No models organized from %s (%d files, %d model files)",
                    source_root,
                    diagnostics.file_count,
                    diagnostics.model_file_count,
                )

        if not summary.conserved:  # pragma: no cover - invariant guard
            LOGGER.error("Outcome counts do not add up to %d candidates", total)
        return summary

    def render(self, summary: RunSummary) -> list[RenderedLine]:
        """Return the human-readable report as ``(mode, renderable)`` pairs."""
        lines: list[RenderedLine] = []

        if summary.total == 0 and summary.diagnostics is None:
            lines.append(
                ("summary", f"[yellow]Nothing to organize in {summary.source_root}.[/yellow]")
            )

        occupied = [entry for entry in summary.library if entry.total]
        if occupied:
            lines.append(("detail", self._library_table(summary.destination_root, occupied)))

        failures = [o for o in summary.outcomes if o.status is PlacementStatus.FAILED]
        if failures:
            lines.append(("error", "[red]Placement failures:[/red]"))
            for outcome in failures:
                lines.append(
                    (
                        "error",
                        f"  - {outcome.candidate.filename} [{outcome.category.value}]: "
                        f"{outcome.error_detail}",
                    )
                )
        if summary.failure_counts.get("space"):
            lines.append(
                (
                    "warning",
                    f"[yellow]{summary.failure_counts['space']} file(s) failed for lack of space "
                    f"under {summary.destination_root}; free space and re-run.[/yellow]",
                )
            )

        if summary.cancelled:
            lines.append(
                (
                    "warning",
                    f"[yellow]Run cancelled; {summary.not_dispatched} file(s) were not "
                    "processed.[/yellow]",
                )
            )
        elif summary.halted:
            lines.append(
                (
                    "warning",
                    f"[yellow]Halted after {summary.failed} failure(s); "
                    f"{summary.not_dispatched} file(s) were not processed.[/yellow]",
                )
            )

        metrics: dict[str, Any] = {
            "found": summary.total,
            "placed": summary.placed,
            "skipped": summary.skipped_exists,
            "failed": summary.failed,
        }
        if summary.not_dispatched:
            metrics["not_processed"] = summary.not_dispatched
        parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
        lines.append(
            (
                "summary",
                f"[green]Organization summary for {summary.destination_root}: {parts}.[/green]",
            )
        )
        lines.append(("summary", f"TOTAL MODELS ORGANIZED: {summary.grand_total}"))

        if summary.diagnostics is not None:
            lines.extend(self._diagnostic_lines(summary.diagnostics))
        return lines

    # Internal helpers -------------------------------------------------

    def _library_table(self, root: Path, entries: list[DirectoryInventory]) -> Table:
        table = Table(title=f"Model library at {root}")
        table.add_column("Directory")
        table.add_column("Models", justify="right")
        table.add_column("Files", justify="right")
        table.add_column("Symlinks", justify="right")
        table.add_column("Examples", overflow="fold")
        for entry in entries:
            examples = list(entry.samples)
            if entry.total > len(examples):
                examples.append(f"... and {entry.total - len(examples)} more")
            table.add_row(
                entry.directory.name,
                str(entry.total),
                str(entry.file_count),
                str(entry.link_count),
                "\n".join(examples),
            )
        return table

    def _diagnostic_lines(self, diagnostics: SourceDiagnostics) -> list[RenderedLine]:
        caches = ", ".join(diagnostics.cache_directories) or "none"
        return [
            ("warning", "[yellow]WARNING: No models were organized![/yellow]"),
            ("warning", f"  - Download directory: {diagnostics.root}"),
            ("warning", f"  - Directory exists: {'YES' if diagnostics.exists else 'NO'}"),
            ("warning", f"  - Files in directory: {diagnostics.file_count}"),
            ("warning", f"  - Model files found: {diagnostics.model_file_count}"),
            ("warning", f"  - Cache layout directories: {caches}"),
        ]


__all__ = ["RenderedLine", "StatisticsReporter"]
