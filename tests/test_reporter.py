"""Tests for run statistics and the final report."""

from __future__ import annotations

import os
from pathlib import Path

from rich.table import Table

from modelorg.classification import Category
from modelorg.ingestion import CacheFlattener
from modelorg.ingestion.models import Candidate
from modelorg.organization import BatchScheduler, PlacementEngine, SchedulerResult
from modelorg.reporting import StatisticsReporter


def _library(tmp_path: Path) -> Path:
    root = tmp_path / "library"
    for directory in ("checkpoints", "loras"):
        (root / directory).mkdir(parents=True)
    return root


def _texts(lines) -> list[str]:
    return [text for _mode, text in lines if isinstance(text, str)]


def test_inventory_counts_files_and_links(tmp_path: Path) -> None:
    root = _library(tmp_path)
    target = tmp_path / "weights.safetensors"
    target.write_bytes(b"w")
    (root / "checkpoints" / "b.safetensors").write_bytes(b"w")
    (root / "checkpoints" / "a.ckpt").write_bytes(b"w")
    (root / "checkpoints" / "notes.txt").write_text("skip", encoding="utf-8")
    (root / "checkpoints" / ".c.safetensors.1a2b.partial").write_bytes(b"w")
    os.symlink(target, root / "checkpoints" / "c.safetensors")
    os.symlink(target, root / "checkpoints" / "d.safetensors")

    inventory = {entry.category: entry for entry in StatisticsReporter(root).inventory()}

    checkpoints = inventory["checkpoint"]
    assert checkpoints.file_count == 2
    assert checkpoints.link_count == 2
    assert checkpoints.total == 4
    assert checkpoints.samples == ["a.ckpt", "b.safetensors", "c.safetensors"]
    assert inventory["lora"].total == 0
    assert len(inventory) == len(Category)


def test_summary_counts_and_grand_total(tmp_path: Path) -> None:
    root = _library(tmp_path)
    (root / "loras" / "older.safetensors").write_bytes(b"w")
    source = tmp_path / "downloads"
    source.mkdir()
    present = source / "model_a.safetensors"
    present.write_bytes(b"abc")
    assignments = [
        (Candidate(source_path=present, size_bytes=3), Category.CHECKPOINT),
        (Candidate(source_path=source / "gone.safetensors", size_bytes=3), Category.CHECKPOINT),
    ]
    result = BatchScheduler(PlacementEngine(root), max_workers=1).run(assignments)

    summary = StatisticsReporter(root).summarize(source_root=source, total=2, result=result)

    assert (summary.placed, summary.skipped_exists, summary.failed) == (1, 0, 1)
    assert summary.conserved
    assert summary.category_counts == {"checkpoint": 1}
    assert summary.method_counts == {"symlink": 1}
    assert summary.failure_counts == {"source": 1}
    # Includes the file already present from an earlier run.
    assert summary.grand_total == 2
    assert summary.diagnostics is None


def test_diagnostics_only_for_non_empty_source(tmp_path: Path) -> None:
    root = tmp_path / "library"
    source = tmp_path / "downloads"
    source.mkdir()
    reporter = StatisticsReporter(root)
    diagnose = CacheFlattener().diagnose

    empty = reporter.summarize(
        source_root=source, total=0, result=SchedulerResult(), diagnose=diagnose
    )
    assert empty.diagnostics is None

    (source / "readme.txt").write_text("hello", encoding="utf-8")
    populated = reporter.summarize(
        source_root=source, total=0, result=SchedulerResult(), diagnose=diagnose
    )
    assert populated.diagnostics is not None
    assert populated.diagnostics.file_count == 1

    texts = _texts(reporter.render(populated))
    assert "[yellow]WARNING: No models were organized![/yellow]" in texts
    assert "  - Files in directory: 1" in texts
    assert not any(text.startswith("[yellow]Nothing to organize") for text in texts)


def test_render_empty_source(tmp_path: Path) -> None:
    reporter = StatisticsReporter(tmp_path / "library")
    summary = reporter.summarize(
        source_root=tmp_path / "downloads", total=0, result=SchedulerResult()
    )

    texts = _texts(reporter.render(summary))

    assert texts[0].startswith("[yellow]Nothing to organize in")
    assert texts[-1] == "TOTAL MODELS ORGANIZED: 0"


def test_render_reports_library_and_failures(tmp_path: Path) -> None:
    root = _library(tmp_path)
    source = tmp_path / "downloads"
    source.mkdir()
    present = source / "model_a.safetensors"
    present.write_bytes(b"abc")
    assignments = [
        (Candidate(source_path=present, size_bytes=3), Category.LORA),
        (Candidate(source_path=source / "gone.safetensors", size_bytes=3), Category.LORA),
    ]
    result = BatchScheduler(PlacementEngine(root), max_workers=1).run(assignments)
    reporter = StatisticsReporter(root)

    lines = reporter.render(reporter.summarize(source_root=source, total=2, result=result))

    tables = [text for _mode, text in lines if isinstance(text, Table)]
    assert len(tables) == 1
    assert tables[0].row_count == 1
    texts = _texts(lines)
    assert "[red]Placement failures:[/red]" in texts
    assert "  - gone.safetensors [lora]: source vanished" in texts
    assert (
        f"[green]Organization summary for {root}: found=2, placed=1, skipped=0, failed=1.[/green]"
        in texts
    )
    assert texts[-1] == "TOTAL MODELS ORGANIZED: 1"


def test_render_halted_run(tmp_path: Path) -> None:
    root = tmp_path / "library"
    source = tmp_path / "downloads"
    source.mkdir()
    assignments = [
        (Candidate(source_path=source / f"gone_{i}.safetensors", size_bytes=1), Category.VAE)
        for i in range(4)
    ]
    result = BatchScheduler(
        PlacementEngine(root), batch_size=1, max_workers=1, halt_after_failures=2
    ).run(assignments)
    reporter = StatisticsReporter(root)

    summary = reporter.summarize(source_root=source, total=4, result=result)
    texts = _texts(reporter.render(summary))

    assert summary.halted
    assert summary.not_dispatched == 2
    assert summary.conserved
    assert "[yellow]Halted after 2 failure(s); 2 file(s) were not processed.[/yellow]" in texts
    assert any("not_processed=2" in text for text in texts)
