"""Command line interface for modelorg."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from modelorg.classification import ModelClassifier
from modelorg.config import ConfigError, ConfigManager, flatten_for_env
from modelorg.config.models import LoggingSettings
from modelorg.ingestion import CacheFlattener, prune_empty_directories
from modelorg.organization import (
    BatchProgress,
    BatchScheduler,
    PlacementEngine,
    PlacementOutcome,
    PlacementStatus,
    SetupError,
    cancel_on_signals,
)
from modelorg.reporting import StatisticsReporter

DEFAULT_SOURCE = "/workspace/downloads"

console = Console()
_log_handlers: list[logging.Handler] = []


def _configure_logging(settings: LoggingSettings, verbose: int) -> None:
    """Attach console and optional rotating file handlers to the package logger.

    Args:
        settings: Logging section of the configuration.
        verbose: Number of ``-v`` flags; each lowers the console level one step.
    """
    logger = logging.getLogger("modelorg")
    for handler in _log_handlers:
        logger.removeHandler(handler)
        handler.close()
    _log_handlers.clear()

    level = logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    level = max(logging.DEBUG, level - 10 * verbose)

    console_handler = RichHandler(console=Console(stderr=True), show_path=False)
    console_handler.setLevel(level)
    _log_handlers.append(console_handler)

    logger_level = level
    if settings.file:
        log_path = Path(settings.file).expanduser()
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=settings.max_size_mb * 1024 * 1024,
                backupCount=settings.backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            console.print(f"[yellow]Unable to open log file {log_path}: {exc}[/yellow]")
        else:
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
            )
            _log_handlers.append(file_handler)
            logger_level = min(level, logging.INFO)

    for handler in _log_handlers:
        logger.addHandler(handler)
    logger.setLevel(logger_level)


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Conditionally print CLI output according to quiet/summary settings.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (`detail`, `summary`, `warning`, or `error`).
        quiet: Whether quiet mode is active.
        summary_only: Whether only summary lines should be emitted.
    """
    if quiet and mode != "error":
        return
    if summary_only and mode not in {"summary", "warning", "error"}:
        return
    console.print(message)


def _report_failure(
    message: str,
    *,
    code: str,
    json_output: bool,
    strict: bool,
    details: Any | None = None,
) -> None:
    """Report a run-level failure without failing the caller by default.

    The organizer runs as one step of a larger startup sequence, so the exit
    status stays 0 unless ``--strict`` was given.

    Raises:
        SystemExit: With status 1 when ``strict`` is set.
    """
    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
    else:
        label = "Organization failed" if code == "internal_error" else "Setup failed"
        console.print(f"[red]{label}: {message}[/red]")
    if strict:
        raise SystemExit(1)


def _format_outcome(outcome: PlacementOutcome) -> str:
    name = outcome.candidate.filename
    category = outcome.category.value
    target = f"{outcome.destination_path.parent.name}/{outcome.destination_path.name}"
    if outcome.status is PlacementStatus.PLACED:
        method = outcome.method.value if outcome.method else "?"
        return f"[green]Placed[/green] {name} -> {target} ({category}, {method})"
    if outcome.status is PlacementStatus.SKIPPED_EXISTS:
        return f"[cyan]Exists[/cyan] {name} -> {target} ({category}, skipped)"
    return f"[red]Failed[/red] {name} -> {target} ({category}): {outcome.error_detail}"


def _format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    size = size_bytes / 1024
    for unit in ("KB", "MB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="modelorg")
def cli() -> None:
    """Organize downloaded model weights into a per-category library."""


@cli.command()
@click.argument("source", required=False, default=DEFAULT_SOURCE, type=click.Path(path_type=str))
@click.option("--dest", type=click.Path(path_type=str), help="Destination library root.")
@click.option("--workers", type=click.IntRange(min=1), help="Number of parallel workers.")
@click.option("--batch-size", type=click.IntRange(min=1), help="Files handed to a worker at once.")
@click.option(
    "--halt-after",
    type=click.IntRange(min=1),
    help="Stop dispatching batches after this many failures.",
)
@click.option("--dry-run", is_flag=True, help="Show planned placements without touching files.")
@click.option("--json", "json_output", is_flag=True, help="Emit the run summary as JSON.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("--strict", is_flag=True, help="Exit with status 1 when setup fails.")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity.")
@click.pass_context
def organize(
    ctx: click.Context,
    source: str,
    dest: str | None,
    workers: int | None,
    batch_size: int | None,
    halt_after: int | None,
    dry_run: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
    strict: bool,
    verbose: int,
) -> None:
    """Classify model files under SOURCE and place them into the library.

    Per-file failures, a missing SOURCE and an empty result are reported but
    never change the exit status.

    Args:
        ctx: Click context used for parameter source inspection.
        source: Download directory to organize.
        dest: Destination library root override.
        workers: Worker count override.
        batch_size: Batch size override.
        halt_after: Failure threshold after which no new batches start.
        dry_run: If True, only print the planned placements.
        json_output: If True, emit the run summary as JSON.
        summary_mode: When True, limit output to summary lines and warnings.
        quiet: When True, suppress non-error CLI output entirely.
        strict: When True, setup failures exit with status 1.
        verbose: Log verbosity increments.
    """
    try:
        config = ConfigManager().load(
            cli_overrides={
                "placement.destination_root": dest,
                "scheduler.max_workers": workers,
                "scheduler.batch_size": batch_size,
                "scheduler.halt_after_failures": halt_after,
            }
        )
    except ConfigError as exc:
        _report_failure(str(exc), code="config_error", json_output=json_output, strict=strict)
        return

    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    explicit_summary = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE
    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
    summary_only = summary_mode if explicit_summary else config.cli.summary_default
    if json_output:
        quiet_enabled = False
        summary_only = False
    if quiet_enabled and summary_only:
        summary_only = False

    def emit(message: Any, mode: str = "detail") -> None:
        if json_output and mode != "json":
            return
        _emit_message(message, mode=mode, quiet=quiet_enabled, summary_only=summary_only)

    _configure_logging(config.logging, verbose)

    source_root = Path(source).expanduser().absolute()
    destination_root = Path(config.placement.destination_root).expanduser().absolute()
    flattener = CacheFlattener.from_settings(config.discovery)
    classifier = ModelClassifier.from_settings(config.classification)
    engine = PlacementEngine(destination_root, strategies=config.placement.strategies)
    reporter = StatisticsReporter(destination_root, extensions=config.discovery.extensions)

    try:
        emit(f"[cyan]Organizing model files from {source_root} into {destination_root}[/cyan]")
        if not source_root.is_dir():
            emit(
                f"[yellow]Download directory {source_root} does not exist.[/yellow]",
                mode="warning",
            )

        candidates = flattener.flatten(source_root)
        assignments = classifier.classify_many(candidates)

        if dry_run:
            plan = []
            for candidate, category in assignments:
                destination = engine.destination_for(candidate, category)
                plan.append(
                    {
                        "source": candidate.source_path.as_posix(),
                        "size_bytes": candidate.size_bytes,
                        "source_kind": candidate.source_kind.value,
                        "category": category.value,
                        "destination": destination.as_posix(),
                        "exists": os.path.lexists(destination),
                    }
                )
            if json_output:
                console.print_json(
                    data={
                        "context": {
                            "source_root": source_root.as_posix(),
                            "destination_root": destination_root.as_posix(),
                            "dry_run": True,
                        },
                        "plan": plan,
                    }
                )
                return
            table = Table(title=f"Planned placements for {source_root}")
            table.add_column("File", overflow="fold")
            table.add_column("Kind")
            table.add_column("Size", justify="right")
            table.add_column("Category")
            table.add_column("Destination", overflow="fold")
            for (candidate, _), entry in zip(assignments, plan):
                destination = Path(entry["destination"])
                table.add_row(
                    str(candidate.source_path.relative_to(source_root)),
                    entry["source_kind"],
                    _format_size(candidate.size_bytes),
                    entry["category"],
                    f"{destination.parent.name}/{destination.name}"
                    + (" (exists)" if entry["exists"] else ""),
                )
            emit(table)
            emit(
                f"[green]Dry run: {len(plan)} file(s) would be organized; no changes made.[/green]",
                mode="summary",
            )
            return

        engine.prepare()

        def _on_batch(progress: BatchProgress) -> None:
            for outcome in progress.batch_outcomes:
                emit(_format_outcome(outcome))
            eta = f"~{progress.eta_seconds:.0f}s" if progress.eta_seconds is not None else "?"
            emit(
                f"[dim]Progress: {progress.processed}/{progress.total} | "
                f"Elapsed: {progress.elapsed_seconds:.0f}s | Remaining: {eta}[/dim]"
            )

        scheduler = BatchScheduler(
            engine,
            batch_size=config.scheduler.batch_size,
            max_workers=config.scheduler.max_workers,
            halt_after_failures=config.scheduler.halt_after_failures,
            on_batch=_on_batch,
        )
        with cancel_on_signals(scheduler):
            result = scheduler.run(assignments)

        if config.discovery.prune_empty_dirs:
            prune_empty_directories(source_root)

        summary = reporter.summarize(
            source_root=source_root,
            total=len(candidates),
            result=result,
            diagnose=flattener.diagnose,
        )
    except SetupError as exc:
        _report_failure(str(exc), code="setup_error", json_output=json_output, strict=strict)
        return
    except Exception as exc:
        logging.getLogger(__name__).exception("Unexpected error while organizing models")
        _report_failure(
            f"Unexpected error while organizing models: {exc}",
            code="internal_error",
            json_output=json_output,
            strict=strict,
            details={"exception": type(exc).__name__},
        )
        return

    if json_output:
        console.print_json(data=summary.model_dump(mode="json"))
        return

    for mode, line in reporter.render(summary):
        emit(line, mode=mode)


@cli.group()
def config() -> None:
    """Inspect modelorg configuration."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
@click.option("--env", "as_env", is_flag=True, help="Render values as MODELORG__ variables.")
def config_view(no_env: bool, as_env: bool) -> None:
    """Display the effective configuration."""
    try:
        effective = ConfigManager().load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_env:
        for key, value in flatten_for_env(effective).items():
            console.print(f"{key}={value}", markup=False, highlight=False)
        return
    yaml_text = yaml.safe_dump(effective.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
