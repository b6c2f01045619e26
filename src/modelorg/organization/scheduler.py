"""Batch scheduling of placements over a bounded worker pool."""

from __future__ import annotations

import logging
import os
import signal
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional, Sequence

from modelorg.classification.models import Category
from modelorg.ingestion.models import Candidate

from .models import FailureKind, PlacementOutcome, PlacementStatus
from .placement import PlacementEngine

LOGGER = logging.getLogger(__name__)

Assignment = tuple[Candidate, Category]


@dataclass(slots=True)
class BatchProgress:
    """Progress snapshot emitted after each completed batch.

    Attributes:
        completed_batches: Batches finished so far.
        batch_count: Total batches in the run.
        processed: Candidates processed so far.
        total: Candidates in the run.
        batch_outcomes: Outcomes of the batch that just finished.
        elapsed_seconds: Wall time since the run started.
        eta_seconds: Estimated remaining time, when it can be computed.
    """

    completed_batches: int
    batch_count: int
    processed: int
    total: int
    batch_outcomes: list[PlacementOutcome]
    elapsed_seconds: float
    eta_seconds: Optional[float]


@dataclass(slots=True)
class SchedulerResult:
    """Merged result of a scheduler run.

    Attributes:
        outcomes: Outcomes in completion order.
        not_dispatched: Assignments left unplaced because the run stopped early.
        cancelled: Whether the run was cancelled.
        halted: Whether dispatching stopped after reaching the failure threshold.
        workers: Worker count used; 1 means sequential.
        batch_count: Number of batches the run was partitioned into.
    """

    outcomes: list[PlacementOutcome] = field(default_factory=list)
    not_dispatched: list[Assignment] = field(default_factory=list)
    cancelled: bool = False
    halted: bool = False
    workers: int = 1
    batch_count: int = 0

    @property
    def failed_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is PlacementStatus.FAILED)


def partition(assignments: Sequence[Assignment], batch_size: int) -> list[list[Assignment]]:
    """Split assignments into consecutive batches of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [
        list(assignments[start : start + batch_size])
        for start in range(0, len(assignments), batch_size)
    ]


def _threads_available() -> bool:
    probe = threading.Thread(target=lambda: None, daemon=True)
    try:
        probe.start()
    except RuntimeError:
        return False
    probe.join()
    return True


class BatchScheduler:
    """Run placements batch by batch, concurrently where the host allows.

    Each batch is owned by exactly one worker and builds its own outcome
    list; lists are merged only in the dispatching thread. Failures never
    stop a batch. Cancellation and the optional failure threshold only stop
    dispatching: batches already running always finish. An interrupt raised
    inside a batch ends it early and reports the rest of it as not dispatched.
    """

    def __init__(
        self,
        engine: PlacementEngine,
        *,
        batch_size: int = 10,
        max_workers: Optional[int] = None,
        halt_after_failures: Optional[int] = None,
        on_batch: Optional[Callable[[BatchProgress], None]] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.engine = engine
        self.batch_size = batch_size
        self.workers = max(1, max_workers or os.cpu_count() or 1)
        self.halt_after_failures = halt_after_failures
        self.on_batch = on_batch
        self._cancel_event = threading.Event()

    def cancel(self) -> None:
        """Stop dispatching new batches; running batches finish."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run(self, assignments: Iterable[Assignment]) -> SchedulerResult:
        """Place every classified candidate.

        Args:
            assignments: ``(candidate, category)`` pairs from the classifier.

        Returns:
            SchedulerResult: Outcomes plus anything left undispatched.
        """
        ordered = list(assignments)
        batches = deque(partition(ordered, self.batch_size))
        result = SchedulerResult(batch_count=len(batches))
        run = _RunClock(total=len(ordered), batch_count=len(batches))

        parallel = self.workers > 1 and len(batches) > 1
        if parallel and not _threads_available():
            LOGGER.warning("Threads unavailable; falling back to sequential processing.")
            parallel = False

        try:
            if parallel:
                result.workers = min(self.workers, len(batches))
                self._run_parallel(batches, result, run)
            else:
                self._run_sequential(batches, result, run)
        except KeyboardInterrupt:
            LOGGER.warning("Interrupted; no further batches will be dispatched.")
            self._cancel_event.set()

        for batch in batches:
            result.not_dispatched.extend(batch)
        result.cancelled = self._cancel_event.is_set()
        if result.not_dispatched and not result.cancelled:
            result.halted = True
        return result

    # Internal helpers -------------------------------------------------

    def _run_sequential(
        self, batches: deque[list[Assignment]], result: SchedulerResult, run: "_RunClock"
    ) -> None:
        while batches and not self._should_stop(result):
            batch = batches.popleft()
            self._collect(self._run_batch(batch), result, run)

    def _run_parallel(
        self, batches: deque[list[Assignment]], result: SchedulerResult, run: "_RunClock"
    ) -> None:
        in_flight: set[Future[_BatchRun]] = set()
        with ThreadPoolExecutor(
            max_workers=result.workers, thread_name_prefix="modelorg-batch"
        ) as pool:
            try:
                while batches or in_flight:
                    while (
                        batches
                        and len(in_flight) < result.workers
                        and not self._should_stop(result)
                    ):
                        in_flight.add(pool.submit(self._run_batch, batches.popleft()))
                    if not in_flight:
                        break
                    done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        self._collect(future.result(), result, run)
            except KeyboardInterrupt:
                self._cancel_event.set()
                LOGGER.warning("Interrupted; waiting for %d running batch(es).", len(in_flight))
                for future in in_flight:
                    self._collect(future.result(), result, run)

    def _run_batch(self, batch: list[Assignment]) -> "_BatchRun":
        batch_run = _BatchRun()
        outcomes = batch_run.outcomes
        for index, (candidate, category) in enumerate(batch):
            try:
                outcomes.append(self.engine.place(candidate, category))
            except Exception as exc:  # pragma: no cover
                LOGGER.exception("Unexpected error placing %s", candidate.source_path)
                outcomes.append(
                    PlacementOutcome.failed(
                        candidate,
                        category,
                        self.engine.destination_for(candidate, category),
                        FailureKind.IO,
                        f"unexpected error: {exc}",
                    )
                )
            except KeyboardInterrupt:
                LOGGER.warning(
                    "Interrupted while placing %s; %d file(s) left unprocessed.",
                    candidate.filename,
                    len(batch) - index,
                )
                self._cancel_event.set()
                batch_run.interrupted = list(batch[index:])
                break
        return batch_run

    def _should_stop(self, result: SchedulerResult) -> bool:
        if self._cancel_event.is_set():
            return True
        threshold = self.halt_after_failures
        return threshold is not None and result.failed_count >= threshold

    def _collect(self, batch: "_BatchRun", result: SchedulerResult, run: "_RunClock") -> None:
        result.outcomes.extend(batch.outcomes)
        result.not_dispatched.extend(batch.interrupted)
        progress = run.advance(batch.outcomes)
        LOGGER.info(
            "Batch %d/%d done: %d/%d processed, %.1fs elapsed",
            progress.completed_batches,
            progress.batch_count,
            progress.processed,
            progress.total,
            progress.elapsed_seconds,
        )
        if self.on_batch is not None:
            self.on_batch(progress)


@dataclass(slots=True)
class _BatchRun:
    """Outcomes of one batch plus the assignments an interrupt left unprocessed."""

    outcomes: list[PlacementOutcome] = field(default_factory=list)
    interrupted: list[Assignment] = field(default_factory=list)


class _RunClock:
    """Tracks completion counts and timing for progress reporting."""

    def __init__(self, *, total: int, batch_count: int) -> None:
        self.total = total
        self.batch_count = batch_count
        self.completed_batches = 0
        self.processed = 0
        self.started = time.monotonic()

    def advance(self, outcomes: list[PlacementOutcome]) -> BatchProgress:
        self.completed_batches += 1
        self.processed += len(outcomes)
        elapsed = time.monotonic() - self.started
        eta = None
        if self.processed:
            eta = elapsed / self.processed * (self.total - self.processed)
        return BatchProgress(
            completed_batches=self.completed_batches,
            batch_count=self.batch_count,
            processed=self.processed,
            total=self.total,
            batch_outcomes=outcomes,
            elapsed_seconds=elapsed,
            eta_seconds=eta,
        )


@contextmanager
def cancel_on_signals(
    scheduler: BatchScheduler, signals: Sequence[int] = (signal.SIGTERM, signal.SIGINT)
) -> Iterator[BatchScheduler]:
    """Cancel ``scheduler`` when one of ``signals`` arrives inside the block.

    Previous handlers are restored on exit. Outside the main thread this is
    a no-op because handlers can only be installed there.
    """
    if threading.current_thread() is not threading.main_thread():
        yield scheduler
        return

    def _handler(signum: int, _frame: object) -> None:
        LOGGER.warning("Received signal %d; cancelling after running batches.", signum)
        scheduler.cancel()

    previous = {signum: signal.signal(signum, _handler) for signum in signals}
    try:
        yield scheduler
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


__all__ = [
    "Assignment",
    "BatchProgress",
    "BatchScheduler",
    "SchedulerResult",
    "cancel_on_signals",
    "partition",
]
