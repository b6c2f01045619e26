"""Placement of classified model files and batch scheduling."""

from .errors import OrganizationError, SetupError
from .models import FailureKind, PlacementMethod, PlacementOutcome, PlacementStatus
from .placement import PlacementEngine
from .scheduler import BatchProgress, BatchScheduler, SchedulerResult, cancel_on_signals, partition

__all__ = [
    "BatchProgress",
    "BatchScheduler",
    "FailureKind",
    "OrganizationError",
    "PlacementEngine",
    "PlacementMethod",
    "PlacementOutcome",
    "PlacementStatus",
    "SchedulerResult",
    "SetupError",
    "cancel_on_signals",
    "partition",
]
