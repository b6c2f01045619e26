"""Run statistics and reports."""

from .models import DirectoryInventory, RunSummary
from .reporter import RenderedLine, StatisticsReporter

__all__ = ["DirectoryInventory", "RenderedLine", "RunSummary", "StatisticsReporter"]
