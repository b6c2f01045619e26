"""Discovery of downloaded model files."""

from .discovery import CacheFlattener, parse_cache_identity, prune_empty_directories
from .models import CacheIdentity, Candidate, SourceDiagnostics, SourceKind

__all__ = [
    "CacheFlattener",
    "CacheIdentity",
    "Candidate",
    "SourceDiagnostics",
    "SourceKind",
    "parse_cache_identity",
    "prune_empty_directories",
]
