"""Rule-based classifier mapping downloaded files to model categories.

Explicit naming wins over size: the lower-cased path (directory components
included) is checked against the ordered keyword rules first, and only files
that match no rule fall back to size thresholds.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from modelorg.config.models import ClassificationSettings
from modelorg.ingestion.models import Candidate

from .models import DEFAULT_RULES, Category, MatchRule

LOGGER = logging.getLogger(__name__)

_MEGABYTE = 1024 * 1024


class ModelClassifier:
    """Pure, deterministic classifier over candidates."""

    def __init__(
        self,
        *,
        embedding_max_bytes: int = 50 * _MEGABYTE,
        lora_max_bytes: int = 500 * _MEGABYTE,
        rules: Sequence[MatchRule] = DEFAULT_RULES,
    ) -> None:
        if embedding_max_bytes > lora_max_bytes:
            raise ValueError("embedding threshold must not exceed the LoRA threshold")
        self._embedding_max_bytes = embedding_max_bytes
        self._lora_max_bytes = lora_max_bytes
        self._rules = tuple(rules)

    @classmethod
    def from_settings(cls, settings: ClassificationSettings) -> "ModelClassifier":
        """Build a classifier using configured size thresholds.

        Args:
            settings: Classification section of the loaded configuration.

        Returns:
            ModelClassifier: Classifier honoring the configured thresholds.
        """
        return cls(
            embedding_max_bytes=int(settings.embedding_max_mb * _MEGABYTE),
            lora_max_bytes=int(settings.lora_max_mb * _MEGABYTE),
        )

    def classify(self, candidate: Candidate) -> Category:
        """Return the category for ``candidate``.

        Args:
            candidate: Discovered file to classify.

        Returns:
            Category: First matching keyword category, else the size fallback.
        """
        return self.classify_path(str(candidate.source_path), candidate.size_bytes)

    def classify_path(self, path: str, size_bytes: Optional[int] = None) -> Category:
        """Classify a raw path and optional size."""
        lowered = path.lower()
        for rule in self._rules:
            if rule.matches(lowered):
                return rule.category
        return self._by_size(size_bytes)

    def classify_many(self, candidates: Iterable[Candidate]) -> list[tuple[Candidate, Category]]:
        """Classify each candidate, preserving input order."""
        pairs = []
        for candidate in candidates:
            category = self.classify(candidate)
            LOGGER.debug("Classified %s as %s", candidate.source_path, category.value)
            pairs.append((candidate, category))
        return pairs

    def _by_size(self, size_bytes: Optional[int]) -> Category:
        if size_bytes is None or size_bytes < 0:
            return Category.CHECKPOINT
        if size_bytes < self._embedding_max_bytes:
            return Category.EMBEDDING
        if size_bytes < self._lora_max_bytes:
            return Category.LORA
        return Category.CHECKPOINT


_DEFAULT_CLASSIFIER = ModelClassifier()


def classify(candidate: Candidate) -> Category:
    """Classify ``candidate`` with the default thresholds."""
    return _DEFAULT_CLASSIFIER.classify(candidate)
