"""Classification of model files into categories."""

from .engine import ModelClassifier, classify
from .models import CATEGORY_DIRECTORIES, DEFAULT_RULES, Category, MatchRule

__all__ = [
    "CATEGORY_DIRECTORIES",
    "DEFAULT_RULES",
    "Category",
    "MatchRule",
    "ModelClassifier",
    "classify",
]
