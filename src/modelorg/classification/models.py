"""Model categories and the rules that select them."""

from __future__ import annotations

from enum import Enum
from typing import Tuple

from pydantic import BaseModel, ConfigDict


class Category(str, Enum):
    """Semantic model type; each maps to one destination directory."""

    CHECKPOINT = "checkpoint"
    LORA = "lora"
    VAE = "vae"
    CLIP = "clip"
    UNET = "unet"
    CONTROLNET = "controlnet"
    EMBEDDING = "embedding"
    UPSCALER = "upscaler"

    @property
    def directory(self) -> str:
        """Return the destination directory name for the category."""
        return CATEGORY_DIRECTORIES[self]


CATEGORY_DIRECTORIES: dict[Category, str] = {
    Category.CHECKPOINT: "checkpoints",
    Category.LORA: "loras",
    Category.VAE: "vae",
    Category.CLIP: "clip",
    Category.UNET: "unet",
    Category.CONTROLNET: "controlnet",
    Category.EMBEDDING: "embeddings",
    Category.UPSCALER: "upscale_models",
}


class MatchRule(BaseModel):
    """Keyword rule; matches when any keyword occurs in the lower-cased path.

    Attributes:
        category: Category assigned on a match.
        keywords: Lower-case substrings to search for.
    """

    model_config = ConfigDict(frozen=True)

    category: Category
    keywords: Tuple[str, ...]

    def matches(self, lowered_path: str) -> bool:
        """Return True when any keyword occurs in ``lowered_path``."""
        return any(keyword in lowered_path for keyword in self.keywords)


# Evaluated top to bottom; the first match wins.
DEFAULT_RULES: Tuple[MatchRule, ...] = (
    MatchRule(category=Category.LORA, keywords=("lora", "lycoris", "adapter")),
    MatchRule(category=Category.EMBEDDING, keywords=("embedding", "textual_inversion", "ti_")),
    MatchRule(category=Category.CONTROLNET, keywords=("controlnet", "control_")),
    MatchRule(category=Category.UPSCALER, keywords=("upscaler", "esrgan", "realesrgan")),
    MatchRule(category=Category.VAE, keywords=("vae",)),
    MatchRule(category=Category.CLIP, keywords=("clip", "t5", "text_encoder")),
    MatchRule(category=Category.UNET, keywords=("flux", "unet", "dit", "transformer")),
)


__all__ = ["Category", "CATEGORY_DIRECTORIES", "MatchRule", "DEFAULT_RULES"]
