"""Configuration models describing modelorg settings."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_EXTENSIONS = [".safetensors", ".ckpt", ".pt", ".pth", ".bin"]


class ModelorgBaseModel(BaseModel):
    """Shared configuration for modelorg Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class ClassificationSettings(ModelorgBaseModel):
    """Thresholds for the size-based classification fallback.

    Attributes:
        embedding_max_mb: Files without a keyword match below this size are embeddings.
        lora_max_mb: Files without a keyword match below this size are LoRAs.
    """

    embedding_max_mb: float = 50
    lora_max_mb: float = 500


class DiscoverySettings(ModelorgBaseModel):
    """Options governing how download trees are scanned.

    Attributes:
        extensions: File extensions treated as model weights.
        max_depth: Number of path components below the source root to descend.
        include_hidden: Whether hidden files and directories are scanned.
        prune_empty_dirs: Whether empty directories are removed from the source after a run.
    """

    extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    max_depth: int = Field(default=4, ge=1)
    include_hidden: bool = False
    prune_empty_dirs: bool = True

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: List[str]) -> List[str]:
        normalized = []
        for extension in value:
            extension = extension.strip().lower()
            if not extension:
                continue
            if not extension.startswith("."):
                extension = f".{extension}"
            normalized.append(extension)
        return list(dict.fromkeys(normalized))


class PlacementSettings(ModelorgBaseModel):
    """Settings for materializing files in the destination tree.

    Attributes:
        destination_root: Root containing one directory per model category.
        strategies: Placement methods to attempt, in order.
    """

    destination_root: str = "/ComfyUI/models"
    strategies: List[Literal["symlink", "hardlink", "copy"]] = Field(
        default_factory=lambda: ["symlink", "copy"], min_length=1
    )


class SchedulerSettings(ModelorgBaseModel):
    """Batch scheduling options.

    Attributes:
        batch_size: Number of files handed to a worker at a time.
        max_workers: Worker count; ``None`` uses the host CPU count.
        halt_after_failures: Stop dispatching batches after this many failures.
    """

    batch_size: int = Field(default=10, ge=1)
    max_workers: Optional[int] = Field(default=None, ge=1)
    halt_after_failures: Optional[int] = Field(default=None, ge=1)


class LoggingSettings(ModelorgBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Optional log file path; enables a rotating file handler.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: Optional[str] = None
    max_size_mb: int = 100
    backup_count: int = 5


class CLIOptions(ModelorgBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
    """

    quiet_default: bool = False
    summary_default: bool = False


class ModelorgConfig(ModelorgBaseModel):
    """Top-level configuration struct for modelorg.

    Attributes:
        classification: Size fallback thresholds.
        discovery: Source scanning settings.
        placement: Destination layout and placement strategies.
        scheduler: Batch and worker settings.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    classification: ClassificationSettings = Field(default_factory=ClassificationSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    placement: PlacementSettings = Field(default_factory=PlacementSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "DEFAULT_EXTENSIONS",
    "ModelorgBaseModel",
    "ClassificationSettings",
    "DiscoverySettings",
    "PlacementSettings",
    "SchedulerSettings",
    "LoggingSettings",
    "CLIOptions",
    "ModelorgConfig",
]
