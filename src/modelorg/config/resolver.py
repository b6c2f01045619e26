"""Configuration resolution helpers."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import ModelorgConfig


def resolve_with_precedence(
    *,
    defaults: ModelorgConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> ModelorgConfig:
    """Merge configuration layers; later layers win.

    Layers apply in the order defaults, file, environment, CLI. Keys may be
    nested mappings or dotted paths such as ``scheduler.batch_size``. CLI
    entries whose value is ``None`` are treated as "not provided".

    Raises:
        ConfigError: If a layer is malformed or the merged result is invalid.
    """
    merged = defaults.model_dump(mode="python")
    layers = (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", _drop_unset(cli_overrides)),
    )
    for name, layer in layers:
        if not layer:
            continue
        merged = _deep_merge(merged, _expand_dotted(layer, source_name=name))

    try:
        return ModelorgConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def flatten_for_env(config: ModelorgConfig) -> Dict[str, str]:
    """Render the config as ``MODELORG__SECTION__KEY`` environment assignments."""
    flat: Dict[str, str] = {}
    for section, values in config.model_dump(mode="python").items():
        for key, value in values.items():
            env_key = f"MODELORG__{section.upper()}__{key.upper()}"
            if isinstance(value, list):
                flat[env_key] = yaml.safe_dump(value, default_flow_style=True).strip()
            else:
                flat[env_key] = "null" if value is None else str(value)
    return flat


def _drop_unset(overrides: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if overrides is None:
        return None
    return {key: value for key, value in overrides.items() if value is not None}


def _expand_dotted(source: Mapping[str, Any], *, source_name: str) -> dict[str, Any]:
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{source_name.capitalize()} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str):
            raise ConfigError(f"{source_name.capitalize()} override keys must be strings.")
        if isinstance(value, MappingABC):
            value = _expand_dotted(value, source_name=source_name)
        *parents, leaf = key.split(".")
        node = expanded
        for segment in parents:
            child = node.setdefault(segment, {})
            if not isinstance(child, dict):
                raise ConfigError(
                    f"{source_name.capitalize()} override for {key} conflicts with existing value."
                )
            node = child
        if isinstance(value, dict) and isinstance(node.get(leaf), dict):
            node[leaf] = _deep_merge(node[leaf], value)
        else:
            node[leaf] = value
    return expanded


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = ["resolve_with_precedence", "flatten_for_env"]
