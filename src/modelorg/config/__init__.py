"""Configuration management for modelorg."""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import ModelorgConfig
from .resolver import flatten_for_env, resolve_with_precedence

DEFAULT_CONFIG_PATH = Path("~/.modelorg/config.yaml")
ENV_PREFIX = "MODELORG__"
_CONFIG_HEADER = textwrap.dedent(
    """\
    # modelorg configuration file
    # Generated with defaults on first run; `modelorg config view` shows effective values.
    """
)


class ConfigManager:
    """Read the YAML config file and layer environment and CLI overrides on top."""

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = env if env is not None else os.environ

    @property
    def config_path(self) -> Path:
        """Return the resolved configuration path."""
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
    ) -> ModelorgConfig:
        """Return the effective configuration.

        Args:
            cli_overrides: Dotted-key overrides collected from command options.
            include_env: Whether ``MODELORG__`` environment variables apply.
            ensure_file: Whether to write a default config file when none exists.

        Returns:
            ModelorgConfig: Validated configuration.

        Raises:
            ConfigError: If the file cannot be parsed or values fail validation.
        """
        if ensure_file:
            self.ensure_exists()

        env_data = self._extract_env(self._env) if include_env else None
        return resolve_with_precedence(
            defaults=ModelorgConfig(),
            file_overrides=self._read_file(),
            env_overrides=env_data or None,
            cli_overrides=cli_overrides,
        )

    def ensure_exists(self) -> Path:
        """Create a configuration file with defaults if one does not exist.

        A read-only home directory is tolerated; defaults are used instead.
        """
        path = self._config_path
        if path.exists():
            return path

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
            body = yaml.safe_dump(ModelorgConfig().model_dump(mode="python"), sort_keys=False)
            path.write_text(f"{_CONFIG_HEADER}# Created: {stamp}\n{body}", encoding="utf-8")
        except OSError:
            pass
        return path

    # Internal helpers -------------------------------------------------

    def _read_file(self) -> dict[str, Any]:
        if not self._config_path.exists():
            return {}

        try:
            raw = yaml.safe_load(self._config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(
                f"Failed to parse configuration file: {exc}", path=self._config_path
            ) from exc
        except OSError as exc:
            raise ConfigError(
                f"Failed to read configuration file: {exc}", path=self._config_path
            ) from exc

        if not isinstance(raw, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")

        return raw

    def _extract_env(self, env: Mapping[str, str]) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for key, raw_value in env.items():
            if not key.startswith(ENV_PREFIX):
                continue
            path = [segment.lower() for segment in key[len(ENV_PREFIX) :].split("__") if segment]
            if not path:
                continue
            try:
                parsed_value: Any = yaml.safe_load(raw_value)
            except yaml.YAMLError:
                parsed_value = raw_value

            node = overrides
            for segment in path[:-1]:
                child = node.get(segment)
                if not isinstance(child, dict):
                    child = {}
                    node[segment] = child
                node = child
            node[path[-1]] = parsed_value

        return overrides


__all__ = [
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "ENV_PREFIX",
    "ModelorgConfig",
    "resolve_with_precedence",
    "flatten_for_env",
    "ConfigError",
]
