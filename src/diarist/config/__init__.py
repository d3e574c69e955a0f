"""Configuration management for Diarist."""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import DiaristConfig, EditorSettings, ListSettings, LoggingSettings, RemoteSettings
from .resolver import ENV_PREFIX, assign_nested, resolve_with_precedence

CONFIG_FILENAME = "config.yaml"
HOME_ENV_VAR = "DIARIST_HOME"
_CONFIG_HEADER = textwrap.dedent(
    """\
    # Diarist configuration file
    # Manage via `diarist config edit` or `diarist config set`.
    """
)


def default_store_root(env: Mapping[str, str] | None = None) -> Path:
    """Return the store root from ``DIARIST_HOME`` or the XDG config directory."""
    env = env if env is not None else os.environ
    explicit = env.get(HOME_ENV_VAR)
    if explicit:
        return Path(explicit).expanduser()
    xdg = env.get("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path(env.get("HOME", "~")).expanduser() / ".config"
    return base / "diarist"


class ConfigManager:
    """Load and persist configuration data, applying precedence rules."""

    def __init__(
        self,
        config_path: Path,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = config_path.expanduser()
        self._env = env if env is not None else os.environ

    @classmethod
    def for_store(cls, root: Path, *, env: Mapping[str, str] | None = None) -> "ConfigManager":
        return cls(root / CONFIG_FILENAME, env=env)

    @property
    def config_path(self) -> Path:
        """Return the resolved configuration path."""
        return self._config_path

    def load(
        self,
        *,
        include_env: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> DiaristConfig:
        """Load configuration from disk, layering environment overrides."""
        env_data: Mapping[str, str] | None = None
        if include_env:
            env_data = env_overrides if env_overrides is not None else self._env

        return resolve_with_precedence(
            defaults=DiaristConfig(),
            file_overrides=self._read_file(),
            env_overrides=self._extract_env(env_data) if env_data else None,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return raw overrides stored on disk."""
        return self._read_file()

    def save(self, config: DiaristConfig | Mapping[str, Any]) -> None:
        """Persist configuration data to disk."""
        if isinstance(config, DiaristConfig):
            data = config.model_dump(mode="python")
        else:
            data = dict(config)
        self._write_file(data)

    def ensure_exists(self) -> Path:
        """Create a configuration file with defaults if one does not exist."""
        if not self._config_path.exists():
            self._write_file(DiaristConfig().model_dump(mode="python"))
        return self._config_path

    def read_text(self) -> str:
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")

    # Internal helpers -------------------------------------------------

    def _read_file(self) -> dict[str, Any]:
        if not self._config_path.exists():
            return {}

        try:
            raw = yaml.safe_load(self._config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc

        if not isinstance(raw, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")

        return raw

    def _write_file(self, data: Mapping[str, Any]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        serialized = yaml.safe_dump(dict(data), sort_keys=False)
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        self._config_path.write_text(
            f"{_CONFIG_HEADER}# Last updated: {stamp}\n{serialized}", encoding="utf-8"
        )

    def _extract_env(self, env: Mapping[str, str]) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for key, raw_value in env.items():
            if not key.startswith(ENV_PREFIX):
                continue
            path = [segment.lower() for segment in key[len(ENV_PREFIX) :].split("__") if segment]
            if not path:
                continue
            try:
                value: Any = yaml.safe_load(raw_value)
            except yaml.YAMLError:
                value = raw_value
            assign_nested(overrides, path, value)
        return overrides


__all__ = [
    "ConfigManager",
    "ConfigError",
    "CONFIG_FILENAME",
    "HOME_ENV_VAR",
    "DiaristConfig",
    "EditorSettings",
    "ListSettings",
    "LoggingSettings",
    "RemoteSettings",
    "default_store_root",
    "resolve_with_precedence",
    "assign_nested",
]
