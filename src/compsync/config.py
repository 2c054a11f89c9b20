"""Settings for the compsync CLI.

Settings are layered, later layers winning:

1. Defaults on ``Settings``.
2. A YAML file: ``compsync.yaml`` in the working directory, or the path
   given with ``--config``.
3. ``COMPSYNC_*`` environment variables (e.g. ``COMPSYNC_CONCURRENCY=8``).
4. Explicit CLI options, applied by the command via ``Settings.override``.

Example ``compsync.yaml``::

    registry_url: https://registry.example.com/v1
    components_dir: src/components
    concurrency: 8
    max_retries: 2
    retry_delay: 0.5
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from compsync.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "compsync.yaml"
ENV_PREFIX = "COMPSYNC_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Resolved configuration.

    Attributes:
        registry_url: Registry base URL, ``file://`` URL, or directory.
        components_dir: Directory components are installed into.
        state_file: Sync state file location.
        cache_dir: On-disk registry cache directory, or None for memory only.
        cache_ttl: Registry cache TTL in seconds (0 disables caching).
        concurrency: Parallel fetches and installs.
        max_retries: Extra install attempts per component.
        retry_delay: Base backoff delay in seconds between attempts.
        continue_on_error: Keep going after a component fails.
        timeout: Seconds before an install run is cancelled, or None.
        http_timeout: Per-request HTTP timeout in seconds.
    """

    registry_url: str = "https://registry.compsync.dev"
    components_dir: str = "components"
    state_file: str = ".compsync-state.json"
    cache_dir: str | None = None
    cache_ttl: float = 3600.0
    concurrency: int = 5
    max_retries: int = 2
    retry_delay: float = 0.0
    continue_on_error: bool = True
    timeout: float | None = None
    http_timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.registry_url:
            raise ConfigError("registry_url must not be empty")
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_retries < 0:
            raise ConfigError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.retry_delay < 0:
            raise ConfigError(f"retry_delay must be >= 0, got {self.retry_delay}")
        if self.cache_ttl < 0:
            raise ConfigError(f"cache_ttl must be >= 0, got {self.cache_ttl}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError(f"timeout must be > 0, got {self.timeout}")
        if self.http_timeout <= 0:
            raise ConfigError(f"http_timeout must be > 0, got {self.http_timeout}")

    def override(self, **values: Any) -> Settings:
        """Return a copy with every non-None value in ``values`` applied."""
        changes = {k: v for k, v in values.items() if v is not None}
        if not changes:
            return self
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        return dataclasses.replace(self, **changes)


def _coerce(name: str, raw: Any, annotation: str) -> Any:
    """Convert a YAML or environment value to the type of setting ``name``."""
    if raw is None:
        if "None" in annotation:
            return None
        raise ConfigError(f"{name} must not be null")
    try:
        if annotation.startswith("bool"):
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(f"not a boolean: {raw!r}")
        if annotation.startswith("int"):
            if isinstance(raw, bool):
                raise ValueError(f"not an integer: {raw!r}")
            return int(raw)
        if annotation.startswith("float"):
            if isinstance(raw, str) and "None" in annotation and raw.strip().lower() in ("", "none"):
                return None
            return float(raw)
        return str(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {exc}") from exc


def _apply(settings: Settings, values: Mapping[str, Any], source: str) -> Settings:
    types = {f.name: str(f.type) for f in fields(Settings)}
    changes: dict[str, Any] = {}
    for key, raw in values.items():
        if key not in types:
            raise ConfigError(f"Unknown setting {key!r} in {source}")
        changes[key] = _coerce(key, raw, types[key])
    return dataclasses.replace(settings, **changes)


def load_settings(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Build ``Settings`` from a YAML file and the environment.

    Args:
        path: Explicit config file. Must exist when given. When omitted,
            ``compsync.yaml`` in the working directory is used if present.
        env: Environment mapping (defaults to ``os.environ``).

    Returns:
        The resolved settings.

    Raises:
        ConfigError: If the file is unreadable, not a YAML mapping, or
            contains unknown keys or invalid values.
    """
    env = os.environ if env is None else env
    settings = Settings()

    config_path = path if path is not None else Path(DEFAULT_CONFIG_FILE)
    if path is not None or config_path.is_file():
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigError(f"Cannot read config {config_path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config {config_path} must be a mapping")
        settings = _apply(settings, data, str(config_path))
        logger.debug("Loaded settings from %s", config_path)

    known = {f.name for f in fields(Settings)}
    env_values = {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in env.items()
        if key.startswith(ENV_PREFIX) and key[len(ENV_PREFIX):].lower() in known
    }
    if env_values:
        settings = _apply(settings, env_values, "environment")
    return settings
