"""Supascale configuration -- layered: CLI flags > env vars > config file > defaults."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

from supascale.errors import ConfigError

logger = logging.getLogger("supascale.config")

DEFAULT_REGISTRY_FILE = "~/.supabase_multi_manager.json"
DEFAULT_CONFIG_FILE = "~/.config/supascale/supascale.env"
DEFAULT_REPO_URL = "https://github.com/supabase/supabase"
DEFAULT_BASE_PORT = 54321

_TRUTHY = ("true", "1", "yes", "on")


def _load_config_file() -> dict[str, str]:
    """Read the optional dotenv-style config file.

    The file is located through ``SUPASCALE_CONFIG_FILE`` and does NOT get
    injected into ``os.environ``; only ``SUPASCALE_*`` keys are consulted.
    """
    path = Path(os.environ.get("SUPASCALE_CONFIG_FILE", DEFAULT_CONFIG_FILE)).expanduser()
    if not path.is_file():
        return {}
    values = {k: v for k, v in dotenv_values(path).items() if v is not None}
    logger.debug("Loaded %d vars from %s", len(values), path)
    return values


# Module-level cache so the file is read at most once per process.
_file_values: dict[str, str] | None = None


def _get_file_values() -> dict[str, str]:
    global _file_values
    if _file_values is None:
        _file_values = _load_config_file()
    return _file_values


def _env(key: str, default: str = "") -> str:
    """Look up a config value: environment > config file > default."""
    val = os.environ.get(key)
    if val:
        return val
    val = _get_file_values().get(key)
    if val:
        return val
    return default


def _int(key: str, default: int) -> int:
    raw = _env(key, default=str(default))
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}.") from None


def _optional_float(key: str) -> float | None:
    raw = _env(key)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number of seconds, got {raw!r}.") from None


@dataclass
class SupascaleConfig:
    """Runtime settings for one Supascale invocation."""

    registry_file: Path = field(
        default_factory=lambda: Path(
            _env("SUPASCALE_REGISTRY_FILE", default=DEFAULT_REGISTRY_FILE)
        ).expanduser()
    )
    projects_root: Path = field(
        default_factory=lambda: Path(
            _env("SUPASCALE_PROJECTS_ROOT", default="~")
        ).expanduser()
    )
    base_port: int = field(
        default_factory=lambda: _int("SUPASCALE_BASE_PORT", DEFAULT_BASE_PORT)
    )

    # Platform checkout
    repo_url: str = field(
        default_factory=lambda: _env("SUPASCALE_REPO_URL", default=DEFAULT_REPO_URL)
    )
    clone_depth: int = field(
        default_factory=lambda: _int("SUPASCALE_CLONE_DEPTH", 1)
    )

    # Container runtime
    use_sudo: bool = field(
        default_factory=lambda: _env("SUPASCALE_USE_SUDO").lower() in _TRUTHY
    )
    command_timeout: float | None = field(
        default_factory=lambda: _optional_float("SUPASCALE_COMMAND_TIMEOUT")
    )

    # Logging
    log_level: str = field(
        default_factory=lambda: _env("SUPASCALE_LOG_LEVEL", default="WARNING")
    )
    log_file: str | None = field(
        default_factory=lambda: _env("SUPASCALE_LOG_FILE") or None
    )

    def project_directory(self, project_id: str) -> Path:
        """Absolute directory a new project with *project_id* is created in."""
        return (self.projects_root / project_id).resolve()


# Singleton for convenience
_config: SupascaleConfig | None = None


def get_config() -> SupascaleConfig:
    """Get or create the global Supascale configuration."""
    global _config
    if _config is None:
        _config = SupascaleConfig()
    return _config


def reset_config() -> None:
    """Reset the global configuration and config-file cache (for testing)."""
    global _config, _file_values
    _config = None
    _file_values = None
