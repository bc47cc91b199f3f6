"""Tripwire engine configuration: Pydantic model and load."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from tripwire.core.constants import (
    CONFIG_FILENAME,
    DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
    DEFAULT_WORKERS,
    TRIPWIRE_DIR_NAME,
)
from tripwire.core.exceptions import ConfigError


def tripwire_dir() -> Path:
    """Return the user-level Tripwire directory (~/.tripwire). Not created here."""
    return Path.home() / TRIPWIRE_DIR_NAME


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {sorted(allowed)}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v.lower()


class EvaluationConfig(BaseModel):
    external_timeout_seconds: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS
    workers: int = DEFAULT_WORKERS
    # Overall deadline for one evaluation; None disables it.
    deadline_seconds: float | None = None

    @field_validator("external_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if not (0 < v <= 600):
            raise ValueError("external_timeout_seconds must be in (0, 600]")
        return v

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if not (1 <= v <= 64):
            raise ValueError("workers must be between 1 and 64")
        return v

    @field_validator("deadline_seconds")
    @classmethod
    def validate_deadline(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("deadline_seconds must be positive")
        return v


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class TripwireConfig(BaseModel):
    """Root Tripwire configuration model. Every field has a safe default."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def _config_file_path() -> Path:
    if env_path := os.environ.get("TRIPWIRE_CONFIG"):
        return Path(env_path).expanduser()
    return tripwire_dir() / CONFIG_FILENAME


def load_config(path: Path | None = None) -> TripwireConfig:
    """
    Load TripwireConfig from a TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (TRIPWIRE_*)
      2. Config file (~/.tripwire/config.toml)
      3. Built-in defaults

    A missing config file is not an error: the defaults apply.
    """
    import tomllib

    cfg_path = path or _config_file_path()

    data: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc

    _apply_env_overrides(data)

    try:
        return TripwireConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid config at {cfg_path}: {exc}") from exc


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay TRIPWIRE_* environment variables onto the parsed TOML data."""
    if level := os.environ.get("TRIPWIRE_LOG_LEVEL"):
        data.setdefault("logging", {})["level"] = level
    if fmt := os.environ.get("TRIPWIRE_LOG_FORMAT"):
        data.setdefault("logging", {})["format"] = fmt
    if timeout := os.environ.get("TRIPWIRE_EXTERNAL_TIMEOUT_SECONDS"):
        data.setdefault("evaluation", {})["external_timeout_seconds"] = timeout
    if workers := os.environ.get("TRIPWIRE_WORKERS"):
        data.setdefault("evaluation", {})["workers"] = workers
    if deadline := os.environ.get("TRIPWIRE_DEADLINE_SECONDS"):
        data.setdefault("evaluation", {})["deadline_seconds"] = deadline
