"""
notetree Configuration: load and validate notetree.yaml at startup.

Usage:
    from notetree.engine.config import load_config, get_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from notetree.engine.errors import NoteTreeConfigError

CONFIG_FILENAME = "notetree.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for notetree.yaml
# ---------------------------------------------------------------------------

class ApiConfig(BaseModel):
    base_url: str = "http://localhost:3000"
    endpoint: str = "/api/markdown"
    timeout: float = 30.0
    connect_timeout: float = 10.0
    max_connections: int = 10
    max_keepalive: int = 5


class AutosaveConfig(BaseModel):
    debounce_ms: int = 1000

    @field_validator("debounce_ms")
    @classmethod
    def validate_debounce(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"debounce_ms must be >= 0, got {v}")
        return v


class OrderingConfig(BaseModel):
    spacing: int = 1000
    middle_band_low: float = 0.25
    middle_band_high: float = 0.75

    @model_validator(mode="after")
    def validate_band(self) -> "OrderingConfig":
        if self.spacing <= 0:
            raise ValueError("spacing must be positive")
        if not 0.0 <= self.middle_band_low <= self.middle_band_high <= 1.0:
            raise ValueError(
                "middle band must satisfy 0 <= middle_band_low <= middle_band_high <= 1"
            )
        return self


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".notetree/logs"
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level '{v}'")
        return upper


class NoteTreeConfig(BaseModel):
    """Root model for notetree.yaml."""

    api: ApiConfig = ApiConfig()
    autosave: AutosaveConfig = AutosaveConfig()
    ordering: OrderingConfig = OrderingConfig()
    logging: LoggingConfig = LoggingConfig()


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[NoteTreeConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for notetree.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def load_config(config_path: Optional[str] = None) -> NoteTreeConfig:
    """
    Load and validate notetree.yaml.

    Args:
        config_path: Explicit path to notetree.yaml. If None, auto-discovers.

    Returns:
        Validated NoteTreeConfig instance.

    Raises:
        NoteTreeConfigError if the file is not valid YAML or fails validation.
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILENAME)

    path = Path(config_path)
    if not path.exists():
        _config = NoteTreeConfig()
        return _config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise NoteTreeConfigError(f"Invalid YAML in {path}: {e}", config_path=str(path)) from e

    if not isinstance(raw, dict):
        raise NoteTreeConfigError(f"{path} must contain a mapping", config_path=str(path))

    # Accept both a flat file and one wrapped under a top-level "notetree:" key
    data: Dict[str, Any] = raw.get("notetree", raw)

    try:
        _config = NoteTreeConfig(**data)
    except ValidationError as e:
        raise NoteTreeConfigError(
            f"Invalid configuration in {path}: {e.error_count()} error(s)",
            config_path=str(path),
            validation_errors=e.errors(),
        ) from e
    return _config


def get_config() -> NoteTreeConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config (tests, CLI --config switches)."""
    global _config
    _config = None
