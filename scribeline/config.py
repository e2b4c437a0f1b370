"""
scribeline.config - YAML config loading and validation.

Handles locating the data directory, loading config.yaml from it, and
validating all parameters. Paths that are not set explicitly are derived
from the data directory.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from scribeline.exceptions import ConfigError

HOME_ENV_VAR = "SCRIBELINE_HOME"
CONFIG_FILENAME = "config.yaml"


def default_data_dir() -> Path:
    """Return the data directory: $SCRIBELINE_HOME or ~/.scribeline."""
    env = os.getenv(HOME_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".scribeline"


class ScribelineConfig(BaseModel):
    """Resolved configuration for a Scribeline installation."""

    data_dir: Path = Field(default_factory=default_data_dir)
    models_dir: Path | None = None
    history_path: Path | None = None

    default_model: str = "base"
    default_language: str = "auto"

    device: str = "auto"
    compute_type: str = "default"

    ffmpeg_binary: str = "ffmpeg"
    ytdlp_binary: str = "yt-dlp"

    tool_timeout_seconds: float = Field(default=1800.0, gt=0.0)
    download_timeout_seconds: float = Field(default=60.0, gt=0.0)
    download_progress_interval: float = Field(default=0.25, ge=0.0)

    history_max_entries: int | None = Field(default=None, gt=0)

    @field_validator("device")
    @classmethod
    def validate_device(cls, v: str) -> str:
        valid = {"auto", "cpu", "cuda"}
        if v not in valid:
            raise ValueError(f"device must be one of: {valid}")
        return v

    @field_validator("compute_type")
    @classmethod
    def validate_compute_type(cls, v: str) -> str:
        valid = {"default", "auto", "int8", "int8_float16", "float16", "float32"}
        if v not in valid:
            raise ValueError(f"compute_type must be one of: {valid}")
        return v

    @model_validator(mode="after")
    def derive_paths(self) -> ScribelineConfig:
        self.data_dir = Path(self.data_dir).expanduser()
        if self.models_dir is None:
            self.models_dir = self.data_dir / "models"
        if self.history_path is None:
            self.history_path = self.data_dir / "history.json"
        return self

    def ensure_dirs(self) -> None:
        """Create the data and model directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.models_dir.mkdir(parents=True, exist_ok=True)


def load_config(data_dir: Path | None = None) -> ScribelineConfig:
    """Load and validate configuration from a data directory.

    A missing config.yaml yields the defaults rooted at ``data_dir``.

    Raises:
        ConfigError: If the file is not valid YAML or holds invalid values
    """
    data_dir = Path(data_dir).expanduser() if data_dir else default_data_dir()
    config_file = data_dir / CONFIG_FILENAME

    raw_config: dict[str, Any] = {}
    if config_file.exists():
        try:
            with open(config_file) as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e
        if not isinstance(raw_config, dict):
            raise ConfigError(f"{config_file} must contain a mapping")

    raw_config.setdefault("data_dir", data_dir)
    try:
        return ScribelineConfig(**raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_file}: {e}") from e


def create_default_config() -> dict[str, Any]:
    """Create a default config mapping suitable for writing to YAML."""
    return {
        "default_model": "base",
        "default_language": "auto",
        "device": "auto",
        "compute_type": "default",
        "ffmpeg_binary": "ffmpeg",
        "ytdlp_binary": "yt-dlp",
        "tool_timeout_seconds": 1800.0,
        "download_timeout_seconds": 60.0,
    }


def write_config(config: dict[str, Any], path: Path) -> None:
    """Write configuration to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
