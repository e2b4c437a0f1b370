"""Tests for scribeline.config module."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from scribeline.config import (
    ScribelineConfig,
    create_default_config,
    default_data_dir,
    load_config,
    write_config,
)
from scribeline.exceptions import ConfigError


class TestDefaultDataDir:
    def test_uses_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCRIBELINE_HOME", str(tmp_path / "home"))
        assert default_data_dir() == tmp_path / "home"

    def test_falls_back_to_home(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SCRIBELINE_HOME", raising=False)
        assert default_data_dir() == Path.home() / ".scribeline"


class TestScribelineConfig:
    def test_derives_paths_from_data_dir(self, tmp_path: Path) -> None:
        config = ScribelineConfig(data_dir=tmp_path)
        assert config.models_dir == tmp_path / "models"
        assert config.history_path == tmp_path / "history.json"

    def test_explicit_paths_win(self, tmp_path: Path) -> None:
        config = ScribelineConfig(data_dir=tmp_path, models_dir=tmp_path / "elsewhere")
        assert config.models_dir == tmp_path / "elsewhere"

    def test_defaults(self, tmp_path: Path) -> None:
        config = ScribelineConfig(data_dir=tmp_path)
        assert config.default_model == "base"
        assert config.default_language == "auto"
        assert config.history_max_entries is None

    def test_invalid_device_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            ScribelineConfig(data_dir=tmp_path, device="tpu")

    def test_invalid_compute_type_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            ScribelineConfig(data_dir=tmp_path, compute_type="int4")

    def test_non_positive_timeout_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            ScribelineConfig(data_dir=tmp_path, tool_timeout_seconds=0)

    def test_ensure_dirs(self, tmp_path: Path) -> None:
        config = ScribelineConfig(data_dir=tmp_path / "data")
        config.ensure_dirs()
        assert config.models_dir.is_dir()


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path)
        assert config.data_dir == tmp_path
        assert config.device == "auto"

    def test_reads_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text("default_model: small\nhistory_max_entries: 50\n")
        config = load_config(tmp_path)
        assert config.default_model == "small"
        assert config.history_max_entries == 50

    def test_env_var_locates_data_dir(self, data_dir: Path) -> None:
        (data_dir / "config.yaml").write_text("device: cpu\n")
        assert load_config().device == "cpu"

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text("device: [cpu\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_non_mapping_raises(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text("- just\n- a list\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_invalid_value_raises(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text("device: quantum\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)


class TestWriteConfig:
    def test_default_config_round_trips(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        write_config(create_default_config(), path)

        with open(path) as f:
            raw = yaml.safe_load(f)
        assert raw["default_model"] == "base"

        config = load_config(tmp_path)
        assert config.ffmpeg_binary == "ffmpeg"
