"""Tests for scribeline.validation module."""

from pathlib import Path

import pytest

from scribeline.config import ScribelineConfig
from scribeline.exceptions import DependencyError, NotFoundError, UnsupportedFormat
from scribeline.validation import (
    check_disk_space,
    check_ffmpeg,
    check_ytdlp,
    run_preflight_checks,
    validate_input_file,
)


class TestValidateInputFile:
    def test_nonexistent_file(self):
        with pytest.raises(NotFoundError):
            validate_input_file(Path("/nonexistent/talk.mp3"))

    def test_directory_not_file(self, tmp_path):
        with pytest.raises(NotFoundError):
            validate_input_file(tmp_path)

    def test_unknown_extension(self, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("not audio")
        with pytest.raises(UnsupportedFormat):
            validate_input_file(notes)

    def test_valid_audio_file(self, tmp_path):
        audio = tmp_path / "talk.MP3"
        audio.write_bytes(b"fake audio")
        result = validate_input_file(audio)
        assert result["format"] == "mp3"
        assert result["is_video"] is False
        assert result["size_mb"] == 0

    def test_video_file(self, tmp_path):
        video = tmp_path / "clip.mov"
        video.write_bytes(b"fake video")
        assert validate_input_file(video)["is_video"] is True


class TestToolChecks:
    def test_missing_ffmpeg(self):
        with pytest.raises(DependencyError) as exc_info:
            check_ffmpeg("ffmpeg-does-not-exist")
        assert exc_info.value.install_hint

    def test_missing_ytdlp(self):
        with pytest.raises(DependencyError) as exc_info:
            check_ytdlp("yt-dlp-does-not-exist")
        assert exc_info.value.dependency == "yt-dlp"


class TestCheckDiskSpace:
    def test_reports_space(self, tmp_path):
        result = check_disk_space(tmp_path, 0)
        assert result["sufficient"] is True
        assert result["required_mb"] == 0

    def test_uses_nearest_existing_parent(self, tmp_path):
        result = check_disk_space(tmp_path / "not" / "yet" / "created", 0)
        assert result["available_mb"] >= 0

    def test_insufficient(self, tmp_path):
        assert check_disk_space(tmp_path, 10**12)["sufficient"] is False


class TestPreflight:
    def test_missing_ytdlp_is_only_a_warning(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            "scribeline.validation.check_ffmpeg", lambda binary: {"ffmpeg_version": "7.0"}
        )
        config = ScribelineConfig(data_dir=tmp_path, ytdlp_binary="yt-dlp-does-not-exist")

        results = run_preflight_checks(config)

        assert "warning" in results["checks"]["yt-dlp"]
        assert results["checks"]["ffmpeg"] == {"ffmpeg_version": "7.0"}

    def test_missing_ffmpeg_fails(self, tmp_path):
        config = ScribelineConfig(data_dir=tmp_path, ffmpeg_binary="ffmpeg-does-not-exist")

        results = run_preflight_checks(config)

        assert results["passed"] is False
        assert "error" in results["checks"]["ffmpeg"]
