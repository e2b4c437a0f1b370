"""Tests for scribeline.jobs.types module."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from scribeline.exceptions import InvalidOptions
from scribeline.jobs.types import JobInput, JobState, TranscriptionOptions, TranscriptionResult


class TestTranscriptionOptions:
    def test_defaults(self) -> None:
        options = TranscriptionOptions()
        assert options.model_id == "base"
        assert options.language == "auto"
        assert options.language_hint is None
        assert not options.speeds_up

    def test_language_is_normalized(self) -> None:
        options = TranscriptionOptions(language=" ES ")
        assert options.language == "es"
        assert options.language_hint == "es"

    def test_unknown_model(self) -> None:
        with pytest.raises(InvalidOptions, match="Unknown model"):
            TranscriptionOptions(model_id="gigantic")

    def test_bad_language_code(self) -> None:
        with pytest.raises(InvalidOptions):
            TranscriptionOptions(language="english")

    @pytest.mark.parametrize("speed", [0.5, 2.5])
    def test_speed_out_of_range(self, speed: float) -> None:
        with pytest.raises(InvalidOptions):
            TranscriptionOptions(speed_factor=speed)

    def test_timestamps_with_speed_up(self) -> None:
        with pytest.raises(InvalidOptions, match="Timestamps cannot be combined"):
            TranscriptionOptions(include_timestamps=True, speed_factor=1.5)

    def test_timestamps_at_normal_speed(self) -> None:
        options = TranscriptionOptions(include_timestamps=True, speed_factor=1.0)
        assert not options.speeds_up

    def test_validation_error_is_not_leaked(self) -> None:
        with pytest.raises(InvalidOptions) as exc_info:
            TranscriptionOptions(model_id="gigantic", speed_factor=3.0)
        assert not isinstance(exc_info.value, ValidationError)
        assert "Unknown model" in str(exc_info.value)
        assert "speed_factor" in str(exc_info.value)

    def test_frozen(self) -> None:
        options = TranscriptionOptions()
        with pytest.raises(ValueError):
            options.model_id = "tiny"


class TestJobInput:
    def test_local(self) -> None:
        job_input = JobInput.local("talk.wav")
        assert job_input.path == Path("talk.wav")
        assert not job_input.is_remote

    def test_remote(self) -> None:
        job_input = JobInput.remote("https://youtu.be/abc", use_captions=True)
        assert job_input.is_remote
        assert job_input.use_captions


class TestJobState:
    def test_terminal_states(self) -> None:
        terminal = {s for s in JobState if s.is_terminal}
        assert terminal == {JobState.PERSISTED, JobState.CANCELLED, JobState.FAILED}


class TestTranscriptionResult:
    def test_render_plain(self, sample_result: TranscriptionResult) -> None:
        plain = sample_result.model_copy(update={"segments": None})
        assert plain.render() == sample_result.text

    def test_render_with_timestamps(self, sample_result: TranscriptionResult) -> None:
        assert sample_result.render().splitlines() == [
            "[00:00:00] When I was young,",
            "[00:00:02] my grandmother would take us to the river.",
        ]
