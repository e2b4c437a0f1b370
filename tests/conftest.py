"""
Test configuration and shared fixtures.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from scribeline.jobs.types import SourceDescriptor, TranscriptionResult
from scribeline.models.catalog import get_entry
from scribeline.transcribe.engine import Segment


@dataclass
class FakeWhisperSegment:
    start: float
    end: float
    text: str


@dataclass
class FakeTranscriptionInfo:
    language: str
    duration: float


class FakeWhisperModel:
    """Stands in for faster_whisper.WhisperModel.

    ``script`` maps the 0-based call index to the text returned for that call;
    calls past the end of the script return silence.
    """

    def __init__(self, script: list[str] | None = None, detected_language: str = "en") -> None:
        self.script = script or []
        self.detected_language = detected_language
        self.calls: list[dict] = []

    def transcribe(self, audio, language=None, **kwargs):
        index = len(self.calls)
        self.calls.append({"num_samples": len(audio), "language": language, **kwargs})
        text = self.script[index] if index < len(self.script) else ""
        duration = len(audio) / 16000
        segments = [FakeWhisperSegment(0.0, duration, f" {text}")] if text else []
        info = FakeTranscriptionInfo(language=language or self.detected_language, duration=duration)
        return iter(segments), info


class FakeModelFactory:
    """Model factory for InferenceEngine that records loads."""

    def __init__(self, model: FakeWhisperModel | None = None) -> None:
        self.model = model or FakeWhisperModel()
        self.loads: list[Path] = []

    def __call__(self, model_path: Path, device: str, compute_type: str) -> FakeWhisperModel:
        self.loads.append(model_path)
        return self.model


def install_fake_model(models_dir: Path, model_id: str = "base") -> Path:
    """Create a model directory holding every catalog file for ``model_id``."""
    entry = get_entry(model_id)
    install_path = models_dir / model_id
    install_path.mkdir(parents=True, exist_ok=True)
    for name in entry.files:
        (install_path / name).write_bytes(b"x" * 16)
    return install_path


def write_wav(
    path: Path,
    seconds: float,
    sample_rate: int = 16000,
    channels: int = 1,
    frequency: float = 440.0,
) -> Path:
    """Write a sine tone WAV file."""
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    tone = (0.5 * np.sin(2 * np.pi * frequency * t)).astype(np.float32)
    data = np.stack([tone] * channels, axis=1) if channels > 1 else tone
    sf.write(str(path), data, sample_rate, subtype="FLOAT")
    return path


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated scribeline data directory, also exported as SCRIBELINE_HOME."""
    home = tmp_path / "scribeline_home"
    home.mkdir()
    monkeypatch.setenv("SCRIBELINE_HOME", str(home))
    return home


@pytest.fixture
def models_dir(tmp_path: Path) -> Path:
    path = tmp_path / "models"
    path.mkdir()
    return path


@pytest.fixture
def sample_result() -> TranscriptionResult:
    """Return a sample transcription result."""
    return TranscriptionResult(
        text="When I was young, my grandmother would take us to the river.",
        segments=[
            Segment(start=0.0, end=2.5, text="When I was young,"),
            Segment(start=2.5, end=5.5, text="my grandmother would take us to the river."),
        ],
        language="en",
        audio_duration=5.5,
        processing_time=1.2,
        source=SourceDescriptor(name="interview.wav", kind="file", location="/tmp/interview.wav"),
        model_id="base",
    )


@pytest.fixture
def make_wav():
    """Factory writing sine tone WAV files: make_wav(path, seconds, sample_rate=, channels=)."""
    return write_wav


@pytest.fixture
def install_model():
    """Factory creating a complete fake model directory: install_model(models_dir, model_id)."""
    return install_fake_model


@pytest.fixture
def whisper_factory():
    """Factory building a FakeModelFactory around a scripted FakeWhisperModel."""

    def make(script: list[str] | None = None, detected_language: str = "en") -> FakeModelFactory:
        return FakeModelFactory(FakeWhisperModel(script, detected_language))

    return make
