"""
scribeline.jobs.types - Requests, options, events and results of transcription jobs.

Also declares the seams for the external collaborators a job may call: the
remote audio extractor, the audio retimer and the captions provider.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from scribeline.exceptions import InvalidOptions
from scribeline.jobs.cancellation import CancellationToken
from scribeline.models.catalog import DEFAULT_MODEL, MODEL_IDS
from scribeline.tools.ffmpeg import MAX_SPEED, MIN_SPEED
from scribeline.transcribe.engine import Segment
from scribeline.utils import format_timestamp

AUTO_LANGUAGE = "auto"

LANGUAGES = {
    "auto": "Auto-detect",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ja": "Japanese",
    "zh": "Chinese",
    "ko": "Korean",
    "ru": "Russian",
}

LANGUAGE_CODE_RE = re.compile(r"^[a-z]{2,3}$")


class JobState(str, Enum):
    IDLE = "idle"
    RESOLVING_INPUT = "resolving_input"
    ACQUIRING_MODEL = "acquiring_model"
    DECODING = "decoding"
    INFERRING = "inferring"
    STITCHING = "stitching"
    PERSISTED = "persisted"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.PERSISTED, JobState.CANCELLED, JobState.FAILED)


class TranscriptionOptions(BaseModel):
    """User-chosen transcription settings."""

    model_config = ConfigDict(frozen=True)

    model_id: str = DEFAULT_MODEL
    language: str = AUTO_LANGUAGE
    include_timestamps: bool = False
    speed_factor: float | None = None

    def __init__(self, **data: Any) -> None:
        """Raises InvalidOptions, not ValidationError, on any invalid value."""
        try:
            super().__init__(**data)
        except ValidationError as e:
            messages = "; ".join(err["msg"].removeprefix("Value error, ") for err in e.errors())
            raise InvalidOptions(messages) from e

    @field_validator("model_id")
    @classmethod
    def validate_model_id(cls, v: str) -> str:
        if v not in MODEL_IDS:
            raise ValueError(f"Unknown model '{v}'. Available: {', '.join(MODEL_IDS)}")
        return v

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: str) -> str:
        v = v.strip().lower()
        if v != AUTO_LANGUAGE and not LANGUAGE_CODE_RE.match(v):
            raise ValueError(f"Invalid language code '{v}'")
        return v

    @field_validator("speed_factor")
    @classmethod
    def validate_speed_factor(cls, v: float | None) -> float | None:
        if v is not None and not MIN_SPEED <= v <= MAX_SPEED:
            raise ValueError(f"speed_factor must be between {MIN_SPEED} and {MAX_SPEED}")
        return v

    @model_validator(mode="after")
    def check_timestamps_speed(self) -> TranscriptionOptions:
        if self.include_timestamps and self.speeds_up:
            raise ValueError("Timestamps cannot be combined with a speed-up")
        return self

    @property
    def speeds_up(self) -> bool:
        return self.speed_factor is not None and self.speed_factor > MIN_SPEED

    @property
    def language_hint(self) -> str | None:
        return None if self.language == AUTO_LANGUAGE else self.language


@dataclass(frozen=True)
class JobInput:
    """A local file path or a remote video URL."""

    kind: Literal["local", "remote"]
    path: Path | None = None
    url: str | None = None
    use_captions: bool = False

    @classmethod
    def local(cls, path: Path | str) -> JobInput:
        return cls(kind="local", path=Path(path))

    @classmethod
    def remote(cls, url: str, use_captions: bool = False) -> JobInput:
        return cls(kind="remote", url=url, use_captions=use_captions)

    @property
    def is_remote(self) -> bool:
        return self.kind == "remote"


@dataclass(frozen=True)
class JobRequest:
    input: JobInput
    options: TranscriptionOptions


@dataclass(frozen=True)
class ProgressEvent:
    kind: Literal["transcription", "download"]
    fraction: float
    message: str = ""
    bytes_downloaded: int | None = None
    bytes_total: int | None = None
    chunk_text: str | None = None


class SourceDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    kind: Literal["file", "remote_whisper", "remote_captions"]
    location: str


class TranscriptionResult(BaseModel):
    """Final output of a successful job."""

    model_config = ConfigDict(frozen=True)

    text: str
    segments: list[Segment] | None = None
    language: str | None = None
    audio_duration: float
    processing_time: float
    source: SourceDescriptor
    model_id: str | None = None

    def render(self) -> str:
        """Plain text, or one ``[HH:MM:SS] text`` line per segment."""
        if not self.segments:
            return self.text
        return "\n".join(f"[{format_timestamp(seg.start)}] {seg.text}" for seg in self.segments)


@dataclass(frozen=True)
class JobOutcome:
    """Terminal event of a job's event stream."""

    state: JobState
    result: TranscriptionResult | None = None
    error: BaseException | None = None


@dataclass(frozen=True)
class RemoteAudio:
    """Audio extracted from a remote video. ``work_dir`` is owned by the caller."""

    path: Path
    title: str
    work_dir: Path


@dataclass(frozen=True)
class CaptionTrack:
    title: str
    language: str
    text: str
    lines: list[Segment]


class RemoteAudioExtractor(Protocol):
    def extract(self, url: str, cancel_token: CancellationToken | None = None) -> RemoteAudio: ...


class AudioRetimer(Protocol):
    def retime(
        self, source_path: Path, speed_factor: float, cancel_token: CancellationToken | None = None
    ) -> Path: ...


class CaptionsProvider(Protocol):
    def fetch(
        self, url: str, language: str | None, cancel_token: CancellationToken | None = None
    ) -> CaptionTrack: ...
