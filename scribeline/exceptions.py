"""
scribeline.exceptions - Custom exception classes.

All Scribeline-specific errors inherit from ScribelineError. Cancellation is
not an error and has its own signal, JobCancelled.
"""

from __future__ import annotations


class ScribelineError(Exception):
    """Base exception for all Scribeline errors."""

    pass


class ConfigError(ScribelineError):
    """Configuration loading or validation error."""

    pass


class InvalidOptions(ScribelineError):
    """Transcription options rejected before any work started."""

    pass


class ModelNotReady(ScribelineError):
    """Requested model is not installed."""

    pass


class JobInProgress(ScribelineError):
    """Another transcription job is already active."""

    pass


class DecodeError(ScribelineError):
    """Audio decoding error."""

    pass


class UnsupportedFormat(DecodeError):
    """No decoder matches the input container or codec."""

    pass


class CorruptStream(DecodeError):
    """Demuxing or decoding failed part way through the input."""

    pass


class LoadError(ScribelineError):
    """Model could not be loaded into the inference engine."""

    pass


class InferError(ScribelineError):
    """Inference failed for a chunk of audio."""

    pass


class DownloadError(ScribelineError):
    """Model download failed. Safe to retry."""

    pass


class IntegrityError(DownloadError):
    """Downloaded artifact does not match its expected size."""

    pass


class NotFoundError(ScribelineError):
    """History entry, model or input file lookup failed."""

    pass


class StorageError(ScribelineError):
    """Persisted state (history file) exists but cannot be read."""

    pass


class ModelInUseError(ScribelineError):
    """Model is pinned by the active job and cannot be removed."""

    pass


class ExternalToolError(ScribelineError):
    """An external collaborator (ffmpeg, yt-dlp) failed."""

    def __init__(self, tool: str, message: str):
        self.tool = tool
        self.message = message
        super().__init__(f"{tool}: {message}")


class DependencyError(ScribelineError):
    """Required dependency missing or misconfigured."""

    def __init__(self, dependency: str, message: str, install_hint: str | None = None):
        self.dependency = dependency
        self.message = message
        self.install_hint = install_hint
        super().__init__(f"{dependency}: {message}")


class JobFailure(ScribelineError):
    """A job failed; wraps the originating error with the stage it occurred in."""

    def __init__(self, stage: str, error: BaseException):
        self.stage = stage
        self.error = error
        super().__init__(f"{stage}: {error}")


class JobCancelled(Exception):
    """Raised inside a job when cancellation was requested. Not an error."""

    pass
