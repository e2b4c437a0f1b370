"""
scribeline.tools.ffmpeg - FFmpeg-backed transcoding and audio retiming.

Two jobs are delegated to FFmpeg:
- Transcoding containers libsndfile cannot read (mp4, mov, m4a, webm...)
  into PCM WAV, keeping the native sample rate and channel layout
- Speeding audio up with the atempo filter before transcription
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from scribeline.exceptions import ExternalToolError, InvalidOptions
from scribeline.jobs.cancellation import CancellationToken
from scribeline.tools.runner import run_tool

logger = logging.getLogger(__name__)

MIN_SPEED = 1.0
MAX_SPEED = 2.0

# FFmpeg stderr fragments meaning "this is not decodable audio" rather than a broken file.
UNSUPPORTED_MARKERS = (
    "Invalid data found when processing input",
    "does not contain any stream",
    "Output file does not contain any stream",
    "Stream map '' matches no streams",
    "matches no streams",
)


def transcode_to_wav(
    source_path: Path,
    output_path: Path,
    ffmpeg_binary: str = "ffmpeg",
    timeout: float | None = None,
    cancel_token: CancellationToken | None = None,
) -> Path:
    """Transcode the first audio stream of any container to float PCM WAV.

    Raises:
        ExternalToolError: If FFmpeg fails
    """
    cmd = [
        ffmpeg_binary,
        "-nostdin",
        "-y",
        "-i",
        str(source_path),
        "-map",
        "0:a:0",
        "-vn",
        "-acodec",
        "pcm_f32le",
        str(output_path),
    ]
    run_tool(cmd, timeout=timeout, cancel_token=cancel_token)
    return output_path


def is_unsupported_input(error: ExternalToolError) -> bool:
    """Tell apart "no decodable audio here" from a mid-stream failure."""
    return any(marker in error.message for marker in UNSUPPORTED_MARKERS)


class FfmpegRetimer:
    """Audio retimer using FFmpeg's atempo filter (pitch preserving)."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg", timeout: float | None = None) -> None:
        self.ffmpeg_binary = ffmpeg_binary
        self.timeout = timeout

    def retime(
        self,
        source_path: Path,
        speed_factor: float,
        cancel_token: CancellationToken | None = None,
    ) -> Path:
        """Write a sped-up copy of ``source_path`` to a temp WAV file.

        The caller owns the returned file and must delete it.

        Raises:
            InvalidOptions: If the speed factor is outside [1.0, 2.0]
            ExternalToolError: If FFmpeg fails
        """
        if not MIN_SPEED <= speed_factor <= MAX_SPEED:
            raise InvalidOptions(
                f"speed_factor must be between {MIN_SPEED} and {MAX_SPEED}, got {speed_factor}"
            )

        fd, name = tempfile.mkstemp(prefix="scribeline_retimed_", suffix=".wav")
        os.close(fd)
        output_path = Path(name)

        cmd = [
            self.ffmpeg_binary,
            "-nostdin",
            "-y",
            "-i",
            str(source_path),
            "-vn",
            "-filter:a",
            f"atempo={speed_factor}",
            str(output_path),
        ]
        logger.info("Retiming %s at %.2fx", source_path.name, speed_factor)
        try:
            run_tool(cmd, timeout=self.timeout, cancel_token=cancel_token)
        except BaseException:
            output_path.unlink(missing_ok=True)
            raise
        return output_path
