"""
scribeline.audio.decoder - Decode any supported input to mono 16kHz PCM.

Containers libsndfile reads natively (wav, flac, ogg, mp3) are decoded
directly; anything else (mp4, mov, m4a, webm...) is transcoded to a temporary
WAV with FFmpeg first. Channels are averaged to mono and the result is
resampled to 16kHz with librosa's soxr_hq resampler.
"""

from __future__ import annotations

import logging
import struct
import tempfile
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import soundfile as sf

from scribeline.exceptions import CorruptStream, ExternalToolError, NotFoundError, UnsupportedFormat
from scribeline.jobs.cancellation import CancellationToken
from scribeline.tools.ffmpeg import is_unsupported_input, transcode_to_wav

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000

AUDIO_FORMATS = ("mp3", "wav", "m4a", "flac", "ogg", "opus", "aac", "wma")
VIDEO_FORMATS = ("mp4", "avi", "mov", "mkv", "webm")


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """Mono float32 PCM at 16kHz. The sample array is read-only."""

    samples: np.ndarray
    sample_rate: int = SAMPLE_RATE

    def __post_init__(self) -> None:
        if self.samples.ndim != 1:
            raise ValueError("AudioBuffer samples must be one-dimensional")
        if self.samples.dtype != np.float32:
            raise ValueError("AudioBuffer samples must be float32")
        self.samples.flags.writeable = False

    @property
    def num_samples(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        return self.num_samples / self.sample_rate

    def slice(self, offset: int, length: int) -> np.ndarray:
        """Return a read-only view of ``length`` samples from ``offset``."""
        return self.samples[offset : offset + length]


def is_supported_extension(path: Path) -> bool:
    """Check the file extension against the known audio and video formats."""
    ext = path.suffix.lower().lstrip(".")
    return ext in AUDIO_FORMATS or ext in VIDEO_FORMATS


def is_video_format(path: Path) -> bool:
    return path.suffix.lower().lstrip(".") in VIDEO_FORMATS


def decode(
    input_path: Path,
    ffmpeg_binary: str = "ffmpeg",
    timeout: float | None = None,
    cancel_token: CancellationToken | None = None,
) -> AudioBuffer:
    """Decode an audio or video file into a mono 16kHz AudioBuffer.

    Args:
        input_path: Path to any audio/video file
        ffmpeg_binary: FFmpeg used for containers libsndfile cannot read
        timeout: Bound on the FFmpeg transcode, in seconds
        cancel_token: Optional token polled while FFmpeg runs

    Returns:
        AudioBuffer with normalized mono samples

    Raises:
        NotFoundError: If the input file doesn't exist
        UnsupportedFormat: If no decoder matches the input
        CorruptStream: If decoding fails part way through
    """
    input_path = Path(input_path)
    if not input_path.is_file():
        raise NotFoundError(f"Input file not found: {input_path}")

    try:
        data, sr = _read_native(input_path)
    except _NotNative:
        logger.debug("libsndfile cannot open %s, transcoding with ffmpeg", input_path.name)
        data, sr = _read_via_ffmpeg(input_path, ffmpeg_binary, timeout, cancel_token)

    if data.shape[0] == 0:
        raise CorruptStream(f"No audio samples decoded from {input_path.name}")

    mono = downmix(data)
    samples = resample(mono, sr, SAMPLE_RATE)
    logger.debug(
        "Decoded %s: %d channel(s) at %d Hz -> %.1fs mono",
        input_path.name,
        data.shape[1],
        sr,
        samples.shape[0] / SAMPLE_RATE,
    )
    return AudioBuffer(samples=samples)


def downmix(data: np.ndarray) -> np.ndarray:
    """Average a (frames, channels) array into mono float32."""
    if data.ndim == 1:
        return data.astype(np.float32, copy=True)
    return data.mean(axis=1, dtype=np.float32)


def resample(samples: np.ndarray, orig_sr: int, target_sr: int = SAMPLE_RATE) -> np.ndarray:
    """Resample with a high quality band-limited resampler and clip to [-1, 1]."""
    if orig_sr != target_sr:
        import librosa

        samples = librosa.resample(samples, orig_sr=orig_sr, target_sr=target_sr, res_type="soxr_hq")
    return np.clip(samples, -1.0, 1.0).astype(np.float32, copy=False)


class _NotNative(Exception):
    pass


def _read_native(path: Path) -> tuple[np.ndarray, int]:
    try:
        f = sf.SoundFile(str(path))
    except (RuntimeError, TypeError) as e:
        raise _NotNative(str(e)) from e

    with f:
        if f.format in ("WAV", "WAVEX"):
            _check_riff_length(path)
        try:
            data = f.read(dtype="float32", always_2d=True)
        except RuntimeError as e:
            raise CorruptStream(f"Decoding {path.name} failed: {e}") from e
        # MP3 frame counts are estimated from the bitrate.
        if f.format != "MP3" and data.shape[0] < f.frames:
            raise CorruptStream(f"{path.name} ended after {data.shape[0]} of {f.frames} frames")
        return data, f.samplerate


def _check_riff_length(path: Path) -> None:
    """Raise CorruptStream if the WAV data chunk runs past the end of the file.

    libsndfile shortens such a chunk to the bytes present without an error.
    """
    size = path.stat().st_size
    with open(path, "rb") as fh:
        header = fh.read(12)
        if len(header) < 12 or header[:4] != b"RIFF" or header[8:] != b"WAVE":
            return
        offset = 12
        while offset + 8 <= size:
            fh.seek(offset)
            chunk_id, chunk_size = struct.unpack("<4sI", fh.read(8))
            offset += 8
            if chunk_id == b"data":
                # 0 and 0xFFFFFFFF mark a length never filled in by a streaming writer.
                if chunk_size not in (0, 0xFFFFFFFF) and offset + chunk_size > size:
                    raise CorruptStream(
                        f"{path.name} is truncated: {size - offset} of {chunk_size} data bytes present"
                    )
                return
            offset += chunk_size + (chunk_size & 1)


def _read_via_ffmpeg(
    path: Path,
    ffmpeg_binary: str,
    timeout: float | None,
    cancel_token: CancellationToken | None,
) -> tuple[np.ndarray, int]:
    with tempfile.TemporaryDirectory(prefix="scribeline_decode_") as tmp:
        wav_path = Path(tmp) / "decoded.wav"
        try:
            transcode_to_wav(path, wav_path, ffmpeg_binary, timeout, cancel_token)
        except ExternalToolError as e:
            if is_unsupported_input(e):
                raise UnsupportedFormat(f"No decoder for {path.name}: {e.message}") from e
            raise CorruptStream(f"Decoding {path.name} failed: {e.message}") from e

        try:
            data, sr = sf.read(str(wav_path), dtype="float32", always_2d=True)
        except RuntimeError as e:
            raise CorruptStream(f"Decoding {path.name} failed: {e}") from e
    return data, sr
