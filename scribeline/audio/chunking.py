"""
scribeline.audio.chunking - Split a PCM buffer into overlapping windows.

Whisper attends to at most 30 seconds of audio, so long inputs are cut into
windows of that size. Consecutive windows overlap by a couple of seconds so
words straddling a boundary are heard whole by at least one window; the
stitcher removes the duplicated text afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass

from scribeline.audio.decoder import SAMPLE_RATE, AudioBuffer

WINDOW_SECONDS = 30.0
OVERLAP_SECONDS = 2.0

# A trailing window contributing less than this share of a window of new
# audio is folded into the one before it.
MIN_TAIL_FRACTION = 0.25


@dataclass(frozen=True)
class Chunk:
    """One inference window, in samples relative to the start of the buffer."""

    offset_samples: int
    length_samples: int
    overlap_with_previous_samples: int = 0

    @property
    def end_samples(self) -> int:
        return self.offset_samples + self.length_samples

    @property
    def offset_seconds(self) -> float:
        return self.offset_samples / SAMPLE_RATE

    @property
    def length_seconds(self) -> float:
        return self.length_samples / SAMPLE_RATE

    @property
    def overlap_seconds(self) -> float:
        return self.overlap_with_previous_samples / SAMPLE_RATE


def plan(
    buffer: AudioBuffer | int,
    window_seconds: float = WINDOW_SECONDS,
    overlap_seconds: float = OVERLAP_SECONDS,
    sample_rate: int = SAMPLE_RATE,
) -> list[Chunk]:
    """Plan the inference windows for a buffer.

    Every chunk but the last is exactly one window long and starts one
    ``window - overlap`` step after its predecessor, so consecutive chunks
    share exactly ``overlap`` of audio. The last chunk ends on the final
    sample; when the audio left after a full window is too short to be worth
    its own window it is absorbed, making the last chunk longer than a window
    by at most a quarter window.

    Args:
        buffer: AudioBuffer, or its length in samples
        window_seconds: Nominal window length
        overlap_seconds: Audio shared by consecutive windows
        sample_rate: Samples per second of ``buffer``

    Returns:
        Chunks ordered by strictly increasing offset

    Raises:
        ValueError: If the window/overlap combination is invalid
    """
    num_samples = buffer.num_samples if isinstance(buffer, AudioBuffer) else int(buffer)
    if num_samples < 0:
        raise ValueError("Buffer length cannot be negative")
    if window_seconds <= 0:
        raise ValueError("window_seconds must be positive")
    if overlap_seconds < 0 or overlap_seconds >= window_seconds:
        raise ValueError("overlap_seconds must be in [0, window_seconds)")

    window = int(round(window_seconds * sample_rate))
    overlap = int(round(overlap_seconds * sample_rate))
    step = window - overlap
    min_tail = int(window * MIN_TAIL_FRACTION)

    if num_samples <= window:
        return [Chunk(offset_samples=0, length_samples=num_samples)]

    chunks: list[Chunk] = []
    offset = 0
    while True:
        overlap_prev = overlap if chunks else 0
        remaining = num_samples - offset
        if remaining <= window:
            chunks.append(Chunk(offset, remaining, overlap_prev))
            break
        # New audio a following window would add beyond this one's end.
        tail = num_samples - (offset + window)
        if tail < min_tail:
            chunks.append(Chunk(offset, remaining, overlap_prev))
            break
        chunks.append(Chunk(offset, window, overlap_prev))
        offset += step
    return chunks
