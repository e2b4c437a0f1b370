"""
scribeline.transcribe.stitch - Merge per-chunk inference output.

Consecutive chunks share a couple of seconds of audio, so the end of one
chunk's text usually reappears at the start of the next. The overlap is
removed by matching the longest run of normalized words that ends the text
emitted so far and starts the new chunk's text. Matching is approximate:
Whisper may transcribe the shared audio slightly differently each time, in
which case a few words are duplicated rather than risk dropping real ones.
"""

from __future__ import annotations

import math
import re

from scribeline.audio.chunking import Chunk
from scribeline.transcribe.engine import InferenceOutput, Segment

# Upper bound on speech rate used to size the overlap search.
MAX_WORDS_PER_SECOND = 4.0

NORMALIZE_RE = re.compile(r"[^\w']+")


def normalize_word(word: str) -> str:
    return NORMALIZE_RE.sub("", word.lower())


def overlap_word_budget(overlap_seconds: float) -> int:
    """Maximum number of words that can have been spoken in the overlap."""
    if overlap_seconds <= 0:
        return 0
    return max(1, math.ceil(overlap_seconds * MAX_WORDS_PER_SECOND))


def find_overlap(previous: list[str], current: list[str], budget: int) -> int:
    """Length of the longest suffix of ``previous`` equal to a prefix of ``current``.

    Words are compared after normalization, and only runs of at most
    ``budget`` words are considered.
    """
    limit = min(budget, len(previous), len(current))
    if limit == 0:
        return 0
    prev_norm = [normalize_word(w) for w in previous[-limit:]]
    curr_norm = [normalize_word(w) for w in current[:limit]]
    for size in range(limit, 0, -1):
        if prev_norm[-size:] == curr_norm[:size] and any(prev_norm[-size:]):
            return size
    return 0


class Stitcher:
    """Accumulates chunk outputs, in order, into one transcript."""

    def __init__(self) -> None:
        self._words: list[str] = []
        self._segments: list[Segment] = []
        self._emitted_end = 0.0
        self.language: str | None = None

    @property
    def text(self) -> str:
        return " ".join(self._words)

    @property
    def segments(self) -> list[Segment]:
        return list(self._segments)

    def add(self, chunk: Chunk, output: InferenceOutput) -> str:
        """Merge one chunk's output and return the text it contributed."""
        if self.language is None:
            self.language = output.language

        words = output.text.split()
        budget = overlap_word_budget(chunk.overlap_seconds)
        duplicated = find_overlap(self._words, words, budget) if self._words else 0
        new_words = words[duplicated:]
        self._words.extend(new_words)

        offset = chunk.offset_seconds
        for seg in output.segments:
            shifted = seg.shifted(offset)
            if self._segments and shifted.end <= self._emitted_end:
                continue
            if shifted.start < self._emitted_end:
                shifted = Segment(start=self._emitted_end, end=shifted.end, text=shifted.text)
            self._segments.append(shifted)
            self._emitted_end = shifted.end

        return " ".join(new_words)


def stitch(outputs: list[tuple[Chunk, InferenceOutput]]) -> InferenceOutput:
    """Merge a complete, ordered list of chunk outputs."""
    stitcher = Stitcher()
    for chunk, output in outputs:
        stitcher.add(chunk, output)
    return InferenceOutput(text=stitcher.text, segments=stitcher.segments, language=stitcher.language)
