"""
scribeline.tools.subtitles - WebVTT/SRT caption parsing and cleanup.

Turns a downloaded caption file into plain text plus per-cue timestamps,
stripping headers, sequence numbers, inline timing tags, HTML tags and sound
markers such as [Music]. Auto-generated captions repeat the previous line at
the start of each cue; consecutive duplicates are collapsed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

CUE_TIMING_RE = re.compile(
    r"(?P<start>(?:\d{1,2}:)?\d{2}:\d{2}[.,]\d{3})\s*-->\s*(?P<end>(?:\d{1,2}:)?\d{2}:\d{2}[.,]\d{3})"
)
INLINE_TIMESTAMP_RE = re.compile(r"<\d{2}:\d{2}:\d{2}[.,]\d{3}>")
HTML_TAG_RE = re.compile(r"<[^>]+>")
SOUND_MARKER_RE = re.compile(r"\[[^\]]*\]")
SEQUENCE_RE = re.compile(r"^\d+$")
HEADER_RE = re.compile(r"^(WEBVTT|Kind:|Language:|NOTE|STYLE|REGION)")
WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class CaptionLine:
    start: float
    end: float
    text: str


def parse_timestamp(value: str) -> float:
    """Parse ``HH:MM:SS.mmm`` or ``MM:SS.mmm`` (comma or dot) into seconds."""
    value = value.replace(",", ".")
    parts = value.split(":")
    seconds = float(parts[-1])
    minutes = int(parts[-2]) if len(parts) >= 2 else 0
    hours = int(parts[-3]) if len(parts) >= 3 else 0
    return hours * 3600 + minutes * 60 + seconds


def clean_caption_text(text: str) -> str:
    text = INLINE_TIMESTAMP_RE.sub("", text)
    text = HTML_TAG_RE.sub("", text)
    text = SOUND_MARKER_RE.sub("", text)
    text = text.replace("&nbsp;", " ").replace("&amp;", "&")
    return WHITESPACE_RE.sub(" ", text).strip()


def parse_captions(content: str) -> list[CaptionLine]:
    """Parse WebVTT or SRT content into cleaned, de-duplicated cue lines."""
    lines: list[CaptionLine] = []
    start = end = None
    buffer: list[str] = []

    def flush() -> None:
        if start is None:
            return
        for raw in buffer:
            text = clean_caption_text(raw)
            if not text:
                continue
            if lines and lines[-1].text == text:
                continue
            lines.append(CaptionLine(start=start, end=end, text=text))

    for raw_line in content.splitlines():
        line = raw_line.strip()
        match = CUE_TIMING_RE.search(line)
        if match:
            flush()
            start = parse_timestamp(match.group("start"))
            end = parse_timestamp(match.group("end"))
            buffer = []
            continue
        if not line:
            flush()
            start = end = None
            buffer = []
            continue
        if HEADER_RE.match(line) or SEQUENCE_RE.match(line):
            continue
        if start is not None:
            buffer.append(line)
    flush()
    return lines


def captions_to_text(lines: list[CaptionLine]) -> str:
    return " ".join(line.text for line in lines)
