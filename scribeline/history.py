"""
scribeline.history - Durable transcript history.

The whole history is one JSON document, newest entry first. Every mutation
rewrites it through ``io.write_json`` (temp file, fsync, rename), so a crash
leaves either the previous or the next version on disk, never a mix. Writers
are serialized by a lock; readers never take it.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from scribeline.exceptions import NotFoundError, StorageError
from scribeline.io import read_json, write_json, write_text
from scribeline.jobs.types import TranscriptionResult
from scribeline.utils import count_words, format_duration

logger = logging.getLogger(__name__)

HISTORY_VERSION = 1

SAFE_NAME_RE = re.compile(r"[^\w\- ]")


class HistoryEntry(BaseModel):
    """One persisted transcript. Entries are never modified after creation."""

    model_config = ConfigDict(frozen=True)

    id: str
    source_name: str
    source_kind: str
    transcription_text: str
    word_count: int
    char_count: int
    audio_duration: float
    processing_time: float
    created_at: datetime
    model_id: str | None = None
    language: str | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HistoryStore:
    """Append, list, get, delete and clear transcript history entries.

    Args:
        path: Location of the history JSON document
        max_entries: Keep at most this many entries, dropping the oldest
        clock: Returns the creation time for new entries
    """

    def __init__(
        self,
        path: Path,
        max_entries: int | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.path = Path(path)
        self.max_entries = max_entries
        self.clock = clock
        self._lock = threading.Lock()

    def _read(self) -> list[HistoryEntry]:
        if not self.path.exists():
            return []
        try:
            data = read_json(self.path)
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read history file {self.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
            raise StorageError(f"History file {self.path} has an unexpected layout")
        try:
            return [HistoryEntry.model_validate(item) for item in data["entries"]]
        except ValidationError as e:
            raise StorageError(f"History file {self.path} holds an invalid entry: {e}") from e

    def _write(self, entries: list[HistoryEntry]) -> None:
        write_json(
            self.path,
            {
                "version": HISTORY_VERSION,
                "entries": [entry.model_dump(mode="json") for entry in entries],
            },
        )

    def _new_id(self, created_at: datetime, taken: set[str]) -> str:
        stamp = created_at.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        while True:
            entry_id = f"{stamp}-{uuid.uuid4().hex[:8]}"
            if entry_id not in taken:
                return entry_id

    def append(self, result: TranscriptionResult) -> HistoryEntry:
        """Persist a transcription result as a new, most recent entry."""
        with self._lock:
            entries = self._read()
            created_at = self.clock()
            entry = HistoryEntry(
                id=self._new_id(created_at, {e.id for e in entries}),
                source_name=result.source.name,
                source_kind=result.source.kind,
                transcription_text=result.text,
                word_count=count_words(result.text),
                char_count=len(result.text),
                audio_duration=result.audio_duration,
                processing_time=result.processing_time,
                created_at=created_at,
                model_id=result.model_id,
                language=result.language,
            )
            entries.insert(0, entry)
            if self.max_entries is not None and len(entries) > self.max_entries:
                dropped = len(entries) - self.max_entries
                entries = entries[: self.max_entries]
                logger.debug("History capped at %d entries, dropped %d", self.max_entries, dropped)
            self._write(entries)
        logger.info("Saved history entry %s (%s)", entry.id, entry.source_name)
        return entry

    def list(self, limit: int | None = None) -> list[HistoryEntry]:
        """Return entries, most recent first."""
        if limit is not None and limit < 0:
            raise ValueError("limit cannot be negative")
        entries = self._read()
        return entries if limit is None else entries[:limit]

    def get(self, entry_id: str) -> HistoryEntry:
        for entry in self._read():
            if entry.id == entry_id:
                return entry
        raise NotFoundError(f"History entry not found: {entry_id}")

    def delete(self, entry_id: str) -> None:
        with self._lock:
            entries = self._read()
            remaining = [e for e in entries if e.id != entry_id]
            if len(remaining) == len(entries):
                raise NotFoundError(f"History entry not found: {entry_id}")
            self._write(remaining)
        logger.info("Deleted history entry %s", entry_id)

    def clear(self) -> int:
        """Remove every entry. Returns how many were removed."""
        with self._lock:
            removed = len(self._read())
            self._write([])
        logger.info("Cleared %d history entries", removed)
        return removed

    def count(self) -> int:
        return len(self._read())

    def export_text(self, entry_id: str, dest_dir: Path) -> Path:
        """Write an entry to ``<dest_dir>/<id>_<source name>.txt`` with a metadata header."""
        entry = self.get(entry_id)
        clean_name = SAFE_NAME_RE.sub("", entry.source_name)[:50].strip().replace(" ", "_")
        dest = Path(dest_dir) / f"{entry.id}_{clean_name or 'transcript'}.txt"
        content = "\n".join(
            [
                "# Scribeline Transcription",
                f"# Source: {entry.source_name}",
                f"# Type: {entry.source_kind}",
                f"# Date: {entry.created_at.isoformat()}",
                f"# Duration: {format_duration(entry.audio_duration)}",
                f"# Words: {entry.word_count}",
                f"# Processing Time: {entry.processing_time:.1f}s",
                "# ---",
                "",
                entry.transcription_text,
                "",
            ]
        )
        write_text(dest, content)
        return dest
