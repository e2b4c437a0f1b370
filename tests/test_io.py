"""Tests for scribeline.io module - durable JSON and text writes."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from scribeline.io import fsync_dir, read_json, write_json, write_text


class TestReadJson:
    def test_reads_written_document(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.json"
        path.write_text(json.dumps({"entries": [1, 2]}), encoding="utf-8")

        assert read_json(path) == {"entries": [1, 2]}

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_json(tmp_path / "missing.json")

    def test_invalid_json_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text('{"entries": [', encoding="utf-8")

        with pytest.raises(json.JSONDecodeError):
            read_json(path)


class TestWriteJson:
    def test_pretty_prints_unicode(self, tmp_path: Path) -> None:
        path = tmp_path / "history.json"
        write_json(path, {"text": "¿Dónde está la biblioteca?"})

        content = path.read_text(encoding="utf-8")
        assert "¿Dónde" in content
        assert "\\u" not in content
        assert "\n  " in content

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        path = tmp_path / "a" / "b" / "doc.json"
        write_json(path, {"ok": True})

        assert read_json(path) == {"ok": True}

    def test_replaces_existing_file_without_leftovers(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.json"
        write_json(path, {"version": 1})
        write_json(path, {"version": 2})

        assert read_json(path) == {"version": 2}
        assert not list(tmp_path.glob("*.tmp"))

    def test_failed_write_keeps_previous_version(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.json"
        write_json(path, {"version": 1})

        with pytest.raises(TypeError):
            write_json(path, {"version": object()})

        assert read_json(path) == {"version": 1}
        assert not list(tmp_path.glob("*.tmp"))


class TestText:
    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "notes" / "transcript.txt"
        write_text(path, "Hola mundo 🎉\n")

        assert path.read_text(encoding="utf-8") == "Hola mundo 🎉\n"
        assert not list(path.parent.glob("*.tmp"))


class TestFsyncDir:
    def test_accepts_existing_directory(self, tmp_path: Path) -> None:
        fsync_dir(tmp_path)
