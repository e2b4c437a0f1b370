"""Tests for scribeline.utils module."""

from __future__ import annotations

from scribeline.utils import count_words, format_bytes, format_duration, format_timestamp


class TestFormatDuration:
    def test_seconds_only(self) -> None:
        assert format_duration(45.0) == "0:45"

    def test_minutes_and_seconds(self) -> None:
        assert format_duration(125.0) == "2:05"

    def test_hours_minutes_seconds(self) -> None:
        assert format_duration(3725.0) == "1:02:05"

    def test_float_seconds_truncate(self) -> None:
        assert format_duration(90.7) == "1:30"


class TestFormatTimestamp:
    def test_zero(self) -> None:
        assert format_timestamp(0.0) == "00:00:00"

    def test_always_includes_hours(self) -> None:
        assert format_timestamp(65.4) == "00:01:05"

    def test_over_an_hour(self) -> None:
        assert format_timestamp(3725.9) == "01:02:05"

    def test_negative_clamps_to_zero(self) -> None:
        assert format_timestamp(-3.0) == "00:00:00"


class TestFormatBytes:
    def test_bytes(self) -> None:
        assert format_bytes(512) == "512.0 B"

    def test_megabytes(self) -> None:
        assert format_bytes(145 * 1024 * 1024) == "145.0 MB"

    def test_gigabytes(self) -> None:
        assert format_bytes(1.5 * 1024**3) == "1.5 GB"


class TestCountWords:
    def test_counts_whitespace_separated_words(self) -> None:
        assert count_words("hello   world\nagain") == 3

    def test_empty(self) -> None:
        assert count_words("") == 0
