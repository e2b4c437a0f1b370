"""Tests for scribeline.transcribe.stitch module."""

from __future__ import annotations

from scribeline.audio.chunking import Chunk
from scribeline.transcribe.engine import InferenceOutput, Segment
from scribeline.transcribe.stitch import Stitcher, find_overlap, normalize_word, overlap_word_budget, stitch

SR = 16000


def chunk(offset_s: float, length_s: float, overlap_s: float = 0.0) -> Chunk:
    return Chunk(int(offset_s * SR), int(length_s * SR), int(overlap_s * SR))


def output(text: str, segments: list[Segment] | None = None, language: str | None = "en") -> InferenceOutput:
    return InferenceOutput(text=text, segments=segments or [], language=language)


class TestHelpers:
    def test_normalize_word(self) -> None:
        assert normalize_word("River,") == "river"
        assert normalize_word("don't") == "don't"

    def test_budget_scales_with_overlap(self) -> None:
        assert overlap_word_budget(0.0) == 0
        assert overlap_word_budget(2.0) == 8

    def test_find_overlap_ignores_case_and_punctuation(self) -> None:
        previous = "we walked down to the River.".split()
        current = "the river was cold".split()
        assert find_overlap(previous, current, budget=8) == 2

    def test_find_overlap_respects_budget(self) -> None:
        previous = "a b c d e".split()
        current = "a b c d e f".split()
        assert find_overlap(previous, current, budget=3) == 0

    def test_no_overlap(self) -> None:
        assert find_overlap(["hello"], ["world"], budget=8) == 0


class TestStitcher:
    def test_removes_duplicated_boundary_words(self) -> None:
        stitcher = Stitcher()
        first = stitcher.add(chunk(0, 30), output("my grandmother would take us to the river"))
        second = stitcher.add(chunk(28, 30, 2), output("to the river every summer"))

        assert first == "my grandmother would take us to the river"
        assert second == "every summer"
        assert stitcher.text == "my grandmother would take us to the river every summer"

    def test_keeps_text_when_overlap_differs(self) -> None:
        stitcher = Stitcher()
        stitcher.add(chunk(0, 30), output("one two three"))
        stitcher.add(chunk(28, 30, 2), output("four five"))
        assert stitcher.text == "one two three four five"

    def test_first_chunk_is_never_trimmed(self) -> None:
        stitcher = Stitcher()
        assert stitcher.add(chunk(0, 30), output("hello world")) == "hello world"

    def test_empty_chunk_contributes_nothing(self) -> None:
        stitcher = Stitcher()
        stitcher.add(chunk(0, 30), output("hello"))
        assert stitcher.add(chunk(28, 30, 2), output("")) == ""
        assert stitcher.text == "hello"

    def test_segments_shifted_to_absolute_time(self) -> None:
        stitcher = Stitcher()
        stitcher.add(chunk(0, 30), output("a", [Segment(0.0, 29.0, "a")]))
        stitcher.add(chunk(28, 30, 2), output("b", [Segment(0.5, 10.0, "b")]))

        assert stitcher.segments == [Segment(0.0, 29.0, "a"), Segment(29.0, 38.0, "b")]

    def test_segments_inside_emitted_range_are_dropped(self) -> None:
        stitcher = Stitcher()
        stitcher.add(chunk(0, 30), output("a", [Segment(0.0, 29.5, "a")]))
        stitcher.add(
            chunk(28, 30, 2),
            output("a b", [Segment(0.0, 1.2, "a"), Segment(1.2, 8.0, "b")]),
        )

        assert [s.text for s in stitcher.segments] == ["a", "b"]
        assert stitcher.segments[1].start == 29.5

    def test_language_from_first_chunk(self) -> None:
        stitcher = Stitcher()
        stitcher.add(chunk(0, 30), output("hola", language="es"))
        stitcher.add(chunk(28, 30, 2), output("amigos", language="pt"))
        assert stitcher.language == "es"


class TestStitch:
    def test_merges_ordered_outputs(self) -> None:
        merged = stitch(
            [
                (chunk(0, 30), output("the quick brown fox")),
                (chunk(28, 30, 2), output("brown fox jumps over")),
                (chunk(56, 34, 2), output("over the lazy dog")),
            ]
        )
        assert merged.text == "the quick brown fox jumps over the lazy dog"
        assert merged.language == "en"
