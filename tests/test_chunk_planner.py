"""
Tests for chunk planning.
"""

import pytest

from multisub.chunk_planner import ChunkPlanner
from multisub.exceptions import ChunkingFailure
from multisub.models import AudioChunk


class TestPlanSpans:

    def test_twelve_minutes_in_five_minute_chunks(self):
        spans = ChunkPlanner(300).plan_spans(720.0)
        assert [s.index for s in spans] == [0, 1, 2]
        assert [s.duration_seconds for s in spans] == [300.0, 300.0, 120.0]
        assert [s.start_seconds for s in spans] == [0.0, 300.0, 600.0]

    def test_exact_multiple(self):
        spans = ChunkPlanner(300).plan_spans(600.0)
        assert len(spans) == 2
        assert spans[-1].end_seconds == 600.0

    def test_shorter_than_one_segment(self):
        spans = ChunkPlanner(300).plan_spans(42.5)
        assert len(spans) == 1
        assert spans[0].duration_seconds == 42.5

    def test_spans_are_contiguous(self):
        spans = ChunkPlanner(7).plan_spans(100.0)
        for prev, nxt in zip(spans, spans[1:]):
            assert prev.end_seconds == pytest.approx(nxt.start_seconds)

    @pytest.mark.parametrize("duration", [0, -5.0, None])
    def test_non_positive_duration_fails(self, duration):
        with pytest.raises(ChunkingFailure):
            ChunkPlanner(300).plan_spans(duration)

    def test_non_positive_segment_length_fails(self):
        with pytest.raises(ChunkingFailure):
            ChunkPlanner(0)


class TestOrderChunks:

    def test_sorts_by_index(self):
        chunks = [AudioChunk(2, "c", 5.0), AudioChunk(0, "a", 5.0), AudioChunk(1, "b", 5.0)]
        ordered = ChunkPlanner.order_chunks(chunks)
        assert [c.path for c in ordered] == ["a", "b", "c"]

    def test_empty_fails(self):
        with pytest.raises(ChunkingFailure):
            ChunkPlanner.order_chunks([])

    def test_gap_fails(self):
        with pytest.raises(ChunkingFailure):
            ChunkPlanner.order_chunks([AudioChunk(0, "a", 5.0), AudioChunk(2, "c", 5.0)])

    def test_duplicate_fails(self):
        with pytest.raises(ChunkingFailure):
            ChunkPlanner.order_chunks([AudioChunk(0, "a", 5.0), AudioChunk(0, "b", 5.0)])
