"""Tests for per-frame caption state precomputation."""

from podclip.captions.frame_state import (
    frame_count_for,
    map_display_tokens,
    precompute_frame_states,
    word_overlaps_frame,
)
from podclip.captions.models import CaptionChunk, MatchedWord
from tests.factories import make_chunk


class TestFrameCount:
    def test_frame_count(self):
        assert frame_count_for(1000, 10) == 10
        assert frame_count_for(2500, 12) == 30
        assert frame_count_for(0, 12) == 0


class TestActiveChunk:
    def test_chunk_active_within_inclusive_bounds(self):
        chunks = [
            make_chunk(0, 300, [("first", 0, 300)]),
            make_chunk(500, 800, [("second", 500, 800)], index=1, first_word_index=1),
        ]

        states = precompute_frame_states(chunks, duration_ms=1000, fps=10)

        active = [s.chunk.index if s.chunk else None for s in states]
        assert active == [0, 0, 0, 0, None, 1, 1, 1, 1, None]

    def test_no_chunks_yields_empty_frames(self):
        states = precompute_frame_states([], duration_ms=500, fps=12)

        assert len(states) == 6
        assert not any(s.has_caption for s in states)
        assert [s.frame_index for s in states] == list(range(6))


class TestWordHighlight:
    def test_boundary_adjacent_words_at_10fps(self):
        """A word ending exactly on a frame start still highlights that frame."""
        chunk = make_chunk(0, 1000, [("one", 100, 200), ("two", 250, 400)])

        states = precompute_frame_states([chunk], duration_ms=1000, fps=10)

        flags = {s.frame_index: s.word_active for s in states}
        assert flags[0] == (False, False)
        assert flags[1] == (True, False)
        assert flags[2] == (True, True)
        assert flags[3] == (False, True)
        assert flags[4] == (False, True)
        assert flags[5] == (False, False)

    def test_overlap_round_trip(self):
        """Every flag equals the overlap test against the frame window."""
        chunk = make_chunk(
            0,
            2000,
            [("a", 0, 83), ("b", 83, 167), ("c", 170, 500), ("d", 500, 501), ("e", 1417, 1999)],
        )
        fps = 12
        frame_ms = 1000 / fps

        states = precompute_frame_states([chunk], duration_ms=2000, fps=fps)

        for state in states:
            t = state.frame_index * frame_ms
            expected = tuple(w.start_ms < t + frame_ms and w.end_ms >= t for w in chunk.words)
            assert state.word_active == expected
            assert state.active_word_indices == [w.index for w, on in zip(chunk.words, expected) if on]

    def test_word_overlaps_frame(self):
        word = MatchedWord(index=0, text="hi", start_ms=100, end_ms=200)

        assert word_overlaps_frame(word, 100, 200)
        assert word_overlaps_frame(word, 200, 300)
        assert not word_overlaps_frame(word, 0, 100)
        assert not word_overlaps_frame(word, 201, 301)


class TestDisplayTokens:
    def test_tokens_map_to_words_in_order(self):
        words = [
            MatchedWord(index=7, text="Hello", start_ms=0, end_ms=100),
            MatchedWord(index=8, text="world", start_ms=100, end_ms=200),
            MatchedWord(index=9, text="again", start_ms=200, end_ms=300),
        ]
        chunk = CaptionChunk(
            index=0,
            start_ms=0,
            end_ms=1500,
            text="Hello, world! Once again",
            lines=["Hello, world!", "Once again"],
            words=words,
        )

        assert map_display_tokens(chunk) == [[0, 1], [None, 2]]
