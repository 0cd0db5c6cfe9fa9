"""Per-frame caption state, computed once per job before rendering."""

from dataclasses import dataclass
from typing import Sequence

from podclip.captions.models import CaptionChunk, MatchedWord
from podclip.captions.text import normalize_token


@dataclass(frozen=True)
class FrameCaptionState:
    """Caption snapshot for one output frame."""

    frame_index: int
    time_ms: float
    chunk: CaptionChunk | None = None
    # Aligned with chunk.words
    word_active: tuple[bool, ...] = ()

    @property
    def has_caption(self) -> bool:
        return self.chunk is not None

    @property
    def active_word_indices(self) -> list[int]:
        """Global word indices highlighted in this frame."""
        if self.chunk is None:
            return []
        return [w.index for w, active in zip(self.chunk.words, self.word_active) if active]


def frame_count_for(duration_ms: int, fps: int) -> int:
    return round(duration_ms / 1000 * fps)


def word_overlaps_frame(word: MatchedWord, frame_start_ms: float, frame_end_ms: float) -> bool:
    """True when the word's [start, end] overlaps the frame window [start, end)."""
    return word.start_ms < frame_end_ms and word.end_ms >= frame_start_ms


def precompute_frame_states(
    chunks: Sequence[CaptionChunk],
    duration_ms: int,
    fps: int,
) -> list[FrameCaptionState]:
    """Resolve the active chunk and highlighted words for every frame.

    Chunks must be ordered and non-overlapping. A single forward pass walks
    frames and chunks together.
    """
    frame_duration_ms = 1000.0 / fps
    states: list[FrameCaptionState] = []
    ci = 0

    for i in range(frame_count_for(duration_ms, fps)):
        t = i * frame_duration_ms
        while ci < len(chunks) and chunks[ci].end_ms < t:
            ci += 1

        chunk = chunks[ci] if ci < len(chunks) and chunks[ci].start_ms <= t else None
        if chunk is None:
            states.append(FrameCaptionState(frame_index=i, time_ms=t))
            continue

        frame_end = t + frame_duration_ms
        states.append(
            FrameCaptionState(
                frame_index=i,
                time_ms=t,
                chunk=chunk,
                word_active=tuple(word_overlaps_frame(w, t, frame_end) for w in chunk.words),
            )
        )

    return states


def map_display_tokens(chunk: CaptionChunk) -> list[list[int | None]]:
    """Map each display token of each line to a position in ``chunk.words``.

    Tokens are matched in order by normalized text; unmatched tokens map to
    None and are drawn without highlight.
    """
    normalized_words = [normalize_token(w.text) for w in chunk.words]
    cursor = 0
    mapping: list[list[int | None]] = []
    for line in chunk.lines:
        line_map: list[int | None] = []
        for token in line.split():
            key = normalize_token(token)
            found = None
            for k in range(cursor, len(normalized_words)):
                if key and normalized_words[k] == key:
                    found = k
                    cursor = k + 1
                    break
            line_map.append(found)
        mapping.append(line_map)
    return mapping
