"""Caption synchronization engine.

Turns transcript utterances plus word-level timestamps into ordered,
non-overlapping caption chunks.

Each chunk starts with a proportional timing estimate taken from its
utterance. It is then matched by text against the word sequence, using a
single job-wide cursor so a repeated phrase is never matched twice. When
the estimate shows the chunk noticeably before its words are spoken, the
chunk is re-anchored to the matched words.
"""

import logging
import math
from dataclasses import dataclass
from typing import Sequence

from podclip.captions.line_breaks import determine_display_mode, optimize_line_breaks, split_to_fit
from podclip.captions.models import (
    CaptionBuild,
    CaptionChunk,
    CaptionDiagnostics,
    CaptionStyle,
    MatchedWord,
    Utterance,
    Word,
)
from podclip.captions.text import (
    apply_style,
    clean_punctuation,
    normalize_token,
    split_into_chunks,
    tokenize_for_matching,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptionTimingConfig:
    """Timing and layout parameters for caption building."""

    min_duration_ms: int = 1500
    max_duration_ms: int = 7000
    max_chunk_chars: int = 50
    line_budget: int = 32
    short_phrase_chars: int = 20
    match_tolerance_ms: int = 5000
    reanchor_threshold_ms: int = 500
    lookahead_ms: int = 200
    lookback_ms: int = 150
    # Fraction of a chunk's tokens that must be found for a match
    min_match_ratio: float = 0.5
    # How many transcript words may be skipped between two matched tokens
    match_skip_window: int = 3

    @classmethod
    def from_settings(cls, settings) -> "CaptionTimingConfig":
        return cls(
            min_duration_ms=settings.caption_min_duration_ms,
            max_duration_ms=settings.caption_max_duration_ms,
            max_chunk_chars=settings.caption_max_chunk_chars,
            line_budget=settings.caption_line_budget,
            short_phrase_chars=settings.caption_short_phrase_chars,
            match_tolerance_ms=settings.caption_match_tolerance_ms,
            reanchor_threshold_ms=settings.caption_reanchor_threshold_ms,
            lookahead_ms=settings.caption_lookahead_ms,
            lookback_ms=settings.caption_lookback_ms,
        )


class CaptionEngine:
    """Builds caption chunks for a job's transcript."""

    def __init__(self, config: CaptionTimingConfig | None = None):
        self.config = config or CaptionTimingConfig()

    def build_captions(
        self,
        utterances: Sequence[Utterance],
        words: Sequence[Word],
        style: CaptionStyle = CaptionStyle.NORMAL,
    ) -> list[CaptionChunk]:
        return self.build(utterances, words, style).chunks

    def build(
        self,
        utterances: Sequence[Utterance],
        words: Sequence[Word],
        style: CaptionStyle = CaptionStyle.NORMAL,
    ) -> CaptionBuild:
        """Build caption chunks and the diagnostics collected along the way."""
        cfg = self.config
        diagnostics = CaptionDiagnostics()
        normalized = [normalize_token(w.text) for w in words]
        chunks: list[CaptionChunk] = []
        last_word_index_used = -1

        for utterance in utterances:
            text = apply_style(clean_punctuation(utterance.text), style)
            pieces = [
                fitted
                for piece in split_into_chunks(text, cfg.max_chunk_chars)
                for fitted in split_to_fit(piece, cfg.line_budget)
            ]

            for piece, (est_start, est_end) in zip(pieces, self._estimate_timing(utterance, pieces)):
                matched = self._match_words(
                    piece, est_start, est_end, words, normalized, last_word_index_used + 1
                )
                chunk = CaptionChunk(
                    index=len(chunks),
                    start_ms=est_start,
                    end_ms=est_end,
                    text=piece,
                    lines=optimize_line_breaks(piece, cfg.line_budget, cfg.short_phrase_chars),
                    words=matched,
                    display_mode=determine_display_mode(piece, cfg.short_phrase_chars),
                    speaker=utterance.speaker,
                    estimated=not matched,
                )

                if matched:
                    last_word_index_used = matched[-1].index
                    diagnostics.matched_chunks += 1
                    self._correct_timing(chunk, diagnostics)
                else:
                    diagnostics.unmatched_chunks += 1
                    logger.warning(
                        f"[CAPTIONS] No words matched chunk {chunk.index} "
                        f"({est_start}-{est_end}ms), keeping proportional estimate: {piece!r}"
                    )

                self._clamp(chunk, diagnostics)
                chunks.append(chunk)

        self._resolve_overlaps(chunks, diagnostics)
        diagnostics.total_chunks = len(chunks)

        logger.info(
            f"[CAPTIONS] Built {len(chunks)} chunks from {len(utterances)} utterances / "
            f"{len(words)} words: {diagnostics.to_dict()}"
        )
        return CaptionBuild(chunks=chunks, diagnostics=diagnostics)

    @staticmethod
    def _estimate_timing(utterance: Utterance, pieces: list[str]) -> list[tuple[int, int]]:
        """Spread the utterance span over its pieces by character count."""
        span = max(0, utterance.end_ms - utterance.start_ms)
        total = sum(len(p) for p in pieces) or 1
        timings = []
        before = 0
        for piece in pieces:
            start = utterance.start_ms + (span * before) // total
            before += len(piece)
            end = utterance.start_ms + (span * before) // total
            timings.append((start, end))
        return timings

    def _match_words(
        self,
        text: str,
        est_start: int,
        est_end: int,
        words: Sequence[Word],
        normalized: list[str],
        start_index: int,
    ) -> list[MatchedWord]:
        """Find the chunk's words by content, scanning forward from the cursor.

        Only words starting within the tolerance around the estimated window
        are considered. The first candidate position whose alignment covers
        enough of the chunk's tokens wins.
        """
        cfg = self.config
        tokens = tokenize_for_matching(text)
        if not tokens:
            return []

        low = est_start - cfg.match_tolerance_ms
        high = est_end + cfg.match_tolerance_ms
        required = max(1, math.ceil(len(tokens) * cfg.min_match_ratio))

        for s in range(start_index, len(words)):
            if words[s].start_ms > high:
                break
            if words[s].start_ms < low:
                continue

            anchor = next((t for t in range(min(2, len(tokens))) if tokens[t] == normalized[s]), None)
            if anchor is None:
                continue

            indices = self._align(tokens[anchor + 1:], s, words, normalized, high)
            if len(indices) >= required:
                return [
                    MatchedWord(index=i, text=words[i].text, start_ms=words[i].start_ms, end_ms=words[i].end_ms)
                    for i in indices
                ]
        return []

    def _align(
        self,
        remaining: list[str],
        anchor_index: int,
        words: Sequence[Word],
        normalized: list[str],
        high: int,
    ) -> list[int]:
        indices = [anchor_index]
        j = anchor_index + 1
        for token in remaining:
            for k in range(j, min(j + self.config.match_skip_window, len(words))):
                if words[k].start_ms > high:
                    break
                if normalized[k] == token:
                    indices.append(k)
                    j = k + 1
                    break
        return indices

    def _correct_timing(self, chunk: CaptionChunk, diagnostics: CaptionDiagnostics) -> None:
        cfg = self.config
        first, last = chunk.words[0], chunk.words[-1]
        if first.start_ms - chunk.start_ms > cfg.reanchor_threshold_ms:
            chunk.start_ms = max(0, first.start_ms - cfg.lookahead_ms)
            chunk.end_ms = last.end_ms + cfg.lookback_ms
            diagnostics.reanchored_chunks += 1

    def _clamp(self, chunk: CaptionChunk, diagnostics: CaptionDiagnostics) -> None:
        """Clamp duration into bounds by moving the end only."""
        cfg = self.config
        if chunk.duration_ms < cfg.min_duration_ms:
            chunk.end_ms = chunk.start_ms + cfg.min_duration_ms
            diagnostics.clamped_chunks += 1
        elif chunk.duration_ms > cfg.max_duration_ms:
            chunk.end_ms = chunk.start_ms + cfg.max_duration_ms
            diagnostics.clamped_chunks += 1

    def _resolve_overlaps(self, chunks: list[CaptionChunk], diagnostics: CaptionDiagnostics) -> None:
        """Make chunks ordered and non-overlapping.

        The previous chunk is trimmed when it stays at least the minimum
        duration; otherwise the current chunk is pushed to start where the
        previous one ends.
        """
        cfg = self.config
        for i in range(1, len(chunks)):
            prev, chunk = chunks[i - 1], chunks[i]
            if chunk.start_ms >= prev.end_ms:
                continue

            if chunk.start_ms - prev.start_ms >= cfg.min_duration_ms:
                prev.end_ms = chunk.start_ms
            else:
                duration = min(max(chunk.duration_ms, cfg.min_duration_ms), cfg.max_duration_ms)
                chunk.start_ms = prev.end_ms
                chunk.end_ms = chunk.start_ms + duration
            diagnostics.shifted_chunks += 1
