"""Data types for transcripts and caption chunks."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CaptionStyle(str, Enum):
    """Text casing applied to caption text."""

    NORMAL = "normal"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    TITLE = "title"


class DisplayMode(str, Enum):
    """Caption box layout."""

    ONE_LINE = "one-line"
    TWO_LINE = "two-line"


@dataclass(frozen=True)
class Word:
    """A transcribed word with clip-relative timing in milliseconds."""

    text: str
    start_ms: int
    end_ms: int
    confidence: float = 1.0
    speaker: str | None = None


@dataclass(frozen=True)
class Utterance:
    """A speaker turn with clip-relative timing in milliseconds."""

    speaker: str
    start_ms: int
    end_ms: int
    text: str


@dataclass(frozen=True)
class MatchedWord:
    """A transcript word bound to a caption chunk.

    ``index`` is the word's position in the job-wide word sequence.
    """

    index: int
    text: str
    start_ms: int
    end_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "text": self.text,
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
        }


@dataclass
class CaptionChunk:
    """A display-ready caption with corrected timing."""

    index: int
    start_ms: int
    end_ms: int
    text: str
    lines: list[str]
    words: list[MatchedWord] = field(default_factory=list)
    display_mode: DisplayMode = DisplayMode.TWO_LINE
    speaker: str | None = None
    # True when timing is still the proportional estimate (no word matched)
    estimated: bool = False

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "index": self.index,
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
            "text": self.text,
            "lines": list(self.lines),
            "words": [w.to_dict() for w in self.words],
            "display_mode": self.display_mode.value,
            "speaker": self.speaker,
            "estimated": self.estimated,
        }


@dataclass
class CaptionDiagnostics:
    """Counters collected while building captions for one job."""

    total_chunks: int = 0
    matched_chunks: int = 0
    unmatched_chunks: int = 0
    reanchored_chunks: int = 0
    clamped_chunks: int = 0
    shifted_chunks: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_chunks": self.total_chunks,
            "matched_chunks": self.matched_chunks,
            "unmatched_chunks": self.unmatched_chunks,
            "reanchored_chunks": self.reanchored_chunks,
            "clamped_chunks": self.clamped_chunks,
            "shifted_chunks": self.shifted_chunks,
        }


@dataclass
class CaptionBuild:
    """Result of a caption build: chunks plus diagnostics."""

    chunks: list[CaptionChunk]
    diagnostics: CaptionDiagnostics


@dataclass
class Transcript:
    """Utterances and words returned by the transcription client."""

    utterances: list[Utterance]
    words: list[Word]
    transcript_id: str | None = None
    duration_ms: int | None = None
