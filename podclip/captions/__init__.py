from podclip.captions.engine import CaptionEngine, CaptionTimingConfig
from podclip.captions.frame_state import FrameCaptionState, precompute_frame_states
from podclip.captions.models import (
    CaptionBuild,
    CaptionChunk,
    CaptionDiagnostics,
    CaptionStyle,
    DisplayMode,
    MatchedWord,
    Transcript,
    Utterance,
    Word,
)

__all__ = [
    "CaptionBuild",
    "CaptionChunk",
    "CaptionDiagnostics",
    "CaptionEngine",
    "CaptionStyle",
    "CaptionTimingConfig",
    "DisplayMode",
    "FrameCaptionState",
    "MatchedWord",
    "Transcript",
    "Utterance",
    "Word",
    "precompute_frame_states",
]
