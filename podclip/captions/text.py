"""Caption text cleanup, styling and normalization."""

import re

from podclip.captions.models import CaptionStyle

# Words that continue a sentence; a period right before one is an ASR artifact
JOINING_WORDS = frozenset(
    {
        "and", "but", "or", "so", "because", "cause", "then", "which",
        "that", "like", "plus", "yet", "nor", "while", "whereas",
    }
)

# Lowercased when a spurious period before them is removed
LOWERABLE_WORDS = JOINING_WORDS | frozenset(
    {"the", "a", "an", "it", "we", "you", "they", "this", "there", "he", "she", "my", "our"}
)

ABBREVIATIONS = frozenset({"mr", "mrs", "ms", "dr", "st", "vs", "etc", "jr", "sr", "prof"})

SHORT_FRAGMENT_WORDS = 3

_NON_WORD = re.compile(r"[^\w]+")


def normalize_token(text: str) -> str:
    """Lowercase and strip everything but letters and digits."""
    return _NON_WORD.sub("", text.lower())


def tokenize_for_matching(text: str) -> list[str]:
    """Split text into normalized tokens, dropping punctuation-only tokens."""
    tokens = (normalize_token(t) for t in text.split())
    return [t for t in tokens if t]


def _bare(token: str) -> str:
    return re.sub(r"[^\w']", "", token).lower()


def _lower_first(word: str) -> str:
    if word == "I" or word.startswith("I'"):
        return word
    return word[:1].lower() + word[1:]


def _is_abbreviation(token: str) -> bool:
    body = token[:-1]
    return _bare(body) in ABBREVIATIONS or "." in body


def clean_punctuation(text: str) -> str:
    """Remove transcription punctuation artifacts.

    - A period before a joining word ("We tried. And it worked") is dropped.
    - A period closing a short fragment ("Yeah. The thing is") is dropped.
    """
    tokens = text.split()
    out: list[str] = []
    fragment_len = 0

    for i, token in enumerate(tokens):
        fragment_len += 1
        has_next = i + 1 < len(tokens)

        if (
            has_next
            and token.endswith(".")
            and not token.endswith("..")
            and not _is_abbreviation(token)
        ):
            next_key = _bare(tokens[i + 1])
            if next_key in JOINING_WORDS:
                out.append(token[:-1])
                tokens[i + 1] = _lower_first(tokens[i + 1])
                continue
            if fragment_len <= SHORT_FRAGMENT_WORDS:
                out.append(token[:-1])
                if next_key in LOWERABLE_WORDS:
                    tokens[i + 1] = _lower_first(tokens[i + 1])
                continue

        if token.endswith((".", "!", "?")):
            fragment_len = 0
        out.append(token)

    return " ".join(out)


def apply_style(text: str, style: CaptionStyle) -> str:
    """Apply the requested casing."""
    if style == CaptionStyle.UPPERCASE:
        return text.upper()
    if style == CaptionStyle.LOWERCASE:
        return text.lower()
    if style == CaptionStyle.TITLE:
        return " ".join(w[:1].upper() + w[1:].lower() for w in text.split())
    return text


def split_into_chunks(text: str, max_chars: int = 50) -> list[str]:
    """Greedy split at word boundaries into pieces of at most ``max_chars``.

    A single word longer than ``max_chars`` becomes its own chunk.
    """
    words = text.split()
    if not words:
        return []

    chunks: list[str] = []
    current: list[str] = []
    current_len = 0
    for word in words:
        added = len(word) if not current else current_len + 1 + len(word)
        if current and added > max_chars:
            chunks.append(" ".join(current))
            current = [word]
            current_len = len(word)
        else:
            current.append(word)
            current_len = added
    if current:
        chunks.append(" ".join(current))
    return chunks
