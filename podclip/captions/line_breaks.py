"""Two-line layout for caption chunks.

Break preference, in order:
1. before a strong subordinating conjunction
2. after punctuation, or before a coordinating conjunction
3. balanced word split
4. nearest split around the middle that fits the line budget
5. otherwise the split with the shortest longest line

Never more than two lines.
"""

import re

from podclip.captions.models import DisplayMode

STRONG_CONJUNCTIONS = frozenset(
    {
        "where", "that", "which", "because", "when", "while", "although",
        "though", "unless", "since", "whether", "who", "whose", "until",
        "if", "before", "after",
    }
)

COORDINATING_CONJUNCTIONS = frozenset({"and", "but", "or", "so", "yet", "nor"})

BREAK_PUNCTUATION = (",", ";", ":", "-", "—")

_INTERNAL_PUNCTUATION = re.compile(r"[,;:—]|\s-\s")


def _bare(word: str) -> str:
    return re.sub(r"[^\w']", "", word).lower()


def _lines_for(words: list[str], k: int) -> tuple[str, str]:
    return " ".join(words[:k]), " ".join(words[k:])


def _fits(words: list[str], k: int, budget: int) -> bool:
    first, second = _lines_for(words, k)
    return len(first) <= budget and len(second) <= budget


def _imbalance(words: list[str], k: int) -> int:
    first, second = _lines_for(words, k)
    return abs(len(first) - len(second))


def _best(words: list[str], candidates: list[int], budget: int) -> int | None:
    fitting = [k for k in candidates if _fits(words, k, budget)]
    if not fitting:
        return None
    # Ties resolve to the earlier split so output is stable
    return min(fitting, key=lambda k: (_imbalance(words, k), k))


def _fits_two_lines(words: list[str], budget: int) -> bool:
    if len(" ".join(words)) <= budget:
        return True
    return any(_fits(words, k, budget) for k in range(1, len(words)))


def split_to_fit(text: str, line_budget: int = 32) -> list[str]:
    """Split text into pieces that each lay out in at most two lines.

    A word longer than ``line_budget`` becomes its own piece.
    """
    pieces: list[str] = []
    current: list[str] = []
    for word in text.split():
        if current and not _fits_two_lines(current + [word], line_budget):
            pieces.append(" ".join(current))
            current = [word]
        else:
            current.append(word)
    if current:
        pieces.append(" ".join(current))
    return pieces


def optimize_line_breaks(text: str, line_budget: int = 32, short_phrase_chars: int = 20) -> list[str]:
    """Split caption text into one or two display lines.

    Lines stay within ``line_budget`` whenever the text can be laid out that
    way; use :func:`split_to_fit` first to guarantee it.
    """
    text = " ".join(text.split())
    if not text:
        return []
    if len(text) <= short_phrase_chars:
        return [text]

    words = text.split()
    if len(words) == 1:
        if len(text) <= line_budget:
            return [text]
        return [text[:line_budget], text[line_budget:]]

    splits = range(1, len(words))

    strong = [k for k in splits if _bare(words[k]) in STRONG_CONJUNCTIONS]
    k = _best(words, strong, line_budget)

    if k is None:
        soft = [
            k
            for k in splits
            if words[k - 1].endswith(BREAK_PUNCTUATION)
            or _bare(words[k]) in COORDINATING_CONJUNCTIONS
        ]
        k = _best(words, soft, line_budget)

    if k is None:
        middle = len(words) // 2
        if _fits(words, middle, line_budget):
            k = middle
        else:
            for delta in range(1, len(words)):
                for candidate in (middle - delta, middle + delta):
                    if 0 < candidate < len(words) and _fits(words, candidate, line_budget):
                        k = candidate
                        break
                if k is not None:
                    break

    if k is None:
        # Nothing fits; keep two lines with the shortest longest line
        k = min(splits, key=lambda k: (max(len(line) for line in _lines_for(words, k)), k))

    return list(_lines_for(words, k))


def determine_display_mode(text: str, short_phrase_chars: int = 20) -> DisplayMode:
    """``one-line`` only for short phrases without internal punctuation or conjunctions."""
    stripped = text.strip().rstrip(".!?")
    if len(stripped) > short_phrase_chars:
        return DisplayMode.TWO_LINE
    if _INTERNAL_PUNCTUATION.search(stripped):
        return DisplayMode.TWO_LINE
    joiners = STRONG_CONJUNCTIONS | COORDINATING_CONJUNCTIONS
    if any(_bare(w) in joiners for w in stripped.split()):
        return DisplayMode.TWO_LINE
    return DisplayMode.ONE_LINE
