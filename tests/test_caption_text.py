"""Tests for caption text cleanup, chunk splitting and line breaking."""

import pytest

from podclip.captions.line_breaks import determine_display_mode, optimize_line_breaks, split_to_fit
from podclip.captions.models import CaptionStyle, DisplayMode
from podclip.captions.text import (
    apply_style,
    clean_punctuation,
    normalize_token,
    split_into_chunks,
    tokenize_for_matching,
)


class TestCleanPunctuation:
    def test_period_before_joining_word_is_removed(self):
        assert clean_punctuation("We tried. And it worked") == "We tried and it worked"

    def test_short_fragment_period_is_dropped(self):
        assert clean_punctuation("Yeah. The thing is great.") == "Yeah the thing is great."
        assert clean_punctuation("Oh wow. It shipped early.") == "Oh wow it shipped early."

    def test_abbreviation_is_kept(self):
        assert clean_punctuation("Dr. Smith said hi") == "Dr. Smith said hi"

    def test_long_sentence_boundary_is_kept(self):
        text = "This is a long sentence. Next one starts here"
        assert clean_punctuation(text) == text

    def test_pronoun_i_keeps_capital(self):
        assert clean_punctuation("Right. I think so") == "Right I think so"


class TestStyleAndTokens:
    @pytest.mark.parametrize(
        "style,expected",
        [
            (CaptionStyle.NORMAL, "hello World"),
            (CaptionStyle.UPPERCASE, "HELLO WORLD"),
            (CaptionStyle.LOWERCASE, "hello world"),
            (CaptionStyle.TITLE, "Hello World"),
        ],
    )
    def test_apply_style(self, style, expected):
        assert apply_style("hello World", style) == expected

    def test_normalize_token(self):
        assert normalize_token("Don't!") == "dont"
        assert normalize_token("--") == ""

    def test_tokenize_drops_punctuation_only_tokens(self):
        assert tokenize_for_matching("Well - that's it, folks.") == ["well", "thats", "it", "folks"]


class TestSplitIntoChunks:
    def test_pieces_respect_max_chars(self):
        text = "the quick brown fox jumps over the lazy dog " * 4
        pieces = split_into_chunks(text, max_chars=50)

        assert all(len(p) <= 50 for p in pieces)
        assert " ".join(pieces) == " ".join(text.split())

    def test_overlong_word_is_its_own_chunk(self):
        long_word = "a" * 60
        assert split_into_chunks(f"hi {long_word} there", max_chars=50) == ["hi", long_word, "there"]

    def test_empty_text(self):
        assert split_into_chunks("   ") == []


class TestLineBreaks:
    def test_short_phrase_stays_on_one_line(self):
        assert optimize_line_breaks("Thank you so much") == ["Thank you so much"]

    def test_breaks_before_strong_conjunction(self):
        lines = optimize_line_breaks("I remember the day when we launched the app")
        assert lines == ["I remember the day", "when we launched the app"]

    def test_breaks_after_punctuation(self):
        lines = optimize_line_breaks("We built the prototype, and then we tested it")
        assert lines == ["We built the prototype,", "and then we tested it"]

    def test_balanced_split_without_cues(self):
        lines = optimize_line_breaks("alpha bravo charlie delta echo foxtrot golf")
        assert lines == ["alpha bravo charlie", "delta echo foxtrot golf"]

    def test_overlong_word_is_hard_wrapped(self):
        word = "x" * 40
        assert optimize_line_breaks(word, line_budget=32) == ["x" * 32, "x" * 8]

    def test_fitted_pieces_stay_within_two_lines_and_budget(self):
        text = "Honestly the biggest surprise was how quickly the community adopted it"
        for budget in (20, 24, 32):
            pieces = split_to_fit(text, line_budget=budget)
            assert " ".join(pieces) == text
            for piece in pieces:
                lines = optimize_line_breaks(piece, line_budget=budget)
                assert 1 <= len(lines) <= 2
                assert all(len(line) <= budget for line in lines)

    def test_never_more_than_two_lines(self):
        # 50 characters whose word lengths leave no split under 32 per line
        first, middle, last = "a" * 15, "b" * 18, "c" * 15
        text = f"{first} {middle} {last}"

        assert optimize_line_breaks(text, line_budget=32) == [first, f"{middle} {last}"]
        assert split_to_fit(text, line_budget=32) == [f"{first} {middle}", last]

    def test_overlong_text_keeps_two_lines(self):
        text = "alpha bravo charlie delta echo foxtrot golf hotel india juliet kilo"

        assert len(optimize_line_breaks(text, line_budget=20)) == 2


class TestDisplayMode:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Thank you", DisplayMode.ONE_LINE),
            ("Absolutely.", DisplayMode.ONE_LINE),
            ("Yes, exactly", DisplayMode.TWO_LINE),
            ("this and that", DisplayMode.TWO_LINE),
            ("That was a really long answer", DisplayMode.TWO_LINE),
        ],
    )
    def test_display_mode(self, text, expected):
        assert determine_display_mode(text) == expected
