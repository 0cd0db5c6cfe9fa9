"""Tests for Pillow frame rendering and layout geometry."""

import io

import pytest
from PIL import Image

from podclip.captions.frame_state import FrameCaptionState
from podclip.render.frame_renderer import FrameRenderer, FrameTheme, hex_to_rgba, prepare_artwork
from podclip.render.layout import FrameLayout, format_time, wrap_text
from tests.factories import make_chunk

HIGHLIGHT = hex_to_rgba(FrameTheme().highlight)


@pytest.fixture(scope="module")
def renderer() -> FrameRenderer:
    layout = FrameLayout.build("1:1", "The Daily Build", "Episode 42: Shipping")
    return FrameRenderer(layout, duration_ms=2000)


def caption_state(active: tuple[bool, bool]) -> FrameCaptionState:
    chunk = make_chunk(0, 2000, [("HELLO", 0, 900), ("WORLD", 900, 1900)])
    return FrameCaptionState(frame_index=3, time_ms=250, chunk=chunk, word_active=active)


def colors(image: Image.Image) -> set:
    return {color for _, color in image.getcolors(maxcolors=image.width * image.height)}


class TestLayout:
    @pytest.mark.parametrize("ratio,size", [("9:16", (1080, 1920)), ("1:1", (1080, 1080)), ("16:9", (1920, 1080))])
    def test_dimensions(self, ratio, size):
        layout = FrameLayout.build(ratio, "Show", "Episode")
        assert (layout.width, layout.height) == size

    def test_progress_fill_is_clamped(self):
        layout = FrameLayout.build("9:16", "Show", "Episode")

        assert layout.progress_fill(-0.5) == 0
        assert layout.progress_fill(0.5) == layout.progress_width // 2
        assert layout.progress_fill(2.0) == layout.progress_width

    def test_watermark_bars_animate(self):
        layout = FrameLayout.build("9:16", "Show", "Episode")
        assert layout.watermark_bars(0) != layout.watermark_bars(10)
        assert len(layout.watermark_bars(0)) == 5

    def test_wrap_and_format(self):
        assert wrap_text("the quick brown fox", 10) == ["the quick", "brown fox"]
        assert format_time(65_900) == "1:05"


class TestFrameRenderer:
    def test_frame_size(self, renderer):
        frame = renderer.render_frame(FrameCaptionState(frame_index=0, time_ms=0), frame_count=24)
        assert frame.size == (1080, 1080)

    def test_no_caption_has_no_highlight(self, renderer):
        frame = renderer.render_frame(FrameCaptionState(frame_index=0, time_ms=0), frame_count=24)
        assert HIGHLIGHT not in colors(frame)

    def test_active_word_is_highlighted(self, renderer):
        frame = renderer.render_frame(caption_state((True, False)), frame_count=24)
        assert HIGHLIGHT in colors(frame)

    def test_inactive_words_are_not_highlighted(self, renderer):
        frame = renderer.render_frame(caption_state((False, False)), frame_count=24)
        assert HIGHLIGHT not in colors(frame)

    def test_render_all_writes_numbered_frames(self, renderer, tmp_path):
        states = [FrameCaptionState(frame_index=i, time_ms=i * 500) for i in range(3)]

        count = renderer.render_all(states, tmp_path / "frames")

        assert count == 3
        assert sorted(p.name for p in (tmp_path / "frames").iterdir()) == [
            "frame_000000.png",
            "frame_000001.png",
            "frame_000002.png",
        ]


class TestArtwork:
    def test_prepare_artwork_rounds_corners(self):
        buf = io.BytesIO()
        Image.new("RGB", (300, 200), (200, 30, 30)).save(buf, format="PNG")

        artwork = prepare_artwork(buf.getvalue(), size=100, radius=20)

        assert artwork.size == (100, 100)
        assert artwork.getpixel((0, 0))[3] == 0
        assert artwork.getpixel((50, 50)) == (200, 30, 30, 255)

    def test_undecodable_artwork_falls_back(self):
        assert prepare_artwork(b"<html>not an image</html>", size=100, radius=20) is None
        assert prepare_artwork(None, size=100, radius=20) is None

    def test_hex_to_rgba(self):
        assert hex_to_rgba("#fff") == (255, 255, 255, 255)
        assert hex_to_rgba("#ffffff33") == (255, 255, 255, 51)
