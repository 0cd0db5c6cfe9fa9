"""Frame rendering with Pillow.

Everything that does not change between frames (background, podcast name,
rounded artwork, episode title) is drawn once into a base image. Each frame
copies the base and draws the progress bar, time labels, watermark bars
and the active caption with word highlights.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from PIL import Image, ImageDraw, ImageFont, ImageOps

from podclip.captions.frame_state import FrameCaptionState, map_display_tokens
from podclip.render.layout import FrameLayout, format_time

logger = logging.getLogger(__name__)

FONT_CANDIDATES = {
    "regular": [
        "/System/Library/Fonts/HelveticaNeue.ttc",
        "/System/Library/Fonts/Helvetica.ttc",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "/usr/share/fonts/opentype/noto/NotoSans-Regular.ttf",
    ],
    "bold": [
        "/System/Library/Fonts/HelveticaNeue.ttc",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/usr/share/fonts/opentype/noto/NotoSans-Bold.ttf",
    ],
}

FRAME_FILENAME = "frame_{:06d}.png"


def hex_to_rgba(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = "".join(c * 2 for c in hex_color)
    r = int(hex_color[0:2], 16)
    g = int(hex_color[2:4], 16)
    b = int(hex_color[4:6], 16)
    # 8-char hex (RRGGBBAA): embedded alpha overrides the parameter
    if len(hex_color) == 8:
        alpha = int(hex_color[6:8], 16)
    return (r, g, b, alpha)


def load_font(size: int, weight: str = "regular") -> ImageFont.ImageFont:
    for path in FONT_CANDIDATES.get(weight, []) + FONT_CANDIDATES["regular"]:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue
    logger.warning("[RENDER] No suitable font found, using PIL default")
    return ImageFont.load_default(size=size)


def prepare_artwork(data: Optional[bytes], size: int, radius: int) -> Optional[Image.Image]:
    """Resize artwork to cover a square and round its corners."""
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as img:
            fitted = ImageOps.fit(img.convert("RGB"), (size, size), Image.LANCZOS)
    except (OSError, ValueError) as e:
        logger.warning(f"[RENDER] Could not decode artwork, using placeholder: {e}")
        return None

    mask = Image.new("L", (size, size), 0)
    ImageDraw.Draw(mask).rounded_rectangle((0, 0, size - 1, size - 1), radius=radius, fill=255)
    rounded = fitted.convert("RGBA")
    rounded.putalpha(mask)
    return rounded


@dataclass(frozen=True)
class FrameTheme:
    background: str = "#12121f"
    text: str = "#ffffff"
    muted: str = "#a9a9c2"
    accent: str = "#7b61ff"
    track: str = "#ffffff33"
    caption: str = "#ffffff"
    highlight: str = "#ffd60a"
    caption_stroke: str = "#000000"


class FrameRenderer:
    """Renders every frame of one job."""

    def __init__(
        self,
        layout: FrameLayout,
        duration_ms: int,
        artwork: Optional[Image.Image] = None,
        theme: Optional[FrameTheme] = None,
    ):
        self.layout = layout
        self.duration_ms = duration_ms
        self.theme = theme or FrameTheme()

        self._name_font = load_font(layout.podcast_name_size, "bold")
        self._title_font = load_font(layout.episode_title_size)
        self._small_font = load_font(layout.time_label_size)
        self._watermark_font = load_font(layout.watermark_size, "bold")
        self._caption_font = load_font(layout.caption_size, "bold")

        self._base = self._render_base(artwork)
        # chunk index -> display token mapping
        self._token_maps: dict[int, list[list[Optional[int]]]] = {}

    def _render_base(self, artwork: Optional[Image.Image]) -> Image.Image:
        layout, theme = self.layout, self.theme
        base = Image.new("RGBA", (layout.width, layout.height), hex_to_rgba(theme.background))
        draw = ImageDraw.Draw(base)

        y = layout.podcast_name_y
        for line in layout.podcast_name_lines:
            self._draw_centered(draw, line, y, self._name_font, hex_to_rgba(theme.muted))
            y += layout.podcast_name_size

        box = (
            layout.artwork_x,
            layout.artwork_y,
            layout.artwork_x + layout.artwork_size,
            layout.artwork_y + layout.artwork_size,
        )
        if artwork is not None:
            base.alpha_composite(artwork, (layout.artwork_x, layout.artwork_y))
        else:
            draw.rounded_rectangle(box, radius=layout.artwork_radius, fill=hex_to_rgba(theme.accent))

        y = layout.episode_title_y
        for line in layout.episode_title_lines:
            self._draw_centered(draw, line, y, self._title_font, hex_to_rgba(theme.text))
            y += layout.episode_line_height

        draw.rounded_rectangle(
            (
                layout.progress_x,
                layout.progress_y,
                layout.progress_x + layout.progress_width,
                layout.progress_y + layout.progress_height,
            ),
            radius=layout.progress_height // 2,
            fill=hex_to_rgba(theme.track),
        )
        return base

    def _draw_centered(self, draw: ImageDraw.ImageDraw, text: str, y: int, font, fill) -> None:
        width = draw.textlength(text, font=font)
        draw.text(((self.layout.width - width) / 2, y), text, font=font, fill=fill)

    def render_frame(self, state: FrameCaptionState, frame_count: int) -> Image.Image:
        frame = self._base.copy()
        draw = ImageDraw.Draw(frame)
        progress = state.frame_index / max(1, frame_count - 1)

        self._draw_progress(draw, progress)
        self._draw_watermark(draw, state.frame_index)
        if state.chunk is not None:
            self._draw_caption(draw, state)
        return frame

    def _draw_progress(self, draw: ImageDraw.ImageDraw, progress: float) -> None:
        layout, theme = self.layout, self.theme
        fill = layout.progress_fill(progress)
        if fill > 0:
            draw.rounded_rectangle(
                (
                    layout.progress_x,
                    layout.progress_y,
                    layout.progress_x + fill,
                    layout.progress_y + layout.progress_height,
                ),
                radius=layout.progress_height // 2,
                fill=hex_to_rgba(theme.accent),
            )

        muted = hex_to_rgba(theme.muted)
        current = format_time(progress * self.duration_ms)
        total = format_time(self.duration_ms)
        draw.text((layout.progress_x, layout.time_label_y), current, font=self._small_font, fill=muted)
        total_width = draw.textlength(total, font=self._small_font)
        draw.text(
            (layout.progress_x + layout.progress_width - total_width, layout.time_label_y),
            total,
            font=self._small_font,
            fill=muted,
        )

    def _draw_watermark(self, draw: ImageDraw.ImageDraw, frame_index: int) -> None:
        color = hex_to_rgba(self.theme.muted)
        bars = self.layout.watermark_bars(frame_index)
        for bar in bars:
            draw.rectangle(bar, fill=color)
        text_x = bars[-1][2] + round(4 * self.layout.scale)
        text_y = self.layout.watermark_y - round(2 * self.layout.scale) - self.layout.watermark_size
        draw.text((text_x, text_y), "podclip", font=self._watermark_font, fill=color)

    def _draw_caption(self, draw: ImageDraw.ImageDraw, state: FrameCaptionState) -> None:
        chunk = state.chunk
        token_map = self._token_maps.get(chunk.index)
        if token_map is None:
            token_map = map_display_tokens(chunk)
            self._token_maps[chunk.index] = token_map

        theme, layout = self.theme, self.layout
        normal = hex_to_rgba(theme.caption)
        highlight = hex_to_rgba(theme.highlight)
        stroke = hex_to_rgba(theme.caption_stroke)
        stroke_width = max(1, round(1.5 * layout.scale))
        space = draw.textlength(" ", font=self._caption_font)

        y = layout.caption_y
        for line, line_map in zip(chunk.lines, token_map):
            tokens = line.split()
            widths = [draw.textlength(t, font=self._caption_font) for t in tokens]
            x = (layout.width - (sum(widths) + space * (len(tokens) - 1))) / 2
            for token, width, word_pos in zip(tokens, widths, line_map):
                active = word_pos is not None and state.word_active[word_pos]
                draw.text(
                    (x, y),
                    token,
                    font=self._caption_font,
                    fill=highlight if active else normal,
                    stroke_width=stroke_width,
                    stroke_fill=stroke,
                )
                x += width + space
            y += layout.caption_line_height

    def render_all(self, states: Sequence[FrameCaptionState], output_dir: Path) -> int:
        """Write ``frame_%06d.png`` for every state. Returns the frame count."""
        output_dir.mkdir(parents=True, exist_ok=True)
        frame_count = len(states)
        for state in states:
            frame = self.render_frame(state, frame_count)
            frame.convert("RGB").save(output_dir / FRAME_FILENAME.format(state.frame_index), compress_level=1)
        logger.info(f"[RENDER] Wrote {frame_count} frames to {output_dir}")
        return frame_count
