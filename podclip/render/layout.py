"""Frame layout geometry.

All positions derive from a 375pt-wide phone layout scaled to the output
width. Values are fixed per job; only the progress fill, the time label
and the watermark bars change from frame to frame.
"""

import math
from dataclasses import dataclass

ASPECT_RATIO_DIMENSIONS: dict[str, tuple[int, int]] = {
    "9:16": (1080, 1920),
    "1:1": (1080, 1080),
    "16:9": (1920, 1080),
}

BASE_LAYOUT_WIDTH = 375
WATERMARK_BAR_HEIGHTS = (6, 10, 8, 12, 7)


def wrap_text(text: str, max_chars_per_line: int) -> list[str]:
    """Greedy word wrap."""
    lines: list[str] = []
    current = ""
    for word in text.split():
        if not current:
            current = word
        elif len(current) + 1 + len(word) <= max_chars_per_line:
            current = f"{current} {word}"
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def format_time(milliseconds: float) -> str:
    """Format as M:SS."""
    total_seconds = int(milliseconds // 1000)
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"


@dataclass(frozen=True)
class FrameLayout:
    width: int
    height: int
    scale: float
    margin_x: int
    content_width: int
    podcast_name_lines: tuple[str, ...]
    podcast_name_y: int
    podcast_name_size: int
    artwork_size: int
    artwork_x: int
    artwork_y: int
    artwork_radius: int
    episode_title_lines: tuple[str, ...]
    episode_title_y: int
    episode_title_size: int
    episode_line_height: int
    progress_x: int
    progress_y: int
    progress_width: int
    progress_height: int
    time_label_y: int
    time_label_size: int
    watermark_x: int
    watermark_y: int
    watermark_size: int
    caption_y: int
    caption_size: int
    caption_line_height: int

    @classmethod
    def build(cls, aspect_ratio: str, podcast_name: str, episode_title: str) -> "FrameLayout":
        width, height = ASPECT_RATIO_DIMENSIONS[aspect_ratio]
        scale = width / BASE_LAYOUT_WIDTH

        margin_x = int(width * 0.08)
        content_width = width - margin_x * 2
        artwork_size = math.floor(140 * scale)

        name_lines = tuple(wrap_text((podcast_name or "Podcast").upper(), 18))
        title_lines = tuple(wrap_text(episode_title or "Podcast Episode", 35))
        name_size = math.floor(26 * scale)
        title_size = math.floor(20 * scale)
        line_height = math.floor(24 * scale)
        gap = math.floor(15 * scale)

        # Bottom 20% is reserved for captions
        available_height = height * 0.80
        name_height = name_size * len(name_lines)
        title_height = title_size * len(title_lines)
        content_height = (
            name_height + gap + artwork_size + gap + title_height
            + math.floor(8 * scale) + math.floor(8 * scale)
            + math.floor(10 * scale) + math.floor(30 * scale)
        )
        start_y = max(0.0, (available_height - content_height) / 2)

        podcast_name_y = start_y
        artwork_y = start_y + name_height + gap
        episode_title_y = artwork_y + artwork_size + gap
        episode_title_bottom = episode_title_y + (len(title_lines) - 1) * line_height + title_size

        progress_y = episode_title_bottom + 15 * scale
        progress_height = max(2, round(6 * scale))
        progress_bottom = progress_y + progress_height

        watermark_y = height - 20 * scale
        caption_y = progress_bottom + (watermark_y - progress_bottom) * 0.3

        return cls(
            width=width,
            height=height,
            scale=scale,
            margin_x=margin_x,
            content_width=content_width,
            podcast_name_lines=name_lines,
            podcast_name_y=math.floor(podcast_name_y),
            podcast_name_size=name_size,
            artwork_size=artwork_size,
            artwork_x=(width - artwork_size) // 2,
            artwork_y=math.floor(artwork_y),
            artwork_radius=math.floor(20 * scale),
            episode_title_lines=title_lines,
            episode_title_y=math.floor(episode_title_y),
            episode_title_size=title_size,
            episode_line_height=line_height,
            progress_x=margin_x,
            progress_y=math.floor(progress_y),
            progress_width=math.floor(width * 0.84),
            progress_height=progress_height,
            time_label_y=math.floor(progress_bottom + 8 * scale),
            time_label_size=math.floor(12 * scale),
            watermark_x=math.floor(width - 20 * scale - 60 * scale),
            watermark_y=math.floor(watermark_y),
            watermark_size=math.floor(12 * scale),
            caption_y=math.floor(caption_y),
            caption_size=math.floor(22 * scale),
            caption_line_height=math.floor(30 * scale),
        )

    def progress_fill(self, progress: float) -> int:
        """Filled width of the progress bar for ``progress`` in [0, 1]."""
        return math.floor(self.progress_width * min(1.0, max(0.0, progress)))

    def watermark_bars(self, frame_index: int) -> list[tuple[int, int, int, int]]:
        """Animated bar rectangles (x0, y0, x1, y1) for a frame."""
        bar_width = max(1, round(2 * self.scale))
        spacing = max(1, round(2 * self.scale))
        center_y = self.watermark_y - 8 * self.scale
        bars = []
        x = self.watermark_x
        for i, base in enumerate(WATERMARK_BAR_HEIGHTS):
            phase = frame_index * 0.1 + i * 0.3
            animated = base * self.scale * (0.6 + 0.4 * math.sin(phase))
            y0 = math.floor(center_y - animated / 2)
            bars.append((x, y0, x + bar_width, y0 + max(1, math.floor(animated))))
            x += bar_width + spacing
        return bars
