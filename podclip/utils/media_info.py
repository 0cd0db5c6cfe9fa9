"""Media file information utilities using FFprobe."""

import json
import subprocess
from dataclasses import dataclass


@dataclass
class MediaInfo:
    """Media file information."""

    duration_ms: int | None = None
    width: int | None = None
    height: int | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    has_video: bool = False
    has_audio: bool = False


def _run_ffprobe(file_path: str, ffprobe_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    cmd = [
        ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0:
        raise RuntimeError(f"ffprobe failed: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse ffprobe output: {e}")


def parse_media_info(data: dict) -> MediaInfo:
    info = MediaInfo()
    duration = data.get("format", {}).get("duration")
    if duration is not None:
        info.duration_ms = int(float(duration) * 1000)

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")
        if codec_type == "video" and not info.has_video:
            info.has_video = True
            info.video_codec = stream.get("codec_name")
            info.width = stream.get("width")
            info.height = stream.get("height")
        elif codec_type == "audio" and not info.has_audio:
            info.has_audio = True
            info.audio_codec = stream.get("codec_name")
    return info


def get_media_info(file_path: str, ffprobe_path: str = "ffprobe") -> MediaInfo:
    """
    Probe a media file.

    Raises:
        RuntimeError: If ffprobe fails
    """
    return parse_media_info(_run_ffprobe(file_path, ffprobe_path, "-show_format", "-show_streams"))
