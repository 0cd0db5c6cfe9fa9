"""Audio segment extraction: download the episode, cut the requested range."""

import asyncio
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from podclip.exceptions import TransientStageError

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; PodclipBot/1.0)"
MIN_AUDIO_BYTES = 1000


def sanitize_url(url: str) -> str:
    """Drop query string and fragment (signed URLs carry credentials there)."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def detect_audio_format(header: bytes) -> Optional[str]:
    """Identify common audio containers from their first bytes."""
    if header.startswith(b"ID3"):
        return "mp3"
    if len(header) >= 2 and header[0] == 0xFF and (header[1] & 0xE0) == 0xE0:
        return "mp3"
    if header[4:8] == b"ftyp":
        return "m4a"
    if header.startswith(b"RIFF") and header[8:12] == b"WAVE":
        return "wav"
    if header.startswith(b"OggS"):
        return "ogg"
    if header.startswith(b"fLaC"):
        return "flac"
    return None


def validate_audio_file(path: Path, large_warning_bytes: int = 50 * 1024 * 1024) -> Optional[str]:
    """Reject empty or error-page-sized downloads; return the detected format."""
    size = path.stat().st_size
    if size == 0:
        raise TransientStageError("Downloaded audio file is empty", stage="extracting")
    if size < MIN_AUDIO_BYTES:
        raise TransientStageError(
            f"Downloaded audio file is only {size} bytes, likely an error page", stage="extracting"
        )
    if size > large_warning_bytes:
        logger.warning(f"[EXTRACT] Large audio file: {size // (1024 * 1024)}MB")

    with path.open("rb") as f:
        header = f.read(16)
    audio_format = detect_audio_format(header)
    if audio_format is None:
        logger.warning(f"[EXTRACT] Unrecognized audio header {header[:8].hex(' ')}, letting ffmpeg decide")
    return audio_format


class AudioSegmentExtractor:
    """Downloads remote audio and extracts ``[start_ms, end_ms)`` with ffmpeg."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout_s: float = 60.0,
        max_bytes: int = 200 * 1024 * 1024,
        large_warning_bytes: int = 50 * 1024 * 1024,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.timeout_s = timeout_s
        self.max_bytes = max_bytes
        self.large_warning_bytes = large_warning_bytes
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "AudioSegmentExtractor":
        return cls(
            ffmpeg_path=settings.ffmpeg_path,
            timeout_s=settings.download_timeout_s,
            max_bytes=settings.max_download_bytes,
            large_warning_bytes=settings.large_download_warning_bytes,
        )

    async def extract(self, audio_url: str, start_ms: int, end_ms: int, work_dir: Path) -> Path:
        source = await self.download(audio_url, work_dir / "source_audio")
        try:
            return await self.extract_segment(source, start_ms, end_ms, work_dir / "clip.mp3")
        finally:
            source.unlink(missing_ok=True)

    async def download(self, audio_url: str, dest: Path) -> Path:
        safe_url = sanitize_url(audio_url)
        logger.info(f"[EXTRACT] Downloading {safe_url}")
        dest.parent.mkdir(parents=True, exist_ok=True)

        client = self._client or httpx.AsyncClient(
            timeout=self.timeout_s,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        try:
            async with client.stream("GET", audio_url) as response:
                response.raise_for_status()
                content_length = response.headers.get("content-length")
                if content_length and int(content_length) > self.max_bytes:
                    raise TransientStageError(
                        f"Audio file too large: {int(content_length)} bytes", stage="extracting"
                    )
                received = 0
                with dest.open("wb") as f:
                    async for chunk in response.aiter_bytes():
                        received += len(chunk)
                        if received > self.max_bytes:
                            raise TransientStageError(
                                f"Audio download exceeded {self.max_bytes} bytes", stage="extracting"
                            )
                        f.write(chunk)
        except httpx.TimeoutException as e:
            raise TransientStageError(f"Audio download timed out: {safe_url}", stage="extracting") from e
        except httpx.HTTPStatusError as e:
            raise TransientStageError(
                f"Audio download failed with HTTP {e.response.status_code}: {safe_url}", stage="extracting"
            ) from e
        except httpx.HTTPError as e:
            raise TransientStageError(f"Audio download failed: {e}", stage="extracting") from e
        finally:
            if self._client is None:
                await client.aclose()

        validate_audio_file(dest, self.large_warning_bytes)
        logger.info(f"[EXTRACT] Downloaded {dest.stat().st_size} bytes from {safe_url}")
        return dest

    def build_command(self, source: Path, start_ms: int, end_ms: int, dest: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-ss", f"{start_ms / 1000:.3f}",
            "-t", f"{(end_ms - start_ms) / 1000:.3f}",
            "-i", str(source),
            "-vn",  # No video
            "-acodec", "libmp3lame",
            "-ab", "128k",
            "-ar", "44100",
            "-ac", "2",
            str(dest),
        ]

    async def extract_segment(self, source: Path, start_ms: int, end_ms: int, dest: Path) -> Path:
        cmd = self.build_command(source, start_ms, end_ms, dest)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransientStageError(f"Could not start ffmpeg: {e}", stage="extracting") from e
        _, stderr = await proc.communicate()

        if proc.returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace")[-2000:]
            logger.error(f"[EXTRACT] ffmpeg failed: {stderr_text}")
            raise TransientStageError(f"Audio extraction failed (ffmpeg exit {proc.returncode})", stage="extracting")

        if not dest.exists() or dest.stat().st_size == 0:
            raise TransientStageError("Audio extraction produced no output", stage="extracting")

        logger.info(f"[EXTRACT] Extracted {start_ms}-{end_ms}ms to {dest}")
        return dest
