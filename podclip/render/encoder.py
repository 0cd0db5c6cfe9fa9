"""FFmpeg wrapper that muxes rendered frames with the clip audio."""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path

from podclip.exceptions import FatalStageError, TransientStageError

logger = logging.getLogger(__name__)


@dataclass
class EncoderConfig:
    ffmpeg_path: str = "ffmpeg"
    timeout_s: float = 120.0
    min_output_bytes: int = 10_000
    video_codec: str = "libx264"
    preset: str = "fast"
    crf: int = 23
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"

    @classmethod
    def from_settings(cls, settings) -> "EncoderConfig":
        return cls(
            ffmpeg_path=settings.ffmpeg_path,
            timeout_s=settings.encoder_timeout_s,
            min_output_bytes=settings.min_output_bytes,
        )


@dataclass
class EncodeResult:
    output_path: Path
    size_bytes: int
    elapsed_ms: int


class VideoEncoder:
    """Awaitable encoder with a hard timeout.

    On timeout the ffmpeg process is killed and ``FatalStageError`` is
    raised. A non-zero exit is a ``TransientStageError``; an empty or
    implausibly small output is fatal.
    """

    def __init__(self, config: EncoderConfig | None = None):
        self.config = config or EncoderConfig()

    def build_command(self, frames_dir: Path, audio_path: Path, output_path: Path, fps: int) -> list[str]:
        cfg = self.config
        return [
            cfg.ffmpeg_path,
            "-y",
            "-framerate", str(fps),
            "-i", str(frames_dir / "frame_%06d.png"),
            "-i", str(audio_path),
            "-c:v", cfg.video_codec,
            "-preset", cfg.preset,
            "-crf", str(cfg.crf),
            "-pix_fmt", "yuv420p",
            "-c:a", cfg.audio_codec,
            "-b:a", cfg.audio_bitrate,
            "-shortest",
            "-movflags", "+faststart",
            str(output_path),
        ]

    async def encode(self, frames_dir: Path, audio_path: Path, output_path: Path, fps: int) -> EncodeResult:
        cmd = self.build_command(frames_dir, audio_path, output_path, fps)
        logger.info(f"[ENCODE] Command: {' '.join(cmd)}")
        started = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransientStageError(f"Could not start ffmpeg: {e}", stage="encoding") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.config.timeout_s)
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise FatalStageError(
                f"Video encoding timed out after {self.config.timeout_s:.0f}s", stage="encoding"
            )
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        elapsed_ms = int((time.monotonic() - started) * 1000)

        if proc.returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace")[-2000:]
            logger.error(f"[ENCODE] ffmpeg exited with {proc.returncode}: {stderr_text}")
            raise TransientStageError(f"ffmpeg exited with code {proc.returncode}", stage="encoding")

        size = self.validate_output(output_path)
        logger.info(f"[ENCODE] Wrote {output_path} ({size} bytes) in {elapsed_ms}ms")
        return EncodeResult(output_path=output_path, size_bytes=size, elapsed_ms=elapsed_ms)

    def validate_output(self, output_path: Path) -> int:
        if not output_path.exists():
            raise FatalStageError("Encoded video file was not created", stage="encoding")
        size = output_path.stat().st_size
        if size == 0:
            raise FatalStageError("Encoded video file is empty", stage="encoding")
        if size < self.config.min_output_bytes:
            raise FatalStageError(
                f"Encoded video file too small ({size} bytes), likely corrupted", stage="encoding"
            )
        return size

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            logger.warning(f"[ENCODE] Killing ffmpeg (pid {proc.pid})")
            try:
                proc.kill()
            except ProcessLookupError:
                return
            await proc.wait()
