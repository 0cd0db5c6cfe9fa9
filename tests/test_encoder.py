"""Tests for the ffmpeg video encoder.

The subprocess is mocked; these tests cover command construction, timeout
handling and output validation.
"""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from podclip.exceptions import FatalStageError, TransientStageError
from podclip.render.encoder import EncoderConfig, VideoEncoder


def make_process(returncode: int | None = 0, stderr: bytes = b"") -> MagicMock:
    proc = MagicMock()
    proc.pid = 4242
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(b"", stderr))
    proc.wait = AsyncMock(return_value=returncode)
    return proc


@pytest.fixture
def paths(tmp_path: Path) -> tuple[Path, Path, Path]:
    frames_dir = tmp_path / "frames"
    frames_dir.mkdir()
    audio = tmp_path / "clip.mp3"
    audio.write_bytes(b"ID3" + b"\x00" * 2000)
    return frames_dir, audio, tmp_path / "video.mp4"


class TestBuildCommand:
    def test_command_uses_frame_pattern_and_fps(self, paths):
        frames_dir, audio, output = paths
        encoder = VideoEncoder(EncoderConfig(ffmpeg_path="/usr/bin/ffmpeg"))

        cmd = encoder.build_command(frames_dir, audio, output, fps=12)

        assert cmd[0] == "/usr/bin/ffmpeg"
        assert cmd[cmd.index("-framerate") + 1] == "12"
        assert str(frames_dir / "frame_%06d.png") in cmd
        assert "-shortest" in cmd
        assert cmd[-1] == str(output)


class TestEncode:
    @pytest.mark.asyncio
    async def test_successful_encode(self, paths):
        frames_dir, audio, output = paths
        output.write_bytes(b"\x00" * 20_000)
        proc = make_process()

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)) as spawn:
            result = await VideoEncoder().encode(frames_dir, audio, output, fps=12)

        assert result.output_path == output
        assert result.size_bytes == 20_000
        spawn.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, paths):
        frames_dir, audio, output = paths
        proc = make_process(returncode=None)

        async def hang():
            await asyncio.sleep(10)

        proc.communicate = hang
        encoder = VideoEncoder(EncoderConfig(timeout_s=0.05))

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
            with pytest.raises(FatalStageError) as exc_info:
                await encoder.encode(frames_dir, audio, output, fps=12)

        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()
        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_transient(self, paths):
        frames_dir, audio, output = paths
        proc = make_process(returncode=1, stderr=b"Invalid data found when processing input")

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
            with pytest.raises(TransientStageError):
                await VideoEncoder().encode(frames_dir, audio, output, fps=12)

    @pytest.mark.asyncio
    async def test_missing_binary_is_transient(self, paths):
        frames_dir, audio, output = paths

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(side_effect=FileNotFoundError("ffmpeg"))):
            with pytest.raises(TransientStageError):
                await VideoEncoder().encode(frames_dir, audio, output, fps=12)

    @pytest.mark.asyncio
    async def test_tiny_output_is_fatal(self, paths):
        frames_dir, audio, output = paths
        output.write_bytes(b"\x00" * 100)

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=make_process())):
            with pytest.raises(FatalStageError):
                await VideoEncoder().encode(frames_dir, audio, output, fps=12)


class TestValidateOutput:
    def test_missing_output(self, tmp_path):
        with pytest.raises(FatalStageError):
            VideoEncoder().validate_output(tmp_path / "missing.mp4")

    def test_empty_output(self, tmp_path):
        path = tmp_path / "empty.mp4"
        path.touch()
        with pytest.raises(FatalStageError):
            VideoEncoder().validate_output(path)

    def test_config_from_settings(self, make_settings):
        config = EncoderConfig.from_settings(make_settings(encoder_timeout_s=30, min_output_bytes=500))

        assert config.timeout_s == 30
        assert config.min_output_bytes == 500
