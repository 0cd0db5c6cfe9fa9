"""
Video pipeline for one job.

Stages run strictly in order:
1. Extract the requested audio range
2. Transcribe and build captions (optional, failures degrade to no captions)
3. Precompute per-frame caption state
4. Render frames
5. Encode frames + audio
6. Move the video into artifact storage
"""

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx

from podclip.captions.engine import CaptionEngine, CaptionTimingConfig
from podclip.captions.frame_state import FrameCaptionState, precompute_frame_states
from podclip.captions.models import CaptionBuild
from podclip.exceptions import DegradedFeatureError
from podclip.jobs.models import Job, JobRequest, JobStage, PipelineOutcome
from podclip.render.encoder import EncoderConfig, VideoEncoder
from podclip.render.frame_renderer import FrameRenderer, prepare_artwork
from podclip.render.layout import FrameLayout
from podclip.services.audio_extractor import AudioSegmentExtractor, sanitize_url
from podclip.services.storage_service import ArtifactStorage
from podclip.services.transcription_service import TranscriberFactory, TranscriptionService
from podclip.utils.media_info import get_media_info

logger = logging.getLogger(__name__)

ArtworkLoader = Callable[[Optional[str]], Awaitable[Optional[bytes]]]


def make_artwork_loader(timeout_s: float = 10.0) -> ArtworkLoader:
    async def load(url: Optional[str]) -> Optional[bytes]:
        if not url:
            return None
        try:
            async with httpx.AsyncClient(timeout=timeout_s, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            logger.warning(f"[PIPELINE] Artwork download failed for {sanitize_url(url)}: {e}")
            return None

    return load


class VideoPipeline:
    """Runs the stages for one job and reports what it produced."""

    def __init__(
        self,
        *,
        extractor: AudioSegmentExtractor,
        caption_engine: CaptionEngine,
        encoder: VideoEncoder,
        storage: ArtifactStorage,
        transcriber_factory: Callable[[], Optional[TranscriptionService]],
        artwork_loader: ArtworkLoader,
        fps: int = 12,
        ffprobe_path: str = "ffprobe",
        work_root: Optional[str] = None,
    ):
        self.extractor = extractor
        self.caption_engine = caption_engine
        self.encoder = encoder
        self.storage = storage
        self._transcriber_factory = transcriber_factory
        self._artwork_loader = artwork_loader
        self.fps = fps
        self.ffprobe_path = ffprobe_path
        self.work_root = work_root

    @classmethod
    def from_settings(cls, settings, storage: ArtifactStorage) -> "VideoPipeline":
        return cls(
            extractor=AudioSegmentExtractor.from_settings(settings),
            caption_engine=CaptionEngine(CaptionTimingConfig.from_settings(settings)),
            encoder=VideoEncoder(EncoderConfig.from_settings(settings)),
            storage=storage,
            transcriber_factory=TranscriberFactory(settings),
            artwork_loader=make_artwork_loader(settings.artwork_timeout_s),
            fps=settings.fps,
            ffprobe_path=settings.ffprobe_path,
        )

    async def close(self) -> None:
        close = getattr(self._transcriber_factory, "close", None)
        if close is not None:
            await close()

    async def run(self, job: Job, on_stage: Optional[Callable[[JobStage], None]] = None) -> PipelineOutcome:
        report = on_stage or (lambda stage: None)
        request = job.request
        work_dir = Path(tempfile.mkdtemp(prefix=f"podclip_{job.job_id}_", dir=self.work_root))
        logger.info(f"[PIPELINE] {job.job_id}: working in {work_dir}")

        try:
            report(JobStage.EXTRACTING)
            audio_path = await self.extractor.extract(
                request.audio_url, request.clip_start_ms, request.clip_end_ms, work_dir
            )

            build = await self._captions_for(job, audio_path, report)
            chunks = build.chunks if build else []

            report(JobStage.RENDERING)
            states = precompute_frame_states(chunks, request.duration_ms, self.fps)
            artwork_bytes = await self._artwork_loader(request.podcast.artwork_url)
            frames_dir = work_dir / "frames"
            frame_count = await asyncio.to_thread(
                self._render_frames, request, artwork_bytes, states, frames_dir
            )

            report(JobStage.ENCODING)
            encoded = await self.encoder.encode(frames_dir, audio_path, work_dir / "video.mp4", self.fps)
            await self._log_probe(job.job_id, encoded.output_path, request.duration_ms)

            report(JobStage.STORING)
            storage_key = await self.storage.store(encoded.output_path, job.job_id)

            return PipelineOutcome(
                storage_key=storage_key,
                output_url=self.storage.get_public_url(job.job_id, signed=False),
                download_url=self.storage.get_public_url(job.job_id, download=True, signed=False),
                file_size_bytes=encoded.size_bytes,
                frame_count=frame_count,
                caption_chunks=len(chunks),
                captions_applied=bool(chunks),
                unmatched_caption_chunks=build.diagnostics.unmatched_chunks if build else 0,
            )
        finally:
            await asyncio.to_thread(shutil.rmtree, work_dir, True)

    async def _captions_for(
        self, job: Job, audio_path: Path, report: Callable[[JobStage], None]
    ) -> Optional[CaptionBuild]:
        if not job.request.captions_enabled:
            return None
        try:
            return await self._build_captions(job, audio_path, report)
        except DegradedFeatureError as e:
            logger.warning(f"[PIPELINE] {job.job_id}: continuing without captions: {e.message}")
            return None

    async def _build_captions(
        self, job: Job, audio_path: Path, report: Callable[[JobStage], None]
    ) -> CaptionBuild:
        request = job.request
        transcriber = self._transcriber_factory()
        if transcriber is None:
            raise DegradedFeatureError("Transcription service is not configured", stage="transcribing")

        report(JobStage.TRANSCRIBING)
        try:
            transcript = await transcriber.transcribe(audio_path, smart_features=request.smart_features)
        except Exception as e:
            raise DegradedFeatureError(f"Transcription failed: {e}", stage="transcribing") from e
        if not transcript.words:
            raise DegradedFeatureError("Transcript contains no words", stage="transcribing")

        report(JobStage.CAPTIONING)
        try:
            build = self.caption_engine.build(transcript.utterances, transcript.words, request.caption_style)
        except Exception as e:
            logger.exception(f"[PIPELINE] {job.job_id}: caption build failed")
            raise DegradedFeatureError(f"Caption build failed: {e}", stage="captioning") from e

        diagnostics = build.diagnostics
        if diagnostics.unmatched_chunks:
            logger.warning(
                f"[PIPELINE] {job.job_id}: {diagnostics.unmatched_chunks}/{diagnostics.total_chunks} "
                f"caption chunks kept proportional timing"
            )
        return build

    def _render_frames(
        self,
        request: JobRequest,
        artwork_bytes: Optional[bytes],
        states: list[FrameCaptionState],
        frames_dir: Path,
    ) -> int:
        layout = FrameLayout.build(request.aspect_ratio, request.podcast.podcast_name, request.podcast.title)
        artwork = prepare_artwork(artwork_bytes, layout.artwork_size, layout.artwork_radius)
        renderer = FrameRenderer(layout, request.duration_ms, artwork)
        return renderer.render_all(states, frames_dir)

    async def _log_probe(self, job_id: str, path: Path, expected_ms: int) -> None:
        try:
            info = await asyncio.to_thread(get_media_info, str(path), self.ffprobe_path)
        except (RuntimeError, OSError) as e:
            logger.warning(f"[PIPELINE] {job_id}: could not probe output: {e}")
            return
        logger.info(
            f"[PIPELINE] {job_id}: output {info.width}x{info.height} {info.video_codec}/{info.audio_codec}, "
            f"{info.duration_ms}ms (expected {expected_ms}ms)"
        )
        if info.duration_ms is not None and abs(info.duration_ms - expected_ms) > 1000:
            logger.warning(f"[PIPELINE] {job_id}: output duration differs from clip by more than 1s")
