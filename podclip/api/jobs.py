"""Video job endpoints."""

import logging

from fastapi import APIRouter, status

from podclip.api.deps import AppSettings, Scheduler, Storage, Sweeper
from podclip.exceptions import JobNotReadyError
from podclip.jobs.models import Job, JobRequest, JobStatus, PodcastInfo
from podclip.schemas.job import (
    CreateJobRequest,
    JobMetadataResponse,
    JobStatusResponse,
    PodcastPayload,
    SubmitJobResponse,
    VideoMetadata,
)
from podclip.services.storage_service import ArtifactStorage

router = APIRouter()
logger = logging.getLogger(__name__)


def _to_job_request(body: CreateJobRequest, default_aspect_ratio: str) -> JobRequest:
    return JobRequest(
        audio_url=body.audio_url,
        clip_start_ms=body.clip_start_ms,
        clip_end_ms=body.clip_end_ms,
        captions_enabled=body.captions_enabled,
        caption_style=body.caption_style,
        aspect_ratio=body.aspect_ratio or default_aspect_ratio,
        smart_features=body.smart_features,
        podcast=PodcastInfo(
            podcast_name=body.podcast.podcast_name,
            title=body.podcast.title,
            artwork_url=body.podcast.artwork_url,
        ),
        user_email=body.user_email,
        device_token=body.device_token,
    )


def _status_response(job: Job, storage: ArtifactStorage) -> JobStatusResponse:
    response = JobStatusResponse(
        job_id=job.job_id,
        status=job.status.value,
        stage=job.stage.value if job.stage else None,
        queue_position=job.queue_position if job.status == JobStatus.QUEUED else None,
        estimated_time_sec=job.estimated_time_sec,
        estimated_cost=job.estimated_cost,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        failed_at=job.failed_at,
        retries=job.retries,
        max_retries=job.max_retries,
    )
    if job.status == JobStatus.COMPLETED and job.result:
        response.output_url = storage.get_public_url(job.job_id)
        response.download_url = storage.get_public_url(job.job_id, download=True)
        response.cost = job.result.cost.to_dict()
    if job.status == JobStatus.FAILED:
        response.error_message = job.error_message
    return response


@router.post("/jobs", response_model=SubmitJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_job(body: CreateJobRequest, scheduler: Scheduler, settings: AppSettings) -> SubmitJobResponse:
    """Submit a clip for rendering. Returns immediately with the queue position."""
    result = await scheduler.submit(_to_job_request(body, settings.default_aspect_ratio))
    return SubmitJobResponse(**result.to_dict())


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job(job_id: str, scheduler: Scheduler, storage: Storage) -> JobStatusResponse:
    return _status_response(scheduler.get_status(job_id), storage)


@router.get("/jobs/{job_id}/metadata", response_model=JobMetadataResponse)
async def get_job_metadata(job_id: str, scheduler: Scheduler, storage: Storage) -> JobMetadataResponse:
    """Podcast and video details for a finished job."""
    job = scheduler.get_status(job_id)
    if not job.status.is_terminal:
        raise JobNotReadyError(job_id, job.status.value)

    request = job.request
    result = job.result
    video = VideoMetadata(
        duration_seconds=request.duration_s,
        aspect_ratio=request.aspect_ratio,
        captions_enabled=request.captions_enabled,
        captions_applied=result.captions_applied if result else False,
        caption_style=request.caption_style.value,
    )
    if result:
        video.video_url = storage.get_public_url(job.job_id)
        video.download_url = storage.get_public_url(job.job_id, download=True)
        video.processing_time_ms = result.processing_time_ms
        video.cost = result.cost.to_dict()
        video.file_size_bytes = result.file_size_bytes

    failed = job.status == JobStatus.FAILED
    return JobMetadataResponse(
        job_id=job.job_id,
        status=job.status.value,
        podcast=PodcastPayload(**request.podcast.to_dict()),
        video=video,
        error_message=job.error_message if failed else None,
        retries=job.retries if failed else None,
        created_at=job.created_at,
        completed_at=job.completed_at,
    )


@router.get("/stats")
async def get_stats(scheduler: Scheduler, sweeper: Sweeper) -> dict:
    return {
        "scheduler": scheduler.get_stats(),
        "retention": sweeper.get_stats(),
    }
