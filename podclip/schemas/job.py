from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from podclip.captions.models import CaptionStyle


class PodcastPayload(BaseModel):
    podcast_name: str = ""
    title: str = ""
    artwork_url: str | None = None


class CreateJobRequest(BaseModel):
    audio_url: str
    clip_start_ms: int
    clip_end_ms: int
    captions_enabled: bool = False
    caption_style: CaptionStyle = CaptionStyle.NORMAL
    aspect_ratio: Literal["9:16", "1:1", "16:9"] | None = None  # Server default when omitted
    smart_features: bool = False
    podcast: PodcastPayload = Field(default_factory=PodcastPayload)
    user_email: str | None = None
    device_token: str | None = None


class SubmitJobResponse(BaseModel):
    job_id: str
    status: str
    queue_position: int
    estimated_time_sec: int
    estimated_cost: float


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    stage: str | None = None
    queue_position: int | None = None
    estimated_time_sec: int
    estimated_cost: float
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    output_url: str | None = None
    download_url: str | None = None
    cost: dict[str, float] | None = None
    error_message: str | None = None
    retries: int = 0
    max_retries: int = 0


class VideoMetadata(BaseModel):
    duration_seconds: float
    aspect_ratio: str
    captions_enabled: bool
    captions_applied: bool = False
    caption_style: str
    video_url: str | None = None
    download_url: str | None = None
    processing_time_ms: int | None = None
    cost: dict[str, float] | None = None
    file_size_bytes: int | None = None


class JobMetadataResponse(BaseModel):
    job_id: str
    status: str
    podcast: PodcastPayload
    video: VideoMetadata
    error_message: str | None = None
    retries: int | None = None
    created_at: datetime
    completed_at: datetime | None = None
