"""Job data types owned by the scheduler."""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from podclip.captions.models import CaptionStyle


class JobStatus(str, Enum):
    """Job lifecycle status."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobStage(str, Enum):
    """Pipeline stage currently running for a processing job."""

    EXTRACTING = "extracting"
    TRANSCRIBING = "transcribing"
    CAPTIONING = "captioning"
    RENDERING = "rendering"
    ENCODING = "encoding"
    STORING = "storing"


def new_job_id() -> str:
    return f"vid_{uuid.uuid4().hex[:8]}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class PodcastInfo:
    podcast_name: str = ""
    title: str = ""
    artwork_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "podcast_name": self.podcast_name,
            "title": self.title,
            "artwork_url": self.artwork_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PodcastInfo":
        return cls(
            podcast_name=data.get("podcast_name") or "",
            title=data.get("title") or "",
            artwork_url=data.get("artwork_url"),
        )


@dataclass
class JobRequest:
    """What the caller asked for."""

    audio_url: str
    clip_start_ms: int
    clip_end_ms: int
    captions_enabled: bool = False
    caption_style: CaptionStyle = CaptionStyle.NORMAL
    aspect_ratio: str = "9:16"
    smart_features: bool = False
    podcast: PodcastInfo = field(default_factory=PodcastInfo)
    user_email: Optional[str] = None
    device_token: Optional[str] = None

    @property
    def duration_ms(self) -> int:
        return self.clip_end_ms - self.clip_start_ms

    @property
    def duration_s(self) -> float:
        return self.duration_ms / 1000

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "audio_url": self.audio_url,
            "clip_start_ms": self.clip_start_ms,
            "clip_end_ms": self.clip_end_ms,
            "captions_enabled": self.captions_enabled,
            "caption_style": self.caption_style.value,
            "aspect_ratio": self.aspect_ratio,
            "smart_features": self.smart_features,
            "podcast": self.podcast.to_dict(),
            "user_email": self.user_email,
            "device_token": self.device_token,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobRequest":
        return cls(
            audio_url=data["audio_url"],
            clip_start_ms=int(data["clip_start_ms"]),
            clip_end_ms=int(data["clip_end_ms"]),
            captions_enabled=bool(data.get("captions_enabled", False)),
            caption_style=CaptionStyle(data.get("caption_style", CaptionStyle.NORMAL.value)),
            aspect_ratio=data.get("aspect_ratio", "9:16"),
            smart_features=bool(data.get("smart_features", False)),
            podcast=PodcastInfo.from_dict(data.get("podcast") or {}),
            user_email=data.get("user_email"),
            device_token=data.get("device_token"),
        )


@dataclass
class CostBreakdown:
    """Per-stage cost in USD."""

    download: float = 0.0
    transcription: float = 0.0
    frame_generation: float = 0.0
    encoding: float = 0.0
    storage: float = 0.0
    processing: float = 0.0

    @property
    def total(self) -> float:
        return round(
            self.download
            + self.transcription
            + self.frame_generation
            + self.encoding
            + self.storage
            + self.processing,
            6,
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "download": self.download,
            "transcription": self.transcription,
            "frame_generation": self.frame_generation,
            "encoding": self.encoding,
            "storage": self.storage,
            "processing": self.processing,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CostBreakdown":
        return cls(
            download=data.get("download", 0.0),
            transcription=data.get("transcription", 0.0),
            frame_generation=data.get("frame_generation", 0.0),
            encoding=data.get("encoding", 0.0),
            storage=data.get("storage", 0.0),
            processing=data.get("processing", 0.0),
        )


@dataclass
class PipelineOutcome:
    """What a successful pipeline run produced."""

    storage_key: str
    output_url: str
    download_url: str
    file_size_bytes: int
    frame_count: int
    caption_chunks: int = 0
    captions_applied: bool = False
    unmatched_caption_chunks: int = 0


@dataclass
class JobResult:
    """Result recorded on completion."""

    output_url: str
    download_url: str
    storage_key: str
    file_size_bytes: int
    processing_time_ms: int
    frame_count: int
    cost: CostBreakdown
    caption_chunks: int = 0
    captions_applied: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "output_url": self.output_url,
            "download_url": self.download_url,
            "storage_key": self.storage_key,
            "file_size_bytes": self.file_size_bytes,
            "processing_time_ms": self.processing_time_ms,
            "frame_count": self.frame_count,
            "cost": self.cost.to_dict(),
            "caption_chunks": self.caption_chunks,
            "captions_applied": self.captions_applied,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobResult":
        return cls(
            output_url=data["output_url"],
            download_url=data.get("download_url", data["output_url"]),
            storage_key=data["storage_key"],
            file_size_bytes=int(data.get("file_size_bytes", 0)),
            processing_time_ms=int(data.get("processing_time_ms", 0)),
            frame_count=int(data.get("frame_count", 0)),
            cost=CostBreakdown.from_dict(data.get("cost") or {}),
            caption_chunks=int(data.get("caption_chunks", 0)),
            captions_applied=bool(data.get("captions_applied", False)),
        )


@dataclass
class Job:
    """A video job. Mutated only by the scheduler."""

    job_id: str
    request: JobRequest
    created_at: datetime
    status: JobStatus = JobStatus.QUEUED
    estimated_cost: float = 0.0
    estimated_time_sec: int = 0
    retries: int = 0
    max_retries: int = 2
    stage: Optional[JobStage] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result: Optional[JobResult] = None
    # Set on snapshots only
    queue_position: Optional[int] = None
    # Registry insertion order; breaks created_at ties
    sequence: int = 0

    @property
    def finished_at(self) -> Optional[datetime]:
        return self.completed_at or self.failed_at

    def snapshot(self) -> "Job":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "stage": self.stage.value if self.stage else None,
            "request": self.request.to_dict(),
            "estimated_cost": self.estimated_cost,
            "estimated_time_sec": self.estimated_time_sec,
            "retries": self.retries,
            "max_retries": self.max_retries,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "failed_at": _iso(self.failed_at),
            "updated_at": _iso(self.updated_at),
            "error_message": self.error_message,
            "result": self.result.to_dict() if self.result else None,
            "queue_position": self.queue_position,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        return cls(
            job_id=data["job_id"],
            request=JobRequest.from_dict(data["request"]),
            created_at=_parse_dt(data["created_at"]),
            status=JobStatus(data.get("status", JobStatus.QUEUED.value)),
            estimated_cost=float(data.get("estimated_cost", 0.0)),
            estimated_time_sec=int(data.get("estimated_time_sec", 0)),
            retries=int(data.get("retries", 0)),
            max_retries=int(data.get("max_retries", 2)),
            stage=JobStage(data["stage"]) if data.get("stage") else None,
            started_at=_parse_dt(data.get("started_at")),
            completed_at=_parse_dt(data.get("completed_at")),
            failed_at=_parse_dt(data.get("failed_at")),
            updated_at=_parse_dt(data.get("updated_at")),
            error_message=data.get("error_message"),
            result=JobResult.from_dict(data["result"]) if data.get("result") else None,
        )
