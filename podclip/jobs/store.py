"""Job persistence.

One interface, two implementations. ``create_job_store`` picks the backend
at startup; the scheduler only ever talks to ``JobStore``.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from podclip.jobs.models import Job, JobRequest, JobResult, JobStage, JobStatus
from podclip.models.database import create_engine_for, create_session_maker, init_db
from podclip.models.video_job import VideoJobRecord

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Durable mirror of the scheduler's registry."""

    async def initialize(self) -> None:
        """Prepare the backend (create tables, open pools)."""

    @abstractmethod
    async def save(self, job: Job) -> None:
        """Insert or update a job."""

    @abstractmethod
    async def load_all(self) -> list[Job]:
        """All stored jobs, oldest first."""

    @abstractmethod
    async def delete(self, job_id: str) -> None:
        """Remove a job. Missing ids are ignored."""

    async def close(self) -> None:
        """Release backend resources."""


class MemoryJobStore(JobStore):
    """Process-local store. Jobs do not survive a restart."""

    def __init__(self) -> None:
        self._jobs: dict[str, dict[str, Any]] = {}

    async def save(self, job: Job) -> None:
        self._jobs[job.job_id] = job.to_dict()

    async def load_all(self) -> list[Job]:
        jobs = [Job.from_dict(data) for data in self._jobs.values()]
        return sorted(jobs, key=lambda j: j.created_at)

    async def delete(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; stored values are always UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlJobStore(JobStore):
    """SQLAlchemy-backed store (PostgreSQL via asyncpg in production).

    The engine is created on first use.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._session_maker: async_sessionmaker[AsyncSession] | None = None

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        if self._session_maker is None:
            self._engine = create_engine_for(self.database_url, self.echo)
            self._session_maker = create_session_maker(self._engine)
        return self._session_maker

    async def initialize(self) -> None:
        self._sessions()
        await init_db(self._engine)

    async def save(self, job: Job) -> None:
        async with self._sessions()() as session:
            record = await session.get(VideoJobRecord, job.job_id)
            if record is None:
                record = VideoJobRecord(job_id=job.job_id, created_at=job.created_at)
                session.add(record)
            self._apply(record, job)
            await session.commit()

    async def load_all(self) -> list[Job]:
        async with self._sessions()() as session:
            result = await session.execute(select(VideoJobRecord).order_by(VideoJobRecord.created_at))
            return [self._to_job(record) for record in result.scalars().all()]

    async def delete(self, job_id: str) -> None:
        async with self._sessions()() as session:
            await session.execute(delete(VideoJobRecord).where(VideoJobRecord.job_id == job_id))
            await session.commit()

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_maker = None

    @staticmethod
    def _apply(record: VideoJobRecord, job: Job) -> None:
        record.status = job.status.value
        record.stage = job.stage.value if job.stage else None
        record.request_data = job.request.to_dict()
        record.estimated_cost = job.estimated_cost
        record.estimated_time = job.estimated_time_sec
        record.started_at = job.started_at
        record.completed_at = job.completed_at
        record.failed_at = job.failed_at
        record.processing_time_ms = job.result.processing_time_ms if job.result else None
        record.result_data = job.result.to_dict() if job.result else None
        record.error_message = job.error_message
        record.retries = job.retries
        record.max_retries = job.max_retries
        record.updated_at = job.updated_at or datetime.now(timezone.utc)

    @staticmethod
    def _to_job(record: VideoJobRecord) -> Job:
        return Job(
            job_id=record.job_id,
            request=JobRequest.from_dict(record.request_data),
            created_at=_aware(record.created_at),
            status=JobStatus(record.status),
            estimated_cost=record.estimated_cost or 0.0,
            estimated_time_sec=record.estimated_time or 0,
            retries=record.retries or 0,
            max_retries=record.max_retries if record.max_retries is not None else 2,
            stage=JobStage(record.stage) if record.stage else None,
            started_at=_aware(record.started_at),
            completed_at=_aware(record.completed_at),
            failed_at=_aware(record.failed_at),
            updated_at=_aware(record.updated_at),
            error_message=record.error_message,
            result=JobResult.from_dict(record.result_data) if record.result_data else None,
        )


def create_job_store(settings) -> JobStore:
    """Pick the store backend from configuration."""
    if settings.database_url:
        logger.info("[STORE] Using SQL job store")
        return SqlJobStore(settings.database_url, echo=settings.database_echo)
    logger.info("[STORE] No database configured, using in-memory job store")
    return MemoryJobStore()
