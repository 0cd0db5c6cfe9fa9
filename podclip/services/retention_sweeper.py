"""Periodic deletion of expired video artifacts."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from podclip.exceptions import ValidationError
from podclip.jobs.models import Job
from podclip.services.storage_service import ArtifactStorage

logger = logging.getLogger(__name__)

EMERGENCY_CONFIRMATION = "EMERGENCY_DELETE_ALL_VIDEOS"


class JobRegistry(Protocol):
    def find_job(self, job_id: str) -> Optional[Job]: ...

    async def evict_expired(self, retention_hours: float) -> int: ...


@dataclass
class SweepResult:
    found: int = 0
    deleted: int = 0
    skipped: int = 0
    freed_bytes: int = 0
    evicted_jobs: int = 0
    elapsed_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "videos_found": self.found,
            "videos_deleted": self.deleted,
            "videos_skipped": self.skipped,
            "space_freed_bytes": self.freed_bytes,
            "space_freed_mb": round(self.freed_bytes / (1024 * 1024), 2),
            "jobs_evicted": self.evicted_jobs,
            "cleanup_time_ms": self.elapsed_ms,
        }


class RetentionSweeper:
    """Deletes artifacts older than the retention window.

    An artifact is kept when its job is still known and either non-terminal
    or younger than the grace period.
    """

    def __init__(
        self,
        storage: ArtifactStorage,
        registry: JobRegistry,
        retention_hours: float = 2160,
        grace_hours: float = 24,
        interval_s: float = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.registry = registry
        self.retention_hours = retention_hours
        self.grace_hours = grace_hours
        self.interval_s = interval_s
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self.last_result: Optional[SweepResult] = None

    @classmethod
    def from_settings(cls, settings, storage: ArtifactStorage, registry: JobRegistry) -> "RetentionSweeper":
        return cls(
            storage,
            registry,
            retention_hours=settings.retention_hours,
            grace_hours=settings.retention_grace_hours,
            interval_s=settings.sweep_interval_s,
        )

    def _protected(self, job: Optional[Job], now: float) -> bool:
        if job is None:
            return False
        if not job.status.is_terminal:
            return True
        return (now - job.created_at.timestamp()) / 3600 < self.grace_hours

    async def sweep(self) -> SweepResult:
        started = time.monotonic()
        now = self._clock()
        result = SweepResult()

        for artifact in self.storage.list_artifacts():
            if artifact.age_hours(now) < self.retention_hours:
                continue
            result.found += 1

            job = self.registry.find_job(artifact.job_id) if artifact.job_id else None
            if self._protected(job, now):
                result.skipped += 1
                logger.info(f"[SWEEP] Keeping {artifact.storage_key}: job {job.job_id} is {job.status.value}")
                continue

            try:
                if self.storage.delete_file(artifact.storage_key):
                    result.deleted += 1
                    result.freed_bytes += artifact.size_bytes
            except OSError as e:
                logger.warning(f"[SWEEP] Could not delete {artifact.storage_key}: {e}")

        result.evicted_jobs = await self.registry.evict_expired(self.retention_hours)
        result.elapsed_ms = int((time.monotonic() - started) * 1000)
        self.last_result = result
        logger.info(f"[SWEEP] {result.to_dict()}")
        return result

    def get_stats(self) -> dict[str, Any]:
        now = self._clock()
        artifacts = list(self.storage.list_artifacts())
        ages = [a.age_hours(now) for a in artifacts]
        total_bytes = sum(a.size_bytes for a in artifacts)
        return {
            "total_videos": len(artifacts),
            "total_size_bytes": total_bytes,
            "total_size_mb": round(total_bytes / (1024 * 1024), 2),
            "expired_videos": sum(1 for age in ages if age >= self.retention_hours),
            "oldest_video_age_hours": round(max(ages), 1) if ages else None,
            "newest_video_age_hours": round(min(ages), 1) if ages else None,
            "retention_hours": self.retention_hours,
            "grace_hours": self.grace_hours,
            "last_sweep": self.last_result.to_dict() if self.last_result else None,
        }

    def emergency_cleanup(self, confirmation: str) -> SweepResult:
        """Delete every artifact regardless of age or job state."""
        if confirmation != EMERGENCY_CONFIRMATION:
            raise ValidationError("Emergency cleanup requires the confirmation phrase", field="confirmation")

        started = time.monotonic()
        result = SweepResult()
        for artifact in self.storage.list_artifacts():
            result.found += 1
            if self.storage.delete_file(artifact.storage_key):
                result.deleted += 1
                result.freed_bytes += artifact.size_bytes
        result.elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.warning(f"[SWEEP] Emergency cleanup: {result.to_dict()}")
        return result

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="retention-sweeper")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                await self.sweep()
            except Exception:
                logger.exception("[SWEEP] Sweep failed")
