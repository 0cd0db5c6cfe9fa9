"""Job scheduler: admission, FIFO dispatch under a concurrency cap, retries.

The in-memory registry is the source of truth. Every state transition is
queued for the configured ``JobStore`` and written by a single background
writer, so store latency never blocks a transition and writes land in
order.
"""

import asyncio
import itertools
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Optional, Protocol
from urllib.parse import urlparse

from podclip.exceptions import (
    ClipDurationError,
    DailySpendCapError,
    FatalStageError,
    FeatureDisabledError,
    InvalidAudioUrlError,
    JobNotFoundError,
    QueueFullError,
    ValidationError,
)
from podclip.jobs.costs import (
    CostRates,
    DailySpendLedger,
    compute_cost_breakdown,
    estimate_job_cost,
    estimate_time_sec,
)
from podclip.jobs.models import (
    Job,
    JobRequest,
    JobResult,
    JobStage,
    JobStatus,
    PipelineOutcome,
    new_job_id,
)
from podclip.jobs.store import JobStore
from podclip.render.layout import ASPECT_RATIO_DIMENSIONS
from podclip.services.notification_service import JobNotifier

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobPipeline(Protocol):
    async def run(self, job: Job, on_stage: Callable[[JobStage], None]) -> PipelineOutcome: ...


@dataclass
class SubmitResult:
    job_id: str
    status: JobStatus
    queue_position: int
    estimated_time_sec: int
    estimated_cost: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "queue_position": self.queue_position,
            "estimated_time_sec": self.estimated_time_sec,
            "estimated_cost": self.estimated_cost,
        }


class JobScheduler:
    """Admits, queues, runs and retires video jobs."""

    def __init__(
        self,
        pipeline: JobPipeline,
        store: JobStore,
        settings,
        *,
        notifier: Optional[JobNotifier] = None,
        ledger: Optional[DailySpendLedger] = None,
        rates: Optional[CostRates] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._pipeline = pipeline
        self._store = store
        self._notifier = notifier or JobNotifier()
        self._clock = clock
        self._rates = rates or CostRates.from_settings(settings)
        self._ledger = ledger or DailySpendLedger(settings.daily_spend_cap, clock=clock)

        self.video_enabled = settings.video_enabled
        self.captions_available = settings.captions_enabled
        self.smart_features_available = settings.smart_features_enabled
        self.max_concurrent = settings.max_concurrent
        self.max_queue_size = settings.max_queue_size
        self.max_retries = settings.max_retries
        self.min_clip_seconds = settings.min_clip_seconds
        self.max_clip_seconds = settings.max_clip_seconds
        self.fps = settings.fps

        self._jobs: dict[str, Job] = {}
        self._active: set[str] = set()
        self._tasks: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()
        self._sequence = itertools.count()
        # Guards the registry, the active set and the spend ledger
        self._lock = asyncio.Lock()

        self._mirror_queue: asyncio.Queue = asyncio.Queue()
        self._mirror_worker: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def submit(self, request: JobRequest) -> SubmitResult:
        """Validate, estimate, admit and enqueue a job."""
        self._validate(request)

        if request.captions_enabled and not self.captions_available:
            logger.info("[SCHEDULER] Captions requested but disabled by configuration, continuing without")
            request.captions_enabled = False
        request.smart_features = (
            request.smart_features and request.captions_enabled and self.smart_features_available
        )

        estimate = estimate_job_cost(
            self._rates,
            duration_s=request.duration_s,
            fps=self.fps,
            captions=request.captions_enabled,
            smart_features=request.smart_features,
        )

        async with self._lock:
            self._check_admission(estimate.total)
            now = self._clock()
            job = Job(
                job_id=new_job_id(),
                request=request,
                created_at=now,
                updated_at=now,
                estimated_cost=estimate.total,
                estimated_time_sec=estimate_time_sec(request.duration_s),
                max_retries=self.max_retries,
                sequence=next(self._sequence),
            )
            self._jobs[job.job_id] = job
            self._mirror(job)

        logger.info(
            f"[SCHEDULER] Admitted {job.job_id}: {request.duration_s:.1f}s clip, "
            f"captions={request.captions_enabled}, estimate=${estimate.total:.4f}"
        )

        await self.advance_queue()

        return SubmitResult(
            job_id=job.job_id,
            status=job.status,
            queue_position=self._queue_position(job) if job.status == JobStatus.QUEUED else 0,
            estimated_time_sec=job.estimated_time_sec,
            estimated_cost=job.estimated_cost,
        )

    def get_status(self, job_id: str) -> Job:
        """Snapshot of a job, with its queue position while queued."""
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        snapshot = job.snapshot()
        if job.status == JobStatus.QUEUED:
            snapshot.queue_position = self._queue_position(job)
        return snapshot

    def find_job(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return job.snapshot() if job else None

    def get_stats(self) -> dict[str, Any]:
        by_status = Counter(job.status.value for job in self._jobs.values())
        return {
            "active_jobs": len(self._active),
            "max_concurrent": self.max_concurrent,
            "queued_jobs": by_status.get(JobStatus.QUEUED.value, 0),
            "max_queue_size": self.max_queue_size,
            "today_cost": self._ledger.spent_today(),
            "daily_spend_cap": self._ledger.cap,
            "remaining_budget": self._ledger.remaining(),
            "jobs_by_status": {status.value: by_status.get(status.value, 0) for status in JobStatus},
            "video_enabled": self.video_enabled,
        }

    async def advance_queue(self) -> None:
        """Start queued jobs, oldest first, while below the concurrency cap."""
        async with self._lock:
            while len(self._active) < self.max_concurrent:
                job = self._next_queued()
                if job is None:
                    break
                now = self._clock()
                job.status = JobStatus.PROCESSING
                job.started_at = now
                job.updated_at = now
                self._active.add(job.job_id)
                self._mirror(job)
                self._tasks[job.job_id] = asyncio.create_task(
                    self._run_pipeline(job), name=f"pipeline-{job.job_id}"
                )
                logger.info(
                    f"[SCHEDULER] Started {job.job_id} (attempt {job.retries + 1}/{job.max_retries}, "
                    f"active {len(self._active)}/{self.max_concurrent})"
                )

    async def restore(self) -> int:
        """Load jobs from the store; interrupted jobs go back to the queue."""
        stored = await self._store.load_all()
        reset = 0
        async with self._lock:
            for job in sorted(stored, key=lambda j: j.created_at):
                if job.job_id in self._jobs:
                    continue
                if job.status == JobStatus.PROCESSING:
                    job.status = JobStatus.QUEUED
                    job.stage = None
                    job.started_at = None
                    job.updated_at = self._clock()
                    reset += 1
                    self._mirror(job)
                if job.status == JobStatus.COMPLETED and job.result and job.completed_at:
                    self._ledger.record(job.result.cost.total, job.completed_at)
                job.sequence = next(self._sequence)
                self._jobs[job.job_id] = job

        logger.info(f"[SCHEDULER] Restored {len(stored)} jobs ({reset} interrupted jobs re-queued)")
        await self.advance_queue()
        return len(stored)

    async def evict_expired(self, retention_hours: float) -> int:
        """Drop terminal jobs older than the retention window."""
        cutoff = self._clock() - timedelta(hours=retention_hours)
        async with self._lock:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if job.status.is_terminal and (job.finished_at or job.created_at) < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
                self._enqueue_write(("delete", job_id))
        if expired:
            logger.info(f"[SCHEDULER] Evicted {len(expired)} expired jobs")
        return len(expired)

    async def flush(self) -> None:
        """Wait until every queued store write has been attempted."""
        await self._mirror_queue.join()

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel running pipelines and drain pending store writes.

        Cancelled jobs stay ``processing`` in the store and are re-queued
        by ``restore`` on the next start.
        """
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self._background:
            await asyncio.wait(list(self._background), timeout=timeout)
        try:
            await asyncio.wait_for(self.flush(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("[SCHEDULER] Timed out flushing job store writes")
        if self._mirror_worker is not None:
            self._mirror_worker.cancel()
            await asyncio.gather(self._mirror_worker, return_exceptions=True)
            self._mirror_worker = None

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def _validate(self, request: JobRequest) -> None:
        parsed = urlparse(request.audio_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidAudioUrlError(request.audio_url)
        if request.clip_start_ms < 0 or request.clip_end_ms <= request.clip_start_ms:
            raise ValidationError(
                f"Invalid clip range: {request.clip_start_ms}ms to {request.clip_end_ms}ms",
                field="clip_end_ms",
                code="INVALID_CLIP_RANGE",
            )
        duration_s = request.duration_s
        if not self.min_clip_seconds <= duration_s <= self.max_clip_seconds:
            raise ClipDurationError(duration_s, self.min_clip_seconds, self.max_clip_seconds)
        if request.aspect_ratio not in ASPECT_RATIO_DIMENSIONS:
            raise ValidationError(
                f"Unsupported aspect ratio: {request.aspect_ratio}", field="aspect_ratio"
            )

    def _check_admission(self, estimated_cost: float) -> None:
        """Admission checks, in order. Caller holds the lock."""
        if not self.video_enabled:
            raise FeatureDisabledError()

        queued = sum(1 for job in self._jobs.values() if job.status == JobStatus.QUEUED)
        if queued >= self.max_queue_size:
            raise QueueFullError(f"Video queue is full ({queued}/{self.max_queue_size}), please try again later")

        pending = sum(
            job.estimated_cost for job in self._jobs.values() if not job.status.is_terminal
        )
        if self._ledger.would_exceed(estimated_cost, pending=pending):
            raise DailySpendCapError(
                f"Daily spending limit reached (${self._ledger.spent_today():.2f} of "
                f"${self._ledger.cap:.2f} used), please try again tomorrow"
            )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _next_queued(self) -> Optional[Job]:
        queued = [job for job in self._jobs.values() if job.status == JobStatus.QUEUED]
        if not queued:
            return None
        return min(queued, key=lambda j: (j.created_at, j.sequence))

    def _queue_position(self, job: Job) -> int:
        key = (job.created_at, job.sequence)
        return sum(
            1
            for other in self._jobs.values()
            if other.status == JobStatus.QUEUED and (other.created_at, other.sequence) < key
        )

    async def _run_pipeline(self, job: Job) -> None:
        job_id = job.job_id
        try:
            outcome = await self._pipeline.run(job.snapshot(), partial(self._set_stage, job_id))
        except asyncio.CancelledError:
            logger.info(f"[SCHEDULER] Pipeline for {job_id} cancelled")
            raise
        except FatalStageError as e:
            await self._record_failure(job, e, retryable=False)
        except Exception as e:
            await self._record_failure(job, e, retryable=True)
        else:
            await self._record_success(job, outcome)
        finally:
            self._tasks.pop(job_id, None)

        await self.advance_queue()

    def _set_stage(self, job_id: str, stage: JobStage) -> None:
        # Runs on the event loop without awaiting, so no other writer interleaves
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            return
        job.stage = stage
        job.updated_at = self._clock()
        self._mirror(job)
        self._spawn(self._notifier.job_progress(job_id, stage))

    async def _record_failure(self, job: Job, error: Exception, *, retryable: bool) -> None:
        message = str(error) or type(error).__name__
        async with self._lock:
            self._active.discard(job.job_id)
            now = self._clock()
            job.retries += 1
            job.stage = None
            job.error_message = message
            job.updated_at = now

            if retryable and job.retries < job.max_retries:
                job.status = JobStatus.QUEUED
                job.started_at = None
                terminal = False
                logger.warning(
                    f"[SCHEDULER] {job.job_id} failed (attempt {job.retries}/{job.max_retries}), "
                    f"re-queued: {message}"
                )
            else:
                job.status = JobStatus.FAILED
                job.failed_at = now
                terminal = True
                logger.error(f"[SCHEDULER] {job.job_id} failed permanently after {job.retries} attempts: {message}")

            self._mirror(job)
            snapshot = job.snapshot()

        if terminal:
            self._spawn(self._notifier.job_failed(snapshot))

    async def _record_success(self, job: Job, outcome: PipelineOutcome) -> None:
        now = self._clock()
        processing_time_ms = int((now - job.started_at).total_seconds() * 1000) if job.started_at else 0
        cost = compute_cost_breakdown(
            self._rates,
            duration_s=job.request.duration_s,
            frame_count=outcome.frame_count,
            file_size_bytes=outcome.file_size_bytes,
            processing_time_ms=processing_time_ms,
            captions=outcome.captions_applied,
            smart_features=job.request.smart_features and outcome.captions_applied,
        )

        async with self._lock:
            self._active.discard(job.job_id)
            job.status = JobStatus.COMPLETED
            job.stage = None
            job.completed_at = now
            job.updated_at = now
            job.error_message = None
            job.result = JobResult(
                output_url=outcome.output_url,
                download_url=outcome.download_url,
                storage_key=outcome.storage_key,
                file_size_bytes=outcome.file_size_bytes,
                processing_time_ms=processing_time_ms,
                frame_count=outcome.frame_count,
                cost=cost,
                caption_chunks=outcome.caption_chunks,
                captions_applied=outcome.captions_applied,
            )
            self._ledger.record(cost.total, now)
            self._mirror(job)
            snapshot = job.snapshot()

        logger.info(
            f"[SCHEDULER] Completed {job.job_id} in {processing_time_ms}ms, "
            f"{outcome.file_size_bytes} bytes, cost ${cost.total:.4f} (estimated ${job.estimated_cost:.4f})"
        )
        self._spawn(self._notifier.job_completed(snapshot))

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(self._guard(coro))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    async def _guard(coro: Awaitable[None]) -> None:
        try:
            await coro
        except Exception:
            logger.exception("[SCHEDULER] Notifier raised")

    def _mirror(self, job: Job) -> None:
        self._enqueue_write(("save", job.snapshot()))

    def _enqueue_write(self, item: tuple[str, Any]) -> None:
        self._mirror_queue.put_nowait(item)
        if self._mirror_worker is None or self._mirror_worker.done():
            self._mirror_worker = asyncio.create_task(self._drain_writes(), name="job-store-writer")

    async def _drain_writes(self) -> None:
        while True:
            action, payload = await self._mirror_queue.get()
            try:
                if action == "save":
                    await self._store.save(payload)
                else:
                    await self._store.delete(payload)
            except Exception as e:
                target = payload.job_id if action == "save" else payload
                logger.warning(f"[SCHEDULER] Job store {action} failed for {target}: {e}")
            finally:
                self._mirror_queue.task_done()
