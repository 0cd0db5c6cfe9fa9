"""Job lifecycle notifications.

The scheduler fires these without waiting on them; every notifier logs
its own failures instead of raising.
"""

import logging
from typing import Any, Optional, Sequence

import httpx

from podclip.jobs.models import Job, JobStage
from podclip.services.storage_service import ArtifactStorage

logger = logging.getLogger(__name__)


class JobNotifier:
    """Receives job lifecycle events. The base class ignores them."""

    async def job_progress(self, job_id: str, stage: JobStage) -> None:
        return None

    async def job_completed(self, job: Job) -> None:
        return None

    async def job_failed(self, job: Job) -> None:
        return None


def build_job_summary(job: Job, storage: Optional[ArtifactStorage] = None) -> dict[str, Any]:
    """Payload shared by webhook notifications.

    With ``storage`` the artifact links are signed now rather than taken
    from the stored result.
    """
    podcast = job.request.podcast
    summary: dict[str, Any] = {
        "job_id": job.job_id,
        "status": job.status.value,
        "podcast_name": podcast.podcast_name,
        "episode_title": podcast.title,
        "duration_s": job.request.duration_s,
        "user_email": job.request.user_email,
        "device_token": job.request.device_token,
    }
    if job.result:
        if storage is not None:
            summary["video_url"] = storage.get_public_url(job.job_id)
            summary["download_url"] = storage.get_public_url(job.job_id, download=True)
        else:
            summary["video_url"] = job.result.output_url
            summary["download_url"] = job.result.download_url
        summary["file_size_bytes"] = job.result.file_size_bytes
    if job.error_message:
        summary["error"] = job.error_message
        summary["retries"] = job.retries
    return summary


class WebhookNotifier(JobNotifier):
    """POSTs a JSON summary to a webhook on completion and failure."""

    def __init__(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        storage: Optional[ArtifactStorage] = None,
    ):
        self.url = url
        self.storage = storage
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _post(self, event: str, job: Job) -> None:
        payload = {"event": event, "job": build_job_summary(job, self.storage)}
        try:
            response = await self._get_client().post(self.url, json=payload)
            response.raise_for_status()
            logger.info(f"[NOTIFY] Sent {event} webhook for {job.job_id}")
        except httpx.HTTPError as e:
            logger.warning(f"[NOTIFY] {event} webhook for {job.job_id} failed: {e}")

    async def job_completed(self, job: Job) -> None:
        if not (job.request.user_email or job.request.device_token):
            return
        await self._post("job.completed", job)

    async def job_failed(self, job: Job) -> None:
        if not (job.request.user_email or job.request.device_token):
            return
        await self._post("job.failed", job)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class CompositeNotifier(JobNotifier):
    """Fans each event out to several notifiers."""

    def __init__(self, notifiers: Sequence[JobNotifier]):
        self.notifiers = list(notifiers)

    async def job_progress(self, job_id: str, stage: JobStage) -> None:
        for notifier in self.notifiers:
            await self._safe(notifier.job_progress(job_id, stage), notifier)

    async def job_completed(self, job: Job) -> None:
        for notifier in self.notifiers:
            await self._safe(notifier.job_completed(job), notifier)

    async def job_failed(self, job: Job) -> None:
        for notifier in self.notifiers:
            await self._safe(notifier.job_failed(job), notifier)

    @staticmethod
    async def _safe(coro, notifier: JobNotifier) -> None:
        try:
            await coro
        except Exception:
            logger.exception(f"[NOTIFY] {type(notifier).__name__} raised")
