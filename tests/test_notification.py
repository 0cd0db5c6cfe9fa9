"""Tests for job lifecycle notifiers."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from podclip.jobs.models import CostBreakdown, Job, JobResult, JobStage, JobStatus
from podclip.services.notification_service import (
    CompositeNotifier,
    JobNotifier,
    WebhookNotifier,
    build_job_summary,
)
from podclip.services.storage_service import ArtifactStorage
from tests.factories import make_request

CREATED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def failed_job(**request_overrides) -> Job:
    return Job(
        job_id="vid_1234abcd",
        request=make_request(**request_overrides),
        created_at=CREATED,
        status=JobStatus.FAILED,
        retries=2,
        error_message="Audio download failed with HTTP 404",
    )


class TestJobSummary:
    def test_failed_summary(self):
        summary = build_job_summary(failed_job(user_email="host@example.com"))

        assert summary["status"] == "failed"
        assert summary["podcast_name"] == "The Daily Build"
        assert summary["error"] == "Audio download failed with HTTP 404"
        assert summary["retries"] == 2
        assert "video_url" not in summary

    def test_completed_summary_signs_links_at_send_time(self, tmp_path):
        job = Job(
            job_id="vid_1234abcd",
            request=make_request(user_email="host@example.com"),
            created_at=CREATED,
            status=JobStatus.COMPLETED,
        )
        job.result = JobResult(
            output_url="http://localhost:8000/artifacts/vid_1234abcd",
            download_url="http://localhost:8000/artifacts/vid_1234abcd?download=1",
            storage_key="video_vid_1234abcd.mp4",
            file_size_bytes=2_500_000,
            processing_time_ms=45_000,
            frame_count=360,
            cost=CostBreakdown(),
        )
        storage = ArtifactStorage(str(tmp_path), signing=True, token_secret="test-secret")

        summary = build_job_summary(job, storage)

        token = summary["video_url"].split("token=", 1)[1]
        storage.check_access("vid_1234abcd", token)
        assert summary["download_url"].endswith("&download=1")
        assert build_job_summary(job)["video_url"] == job.result.output_url


class TestWebhookNotifier:
    @pytest.mark.asyncio
    async def test_posts_failure(self):
        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(json.loads(request.content))
            return httpx.Response(204)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = WebhookNotifier("https://hooks.example.com/podclip", client=client)

        await notifier.job_failed(failed_job(device_token="device-abc"))

        assert sent[0]["event"] == "job.failed"
        assert sent[0]["job"]["device_token"] == "device-abc"
        await notifier.close()

    @pytest.mark.asyncio
    async def test_skips_jobs_without_recipient(self):
        handler_calls = []

        def handler(request):
            handler_calls.append(request)
            return httpx.Response(204)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = WebhookNotifier("https://hooks.example.com/podclip", client=client)

        await notifier.job_failed(failed_job())

        assert handler_calls == []
        await notifier.close()

    @pytest.mark.asyncio
    async def test_http_errors_are_logged_not_raised(self, caplog):
        def handler(request):
            return httpx.Response(500)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = WebhookNotifier("https://hooks.example.com/podclip", client=client)

        await notifier.job_failed(failed_job(user_email="host@example.com"))

        assert "[NOTIFY] job.failed webhook for vid_1234abcd failed" in caplog.text
        await notifier.close()


class TestCompositeNotifier:
    @pytest.mark.asyncio
    async def test_one_failing_notifier_does_not_block_others(self):
        broken = JobNotifier()
        broken.job_progress = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = JobNotifier()
        healthy.job_progress = AsyncMock()

        await CompositeNotifier([broken, healthy]).job_progress("vid_1", JobStage.RENDERING)

        healthy.job_progress.assert_awaited_once_with("vid_1", JobStage.RENDERING)
