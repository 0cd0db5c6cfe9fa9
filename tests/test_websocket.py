"""Tests for WebSocket progress notifications."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from podclip.api.websocket import (
    JobProgressNotifier,
    WebSocketManager,
    create_error_message,
    create_progress_message,
)
from podclip.jobs.models import CostBreakdown, Job, JobResult, JobStage, JobStatus
from podclip.jobs.scheduler import JobScheduler
from podclip.main import create_app
from podclip.services.storage_service import ArtifactStorage
from tests.factories import make_request

CREATED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_socket() -> MagicMock:
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.send_json = AsyncMock()
    return ws


class TestWebSocketManager:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_all_watchers(self):
        manager = WebSocketManager()
        first, second, other = make_socket(), make_socket(), make_socket()
        await manager.connect(first, "vid_1")
        await manager.connect(second, "vid_1")
        await manager.connect(other, "vid_2")

        await manager.broadcast("vid_1", {"type": "progress"})

        first.send_json.assert_awaited_once_with({"type": "progress"})
        second.send_json.assert_awaited_once_with({"type": "progress"})
        other.send_json.assert_not_awaited()
        assert manager.get_connection_count("vid_1") == 2

    @pytest.mark.asyncio
    async def test_failed_send_drops_socket(self):
        manager = WebSocketManager()
        dead = make_socket()
        dead.send_json.side_effect = RuntimeError("closed")
        await manager.connect(dead, "vid_1")

        await manager.broadcast("vid_1", {"type": "progress"})

        assert manager.get_connection_count("vid_1") == 0

    def test_disconnect_unknown_is_noop(self):
        WebSocketManager().disconnect(make_socket(), "vid_missing")


class TestJobProgressNotifier:
    @pytest.mark.asyncio
    async def test_progress_message(self):
        manager = MagicMock(spec=WebSocketManager)
        manager.broadcast = AsyncMock()

        await JobProgressNotifier(manager).job_progress("vid_1", JobStage.ENCODING)

        manager.broadcast.assert_awaited_once_with("vid_1", create_progress_message("vid_1", JobStage.ENCODING))
        message = manager.broadcast.await_args.args[1]
        assert message["stage"] == "encoding"
        assert message["percent"] == 80.0

    @pytest.mark.asyncio
    async def test_completed_message(self):
        manager = MagicMock(spec=WebSocketManager)
        manager.broadcast = AsyncMock()
        job = Job(job_id="vid_1", request=make_request(), created_at=CREATED, status=JobStatus.COMPLETED)
        job.result = JobResult(
            output_url="http://localhost:8000/artifacts/vid_1",
            download_url="http://localhost:8000/artifacts/vid_1?download=1",
            storage_key="video_vid_1.mp4",
            file_size_bytes=2_000_000,
            processing_time_ms=40_000,
            frame_count=360,
            cost=CostBreakdown(),
        )

        await JobProgressNotifier(manager).job_completed(job)

        message = manager.broadcast.await_args.args[1]
        assert message["type"] == "complete"
        assert message["output_url"] == "http://localhost:8000/artifacts/vid_1"
        assert message["duration_ms"] == 30_000

    @pytest.mark.asyncio
    async def test_completed_message_signs_link_when_sent(self, tmp_path):
        manager = MagicMock(spec=WebSocketManager)
        manager.broadcast = AsyncMock()
        storage = ArtifactStorage(str(tmp_path), signing=True, token_secret="test-secret")
        job = Job(job_id="vid_1", request=make_request(), created_at=CREATED, status=JobStatus.COMPLETED)
        job.result = JobResult(
            output_url="http://localhost:8000/artifacts/vid_1",
            download_url="http://localhost:8000/artifacts/vid_1?download=1",
            storage_key="video_vid_1.mp4",
            file_size_bytes=2_000_000,
            processing_time_ms=40_000,
            frame_count=360,
            cost=CostBreakdown(),
        )

        await JobProgressNotifier(manager, storage).job_completed(job)

        url = manager.broadcast.await_args.args[1]["output_url"]
        storage.check_access("vid_1", url.split("token=", 1)[1])

    @pytest.mark.asyncio
    async def test_failed_message(self):
        manager = MagicMock(spec=WebSocketManager)
        manager.broadcast = AsyncMock()
        job = Job(
            job_id="vid_1",
            request=make_request(),
            created_at=CREATED,
            status=JobStatus.FAILED,
            retries=2,
            error_message="Audio download failed",
        )

        await JobProgressNotifier(manager).job_failed(job)

        manager.broadcast.assert_awaited_once_with(
            "vid_1", create_error_message("vid_1", "Audio download failed", retries=2)
        )


class TestProgressSocket:
    def _client(self, make_settings, job):
        scheduler = MagicMock(spec=JobScheduler)
        scheduler.find_job.return_value = job
        scheduler.get_status.return_value = job
        app = create_app(make_settings())
        app.state.scheduler = scheduler
        return TestClient(app), app

    def test_sends_status_on_connect(self, make_settings):
        job = Job(job_id="vid_1", request=make_request(), created_at=CREATED)
        job.queue_position = 2
        client, app = self._client(make_settings, job)

        with client.websocket_connect("/jobs/vid_1/ws") as ws:
            message = ws.receive_json()
            assert app.state.websocket_manager.get_connection_count("vid_1") == 1

        assert message == {
            "type": "status",
            "job_id": "vid_1",
            "status": "queued",
            "stage": None,
            "queue_position": 2,
        }

    def test_unknown_job_closes(self, make_settings):
        client, _ = self._client(make_settings, None)

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/jobs/vid_missing/ws") as ws:
                ws.receive_json()

        assert exc_info.value.code == 4404
