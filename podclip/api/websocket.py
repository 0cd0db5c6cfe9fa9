"""WebSocket support for real-time job progress notifications.

This module provides:
- WebSocketManager: Manages WebSocket connections per video job
- JobProgressNotifier: Scheduler notifier that broadcasts to connected clients
- Message creation helpers: Standardized message formats
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from podclip.jobs.models import Job, JobStage, JobStatus
from podclip.services.notification_service import JobNotifier
from podclip.services.storage_service import ArtifactStorage

router = APIRouter()
logger = logging.getLogger(__name__)

# Rough progress reported when a stage starts
STAGE_PERCENT: dict[JobStage, float] = {
    JobStage.EXTRACTING: 5.0,
    JobStage.TRANSCRIBING: 20.0,
    JobStage.CAPTIONING: 35.0,
    JobStage.RENDERING: 45.0,
    JobStage.ENCODING: 80.0,
    JobStage.STORING: 95.0,
}


class WebSocketManager:
    """Manages WebSocket connections for job progress updates.

    Supports multiple clients watching the same job.
    """

    def __init__(self):
        # job_id -> list of connected websockets
        self._connections: dict[str, list[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, job_id: str) -> None:
        """Accept and register a WebSocket connection for a job."""
        await websocket.accept()
        self._connections.setdefault(job_id, []).append(websocket)

    def disconnect(self, websocket: WebSocket, job_id: str) -> None:
        """Remove a WebSocket connection."""
        if job_id in self._connections:
            if websocket in self._connections[job_id]:
                self._connections[job_id].remove(websocket)
            if not self._connections[job_id]:
                del self._connections[job_id]

    async def broadcast(self, job_id: str, message: dict[str, Any]) -> None:
        """Broadcast a message to all clients watching a job."""
        disconnected = []
        for websocket in list(self._connections.get(job_id, [])):
            try:
                await websocket.send_json(message)
            except Exception:
                # Client disconnected
                disconnected.append(websocket)

        for ws in disconnected:
            self.disconnect(ws, job_id)

    def get_connection_count(self, job_id: str) -> int:
        """Get the number of connected clients for a job."""
        return len(self._connections.get(job_id, []))


class JobProgressNotifier(JobNotifier):
    """Forwards scheduler events to WebSocket clients."""

    def __init__(self, manager: WebSocketManager, storage: Optional[ArtifactStorage] = None):
        self._manager = manager
        self._storage = storage

    async def job_progress(self, job_id: str, stage: JobStage) -> None:
        await self._manager.broadcast(job_id, create_progress_message(job_id, stage))

    async def job_completed(self, job: Job) -> None:
        result = job.result
        message = create_complete_message(
            job_id=job.job_id,
            output_url=self._output_url(job),
            duration_ms=job.request.duration_ms,
            file_size_bytes=result.file_size_bytes if result else 0,
        )
        await self._manager.broadcast(job.job_id, message)

    def _output_url(self, job: Job) -> str:
        if job.result is None:
            return ""
        if self._storage is not None:
            return self._storage.get_public_url(job.job_id)
        return job.result.output_url

    async def job_failed(self, job: Job) -> None:
        message = create_error_message(
            job_id=job.job_id,
            error_message=job.error_message or "Video generation failed",
            retries=job.retries,
        )
        await self._manager.broadcast(job.job_id, message)


def create_progress_message(job_id: str, stage: JobStage) -> dict[str, Any]:
    """Create a standardized progress message."""
    return {
        "type": "progress",
        "job_id": job_id,
        "status": JobStatus.PROCESSING.value,
        "stage": stage.value,
        "percent": STAGE_PERCENT.get(stage, 0.0),
    }


def create_complete_message(
    job_id: str,
    output_url: str,
    duration_ms: int = 0,
    file_size_bytes: int = 0,
) -> dict[str, Any]:
    """Create a standardized completion message."""
    return {
        "type": "complete",
        "job_id": job_id,
        "status": JobStatus.COMPLETED.value,
        "percent": 100.0,
        "output_url": output_url,
        "duration_ms": duration_ms,
        "file_size_bytes": file_size_bytes,
    }


def create_error_message(job_id: str, error_message: str, retries: Optional[int] = None) -> dict[str, Any]:
    """Create a standardized error message."""
    return {
        "type": "error",
        "job_id": job_id,
        "status": JobStatus.FAILED.value,
        "error_message": error_message,
        "retries": retries,
    }


def create_status_message(job: Job) -> dict[str, Any]:
    """Snapshot sent when a client first connects."""
    return {
        "type": "status",
        "job_id": job.job_id,
        "status": job.status.value,
        "stage": job.stage.value if job.stage else None,
        "queue_position": job.queue_position,
    }


@router.websocket("/jobs/{job_id}/ws")
async def job_progress_socket(websocket: WebSocket, job_id: str) -> None:
    scheduler = websocket.app.state.scheduler
    manager: WebSocketManager = websocket.app.state.websocket_manager

    job = scheduler.find_job(job_id)
    if job is None:
        await websocket.close(code=4404)
        return

    await manager.connect(websocket, job_id)
    try:
        await websocket.send_json(create_status_message(scheduler.get_status(job_id)))
        # Clients only listen; reading detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket, job_id)
