"""Artifact download and retention maintenance endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import FileResponse
from pydantic import BaseModel

from podclip.api.deps import Storage, Sweeper
from podclip.exceptions import ArtifactAccessError, ArtifactNotFoundError
from podclip.services.storage_service import artifact_key

router = APIRouter()
logger = logging.getLogger(__name__)


class EmergencyCleanupRequest(BaseModel):
    confirmation: str


@router.get("/artifacts/{job_id}")
async def get_artifact(
    job_id: str,
    storage: Storage,
    download: bool = False,
    token: Optional[str] = None,
) -> FileResponse:
    """Stream an encoded video. ``download=1`` serves it as an attachment."""
    try:
        storage.check_access(job_id, token)
    except ValueError as e:
        logger.info(f"[ARTIFACTS] Access denied for {job_id}: {e}")
        raise ArtifactAccessError()

    storage_key = artifact_key(job_id)
    try:
        exists = storage.file_exists(storage_key)
    except ValueError:
        exists = False
    if not exists:
        raise ArtifactNotFoundError(f"Video not found: {job_id}")

    return FileResponse(
        storage.get_file_path(storage_key),
        media_type="video/mp4",
        filename=storage_key if download else None,
    )


@router.post("/maintenance/sweep")
async def run_sweep(sweeper: Sweeper) -> dict:
    result = await sweeper.sweep()
    return result.to_dict()


@router.post("/maintenance/emergency-cleanup")
async def emergency_cleanup(body: EmergencyCleanupRequest, sweeper: Sweeper) -> dict:
    """Delete every stored video. Requires the confirmation phrase."""
    result = sweeper.emergency_cleanup(body.confirmation)
    return result.to_dict()
