"""Tests for the artifact retention sweeper."""

import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from podclip.exceptions import ValidationError
from podclip.jobs.models import Job, JobStatus
from podclip.services.retention_sweeper import EMERGENCY_CONFIRMATION, RetentionSweeper
from podclip.services.storage_service import ArtifactStorage, artifact_key
from tests.factories import make_request

NOW = 1_714_564_800.0  # 2024-05-01 12:00 UTC
HOUR = 3600


class FakeRegistry:
    def __init__(self, jobs: list[Job] | None = None):
        self.jobs = {job.job_id: job for job in jobs or []}
        self.evict_expired = AsyncMock(return_value=0)

    def find_job(self, job_id):
        return self.jobs.get(job_id)


def make_job(job_id: str, status: JobStatus, age_hours: float) -> Job:
    created = datetime.fromtimestamp(NOW - age_hours * HOUR, tz=timezone.utc)
    return Job(job_id=job_id, request=make_request(), created_at=created, status=status)


@pytest.fixture
def storage(tmp_path) -> ArtifactStorage:
    return ArtifactStorage(str(tmp_path / "storage"))


def put_artifact(storage: ArtifactStorage, job_id: str, age_hours: float, size: int = 1000) -> str:
    key = artifact_key(job_id)
    path = storage.base_path / key
    path.write_bytes(b"\x00" * size)
    mtime = NOW - age_hours * HOUR
    os.utime(path, (mtime, mtime))
    return key


def make_sweeper(storage, registry) -> RetentionSweeper:
    return RetentionSweeper(storage, registry, retention_hours=48, grace_hours=24, clock=lambda: NOW)


class TestSweep:
    @pytest.mark.asyncio
    async def test_deletes_expired_orphan(self, storage):
        key = put_artifact(storage, "vid_orphan00", age_hours=72, size=4096)
        sweeper = make_sweeper(storage, FakeRegistry())

        result = await sweeper.sweep()

        assert not storage.file_exists(key)
        assert result.found == 1
        assert result.deleted == 1
        assert result.freed_bytes == 4096

    @pytest.mark.asyncio
    async def test_keeps_young_artifacts(self, storage):
        key = put_artifact(storage, "vid_young000", age_hours=2)
        sweeper = make_sweeper(storage, FakeRegistry())

        result = await sweeper.sweep()

        assert storage.file_exists(key)
        assert result.found == 0
        assert result.deleted == 0

    @pytest.mark.asyncio
    async def test_keeps_artifact_of_running_job(self, storage):
        key = put_artifact(storage, "vid_running0", age_hours=72)
        registry = FakeRegistry([make_job("vid_running0", JobStatus.PROCESSING, age_hours=100)])

        result = await make_sweeper(storage, registry).sweep()

        assert storage.file_exists(key)
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_keeps_artifact_within_grace_period(self, storage):
        key = put_artifact(storage, "vid_recent00", age_hours=72)
        registry = FakeRegistry([make_job("vid_recent00", JobStatus.COMPLETED, age_hours=10)])

        result = await make_sweeper(storage, registry).sweep()

        assert storage.file_exists(key)
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_deletes_artifact_of_old_finished_job(self, storage):
        key = put_artifact(storage, "vid_done0000", age_hours=72)
        registry = FakeRegistry([make_job("vid_done0000", JobStatus.COMPLETED, age_hours=100)])

        result = await make_sweeper(storage, registry).sweep()

        assert not storage.file_exists(key)
        assert result.deleted == 1

    @pytest.mark.asyncio
    async def test_evicts_expired_jobs(self, storage):
        registry = FakeRegistry()
        registry.evict_expired.return_value = 3

        result = await make_sweeper(storage, registry).sweep()

        registry.evict_expired.assert_awaited_once_with(48)
        assert result.evicted_jobs == 3

    @pytest.mark.asyncio
    async def test_last_result_in_stats(self, storage):
        put_artifact(storage, "vid_orphan00", age_hours=72)
        put_artifact(storage, "vid_young000", age_hours=2)
        sweeper = make_sweeper(storage, FakeRegistry())

        before = sweeper.get_stats()
        await sweeper.sweep()
        after = sweeper.get_stats()

        assert before["total_videos"] == 2
        assert before["expired_videos"] == 1
        assert before["last_sweep"] is None
        assert after["total_videos"] == 1
        assert after["last_sweep"]["videos_deleted"] == 1


class TestEmergencyCleanup:
    def test_requires_confirmation(self, storage):
        put_artifact(storage, "vid_young000", age_hours=1)
        sweeper = make_sweeper(storage, FakeRegistry())

        with pytest.raises(ValidationError):
            sweeper.emergency_cleanup("yes please")

        assert sweeper.get_stats()["total_videos"] == 1

    def test_deletes_everything(self, storage):
        put_artifact(storage, "vid_young000", age_hours=1)
        put_artifact(storage, "vid_running0", age_hours=1)
        registry = FakeRegistry([make_job("vid_running0", JobStatus.PROCESSING, age_hours=1)])
        sweeper = make_sweeper(storage, registry)

        result = sweeper.emergency_cleanup(EMERGENCY_CONFIRMATION)

        assert result.deleted == 2
        assert list(storage.list_artifacts()) == []
