"""Tests for local artifact storage and signed download tokens."""

import time

import pytest

from podclip.services.storage_service import ArtifactStorage, artifact_key, job_id_from_key
from podclip.utils.artifact_token import create_artifact_token, verify_artifact_token

SECRET = "test-secret"


class TestArtifactToken:
    def test_valid_token(self):
        token = create_artifact_token("vid_1234abcd", SECRET)
        verify_artifact_token(token, "vid_1234abcd", SECRET, max_age_s=60)

    def test_wrong_job(self):
        token = create_artifact_token("vid_1234abcd", SECRET)
        with pytest.raises(ValueError, match="does not match"):
            verify_artifact_token(token, "vid_other000", SECRET, max_age_s=60)

    def test_wrong_secret(self):
        token = create_artifact_token("vid_1234abcd", SECRET)
        with pytest.raises(ValueError, match="signature"):
            verify_artifact_token(token, "vid_1234abcd", "other-secret", max_age_s=60)

    def test_expired(self):
        token = create_artifact_token("vid_1234abcd", SECRET, issued_at=int(time.time()) - 120)
        with pytest.raises(ValueError, match="expired"):
            verify_artifact_token(token, "vid_1234abcd", SECRET, max_age_s=60)

    def test_garbage(self):
        with pytest.raises(ValueError):
            verify_artifact_token("not-a-token", "vid_1234abcd", SECRET, max_age_s=60)


class TestArtifactStorage:
    def test_key_helpers(self):
        assert artifact_key("vid_1234abcd") == "video_vid_1234abcd.mp4"
        assert job_id_from_key("video_vid_1234abcd.mp4") == "vid_1234abcd"
        assert job_id_from_key("notes.txt") is None

    def test_unsigned_urls(self, tmp_path):
        storage = ArtifactStorage(str(tmp_path), public_base_url="https://clips.example.com/")

        assert storage.get_public_url("vid_1") == "https://clips.example.com/artifacts/vid_1"
        assert storage.get_public_url("vid_1", download=True) == (
            "https://clips.example.com/artifacts/vid_1?download=1"
        )
        storage.check_access("vid_1", None)

    def test_signed_urls_carry_valid_token(self, tmp_path):
        storage = ArtifactStorage(str(tmp_path), signing=True, token_secret=SECRET)

        url = storage.get_public_url("vid_1", download=True)
        query = url.split("?", 1)[1]
        params = dict(part.split("=", 1) for part in query.split("&"))

        assert params["download"] == "1"
        storage.check_access("vid_1", params["token"])
        with pytest.raises(ValueError):
            storage.check_access("vid_1", None)
        with pytest.raises(ValueError):
            storage.check_access("vid_2", params["token"])

    def test_unsigned_form_for_persisted_links(self, tmp_path):
        storage = ArtifactStorage(str(tmp_path), signing=True, token_secret=SECRET)

        assert storage.get_public_url("vid_1", signed=False) == "http://localhost:8000/artifacts/vid_1"
        assert storage.get_public_url("vid_1", download=True, signed=False).endswith("/vid_1?download=1")

    @pytest.mark.asyncio
    async def test_store_moves_file(self, tmp_path):
        storage = ArtifactStorage(str(tmp_path / "storage"))
        encoded = tmp_path / "video.mp4"
        encoded.write_bytes(b"\x00" * 2048)

        key = await storage.store(encoded, "vid_1234abcd")

        assert key == "video_vid_1234abcd.mp4"
        assert not encoded.exists()
        assert storage.file_exists(key)
        [artifact] = list(storage.list_artifacts())
        assert artifact.job_id == "vid_1234abcd"
        assert artifact.size_bytes == 2048

    def test_rejects_path_escape(self, tmp_path):
        storage = ArtifactStorage(str(tmp_path / "storage"))
        with pytest.raises(ValueError):
            storage.get_file_path("../outside.mp4")

    def test_delete_missing_file(self, tmp_path):
        storage = ArtifactStorage(str(tmp_path))
        assert storage.delete_file("video_vid_missing.mp4") is False
