import asyncio
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from podclip.utils.artifact_token import create_artifact_token, verify_artifact_token

logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = "video_"
ARTIFACT_SUFFIX = ".mp4"


def artifact_key(job_id: str) -> str:
    return f"{ARTIFACT_PREFIX}{job_id}{ARTIFACT_SUFFIX}"


def job_id_from_key(storage_key: str) -> Optional[str]:
    if storage_key.startswith(ARTIFACT_PREFIX) and storage_key.endswith(ARTIFACT_SUFFIX):
        return storage_key[len(ARTIFACT_PREFIX):-len(ARTIFACT_SUFFIX)]
    return None


@dataclass
class StoredArtifact:
    storage_key: str
    job_id: Optional[str]
    path: Path
    size_bytes: int
    modified_at: float

    def age_hours(self, now: Optional[float] = None) -> float:
        return ((now or time.time()) - self.modified_at) / 3600


class ArtifactStorage:
    """Local file storage for encoded videos, served by GET /artifacts/{id}."""

    def __init__(
        self,
        base_path: str,
        public_base_url: str = "http://localhost:8000",
        signing: bool = False,
        token_secret: str = "",
        token_max_age_s: int = 7 * 24 * 3600,
    ) -> None:
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")
        self.signing = signing
        self.token_secret = token_secret
        self.token_max_age_s = token_max_age_s

    @classmethod
    def from_settings(cls, settings) -> "ArtifactStorage":
        return cls(
            base_path=settings.storage_path,
            public_base_url=settings.public_base_url,
            signing=settings.artifact_url_signing,
            token_secret=settings.artifact_token_secret,
            token_max_age_s=settings.artifact_token_max_age_s,
        )

    def _get_full_path(self, storage_key: str) -> Path:
        full_path = (self.base_path / storage_key).resolve()
        if self.base_path.resolve() not in full_path.parents:
            raise ValueError(f"Storage key escapes storage root: {storage_key}")
        return full_path

    def get_public_url(self, job_id: str, download: bool = False, signed: bool = True) -> str:
        """URL for the artifact, signed when signing is enabled.

        Tokens expire long before artifacts do, so persisted URLs are built
        with ``signed=False`` and signed again whenever they are handed out.
        """
        params = []
        if self.signing and signed:
            params.append(f"token={create_artifact_token(job_id, self.token_secret)}")
        if download:
            params.append("download=1")
        query = f"?{'&'.join(params)}" if params else ""
        return f"{self.public_base_url}/artifacts/{job_id}{query}"

    def check_access(self, job_id: str, token: Optional[str]) -> None:
        """Raise ValueError unless ``token`` grants access (no-op when unsigned)."""
        if not self.signing:
            return
        if not token:
            raise ValueError("Missing token")
        verify_artifact_token(token, job_id, self.token_secret, self.token_max_age_s)

    async def store(self, local_path: Path, job_id: str) -> str:
        """Move an encoded video into storage. Returns the storage key."""
        storage_key = artifact_key(job_id)
        full_path = self._get_full_path(storage_key)
        await asyncio.to_thread(shutil.move, str(local_path), str(full_path))
        logger.info(f"[STORAGE] Stored {storage_key} ({full_path.stat().st_size} bytes)")
        return storage_key

    def delete_file(self, storage_key: str) -> bool:
        full_path = self._get_full_path(storage_key)
        if full_path.exists():
            full_path.unlink()
            return True
        return False

    def file_exists(self, storage_key: str) -> bool:
        return self._get_full_path(storage_key).exists()

    def get_file_path(self, storage_key: str) -> Path:
        """Get the actual file path for serving."""
        return self._get_full_path(storage_key)

    def list_artifacts(self) -> Iterator[StoredArtifact]:
        for path in sorted(self.base_path.glob(f"{ARTIFACT_PREFIX}*{ARTIFACT_SUFFIX}")):
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            yield StoredArtifact(
                storage_key=path.name,
                job_id=job_id_from_key(path.name),
                path=path,
                size_bytes=stat.st_size,
                modified_at=stat.st_mtime,
            )
