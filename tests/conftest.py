"""Pytest fixtures for podclip tests."""

from pathlib import Path

import pytest

from podclip.config import Settings
from tests.factories import Clock


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Scratch directory for a single test."""
    return tmp_path


@pytest.fixture
def make_settings(tmp_path: Path):
    """Build Settings isolated from the environment's .env file."""

    def factory(**overrides) -> Settings:
        values = {
            "storage_path": str(tmp_path / "storage"),
            "database_url": "",
            "assemblyai_api_key": "",
            "notify_webhook_url": "",
            "artifact_url_signing": False,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return factory


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> Clock:
    return Clock()
