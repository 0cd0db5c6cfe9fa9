"""Request-scoped accessors for the instances built in the app lifespan."""

from typing import Annotated

from fastapi import Depends, Request

from podclip.config import Settings
from podclip.jobs.scheduler import JobScheduler
from podclip.services.retention_sweeper import RetentionSweeper
from podclip.services.storage_service import ArtifactStorage


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_scheduler(request: Request) -> JobScheduler:
    return request.app.state.scheduler


def get_storage(request: Request) -> ArtifactStorage:
    return request.app.state.storage


def get_sweeper(request: Request) -> RetentionSweeper:
    return request.app.state.sweeper


AppSettings = Annotated[Settings, Depends(get_app_settings)]
Scheduler = Annotated[JobScheduler, Depends(get_scheduler)]
Storage = Annotated[ArtifactStorage, Depends(get_storage)]
Sweeper = Annotated[RetentionSweeper, Depends(get_sweeper)]
