from podclip.schemas.errors import ErrorInfo, ErrorLocation, ErrorResponse, SuggestedAction
from podclip.schemas.job import (
    CreateJobRequest,
    JobMetadataResponse,
    JobStatusResponse,
    PodcastPayload,
    SubmitJobResponse,
)

__all__ = [
    "ErrorInfo",
    "ErrorLocation",
    "ErrorResponse",
    "SuggestedAction",
    "CreateJobRequest",
    "PodcastPayload",
    "SubmitJobResponse",
    "JobStatusResponse",
    "JobMetadataResponse",
]
