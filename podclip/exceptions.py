"""Custom exceptions for the podclip service.

Request-facing errors carry an HTTP status and a machine-readable code.
Pipeline errors tell the scheduler whether a failed stage may be retried.
"""

from podclip.constants.error_codes import get_error_spec
from podclip.schemas.errors import ErrorInfo, ErrorLocation, SuggestedAction


class PodclipError(Exception):
    """Base exception for all podclip application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)

        suggested_actions: list[SuggestedAction] = []
        if "suggested_action" in spec:
            suggested_actions.append(
                SuggestedAction(
                    action=spec["suggested_action"],
                    endpoint=spec.get("suggested_endpoint"),
                    parameters=spec.get("parameters", {}),
                )
            )

        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
            suggested_actions=suggested_actions,
        )


# =============================================================================
# Resource Errors
# =============================================================================


class JobNotFoundError(PodclipError):
    """Job not found."""

    code = "JOB_NOT_FOUND"
    status_code = 404
    message = "Job not found"

    def __init__(self, job_id: str | None = None):
        message = f"Job not found: {job_id}" if job_id else self.message
        location = ErrorLocation(job_id=job_id) if job_id else None
        super().__init__(message, location=location)


class JobNotReadyError(PodclipError):
    """Job has not reached a terminal state yet."""

    code = "JOB_NOT_READY"
    status_code = 409
    message = "Job is still in progress"

    def __init__(self, job_id: str, status: str):
        super().__init__(
            f"Job {job_id} is still {status}",
            location=ErrorLocation(job_id=job_id),
        )


class ArtifactNotFoundError(PodclipError):
    """Encoded video not found (expired or never produced)."""

    code = "ARTIFACT_NOT_FOUND"
    status_code = 404
    message = "Video not found"


class ArtifactAccessError(PodclipError):
    """Artifact download token missing, invalid or expired."""

    code = "ARTIFACT_ACCESS_DENIED"
    status_code = 403
    message = "Invalid or expired download token"


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(PodclipError):
    """Malformed request. Never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str | None = None, *, field: str | None = None, code: str | None = None):
        location = ErrorLocation(field=field) if field else None
        super().__init__(message, code=code, location=location)


class InvalidAudioUrlError(ValidationError):
    code = "INVALID_AUDIO_URL"
    message = "Invalid audio URL"

    def __init__(self, url: str | None = None):
        super().__init__(
            f"Invalid audio URL: {url!r}" if url else self.message,
            field="audio_url",
        )


class ClipDurationError(ValidationError):
    code = "CLIP_DURATION_OUT_OF_RANGE"
    message = "Clip duration out of range"

    def __init__(self, duration_s: float, min_s: int, max_s: int):
        super().__init__(
            f"Clip duration {duration_s:.1f}s is outside the allowed range {min_s}-{max_s}s",
            field="clip_end_ms",
        )


# =============================================================================
# Capacity Errors (caller may retry later)
# =============================================================================


class CapacityError(PodclipError):
    """Admission refused. Not retried by the scheduler."""

    code = "RATE_LIMITED"
    status_code = 429


class QueueFullError(CapacityError):
    code = "QUEUE_FULL"
    status_code = 429
    message = "Video queue is full, please try again later"


class DailySpendCapError(CapacityError):
    code = "DAILY_SPEND_CAP_REACHED"
    status_code = 402
    message = "Daily spending limit reached, please try again tomorrow"


class FeatureDisabledError(CapacityError):
    code = "VIDEO_GENERATION_DISABLED"
    status_code = 503
    message = "Server-side video generation is disabled"


# =============================================================================
# Pipeline Stage Errors
# =============================================================================


class StageError(PodclipError):
    """Base class for errors raised while a job's pipeline runs."""

    code = "STAGE_FAILED"

    def __init__(self, message: str | None = None, *, stage: str | None = None):
        self.stage = stage
        location = ErrorLocation(stage=stage) if stage else None
        super().__init__(message, location=location)


class TransientStageError(StageError):
    """I/O failure in a stage. The job is re-queued up to max_retries."""

    code = "STAGE_FAILED"
    message = "Pipeline stage failed"


class FatalStageError(StageError):
    """Unrecoverable failure (encoder timeout, corrupt output). No retry."""

    code = "STAGE_FATAL"
    message = "Pipeline stage failed permanently"


class DegradedFeatureError(StageError):
    """Optional feature failed. The pipeline continues without it."""

    code = "CAPTIONS_UNAVAILABLE"
    message = "Captions unavailable"
