"""Error codes dictionary for the podclip API.

This is the single source of truth for all error codes, their retryability,
and suggested recovery actions. Used by exception handlers to generate
machine-readable error responses.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_endpoint: str
    suggested_fix: str
    parameters: dict[str, Any]


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Resource errors
    # ==========================================================================
    "JOB_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Check the job id returned by POST /jobs",
    },
    "JOB_NOT_READY": {
        "retryable": True,
        "suggested_action": "poll_status",
        "suggested_endpoint": "GET /jobs/{job_id}",
        "parameters": {"delay_ms": 5000},
    },
    "ARTIFACT_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "The video may have expired; create a new job",
    },
    "ARTIFACT_ACCESS_DENIED": {
        "retryable": False,
        "suggested_fix": "Request a fresh download URL from GET /jobs/{job_id}",
    },
    # ==========================================================================
    # Request errors
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "INVALID_AUDIO_URL": {
        "retryable": False,
        "suggested_fix": "audio_url must be an absolute http(s) URL",
    },
    "INVALID_CLIP_RANGE": {
        "retryable": False,
        "suggested_fix": "clip_end_ms must be greater than clip_start_ms",
    },
    "CLIP_DURATION_OUT_OF_RANGE": {
        "retryable": False,
        "suggested_fix": "Choose a clip between the minimum and maximum duration",
    },
    "BAD_REQUEST": {
        "retryable": False,
    },
    "NOT_FOUND": {
        "retryable": False,
    },
    # ==========================================================================
    # Capacity errors (caller may retry later)
    # ==========================================================================
    "QUEUE_FULL": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 30000, "max_retries": 3},
    },
    "DAILY_SPEND_CAP_REACHED": {
        "retryable": True,
        "suggested_action": "retry_tomorrow",
    },
    "VIDEO_GENERATION_DISABLED": {
        "retryable": False,
        "suggested_fix": "Server-side video generation is disabled on this deployment",
    },
    "RATE_LIMITED": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 1000, "max_retries": 3},
    },
    # ==========================================================================
    # Pipeline errors
    # ==========================================================================
    "STAGE_FAILED": {
        "retryable": True,
    },
    "STAGE_FATAL": {
        "retryable": False,
    },
    "CAPTIONS_UNAVAILABLE": {
        "retryable": False,
    },
    # ==========================================================================
    # System errors
    # ==========================================================================
    "INTERNAL_ERROR": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
    "SERVICE_UNAVAILABLE": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 5000, "max_retries": 3},
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested actions
    """
    return ERROR_CODES.get(code, {"retryable": False})
