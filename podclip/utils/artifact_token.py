"""Stateless HMAC-signed download token for encoded videos.

Encodes the job id and issue time into a signed token so the artifact
endpoint can check a download link without any lookup.
"""

import base64
import hashlib
import hmac
import json
import time

_TOKEN_VERSION = 1


def create_artifact_token(job_id: str, secret: str, issued_at: int | None = None) -> str:
    """Create a signed artifact token (Base64)."""
    payload = {
        "v": _TOKEN_VERSION,
        "jid": job_id,
        "iat": int(time.time()) if issued_at is None else issued_at,
    }
    payload_bytes = json.dumps(payload, separators=(",", ":")).encode()
    sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).digest()
    token_bytes = payload_bytes + b"." + base64.urlsafe_b64encode(sig)
    return base64.urlsafe_b64encode(token_bytes).decode()


def verify_artifact_token(token: str, job_id: str, secret: str, max_age_s: int) -> None:
    """Verify a token for ``job_id``.

    Raises ValueError on invalid, mismatched or expired token.
    """
    try:
        token_bytes = base64.urlsafe_b64decode(token)
    except Exception:
        raise ValueError("Invalid token encoding")

    parts = token_bytes.rsplit(b".", 1)
    if len(parts) != 2:
        raise ValueError("Invalid token format")

    payload_bytes, sig_b64 = parts
    try:
        sig = base64.urlsafe_b64decode(sig_b64)
    except Exception:
        raise ValueError("Invalid token signature encoding")

    expected_sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).digest()
    if not hmac.compare_digest(sig, expected_sig):
        raise ValueError("Invalid token signature")

    try:
        payload = json.loads(payload_bytes)
    except Exception:
        raise ValueError("Invalid token payload")

    if payload.get("v") != _TOKEN_VERSION:
        raise ValueError("Unsupported token version")

    if payload.get("jid") != job_id:
        raise ValueError("Token does not match this video")

    if time.time() - payload.get("iat", 0) > max_age_s:
        raise ValueError("Token expired")
