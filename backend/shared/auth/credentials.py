"""HMAC-SHA256 signed bearer credentials carrying an ``admin`` claim.

An operator mints credentials with ``bin/issue-credential.py``; the autopilot
server verifies them locally with the shared secret, so no identity service
is consulted per request.

Token format: base64url(json_payload_bytes).base64url(hmac_sha256_signature)
"""

import base64
import binascii
import hashlib
import hmac
import json
import math
import time
from dataclasses import asdict, dataclass

import structlog

logger = structlog.get_logger()

_TOKEN_PARTS = 2  # base64url(payload).base64url(signature)

DEFAULT_CREDENTIAL_TTL_SECONDS = 86400  # 24 hours
MAX_CREDENTIAL_TTL_SECONDS = 30 * 86400
CLOCK_SKEW_SECONDS = 60


@dataclass
class Credential:
    """Payload carried inside a signed credential."""

    user_id: str
    admin: bool
    issued_at: float
    expires_at: float


def create_signed_credential(
    user_id: str,
    secret: str,
    *,
    admin: bool = False,
    ttl_seconds: int = DEFAULT_CREDENTIAL_TTL_SECONDS,
) -> str:
    """Create and sign a credential, returning the bearer token string."""
    if not 0 < ttl_seconds <= MAX_CREDENTIAL_TTL_SECONDS:
        raise ValueError(f"ttl_seconds must be 1-{MAX_CREDENTIAL_TTL_SECONDS}, got {ttl_seconds}")
    now = time.time()
    credential = Credential(
        user_id=user_id,
        admin=admin,
        issued_at=now,
        expires_at=now + ttl_seconds,
    )
    return sign_credential(credential, secret)


def sign_credential(credential: Credential, secret: str) -> str:
    """Serialize to JSON, compute HMAC-SHA256, return base64url(payload).base64url(sig)."""
    payload_bytes = json.dumps(asdict(credential), sort_keys=True).encode()
    sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).digest()
    payload_b64 = base64.urlsafe_b64encode(payload_bytes).decode()
    sig_b64 = base64.urlsafe_b64encode(sig).decode()
    return f"{payload_b64}.{sig_b64}"


def verify_credential(token: str, secret: str) -> Credential | None:
    """Verify HMAC signature and expiry. Returns the Credential or None on any failure."""
    parts = token.split(".")
    if len(parts) != _TOKEN_PARTS:
        return None

    try:
        payload_bytes = base64.urlsafe_b64decode(parts[0])
        provided_sig = base64.urlsafe_b64decode(parts[1])
    except (ValueError, binascii.Error):
        return None

    expected_sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).digest()
    if not hmac.compare_digest(provided_sig, expected_sig):
        logger.debug("credential signature mismatch")
        return None

    try:
        credential = Credential(**json.loads(payload_bytes))
    except (json.JSONDecodeError, TypeError, KeyError):
        logger.debug("credential malformed payload")
        return None

    if not isinstance(credential.admin, bool) or not isinstance(credential.user_id, str) or not credential.user_id:
        logger.debug("credential claims have wrong types")
        return None

    if not _validate_timestamps(credential):
        return None

    return credential


def _is_finite_number(value: object) -> bool:
    """Check that a value is a finite int or float (excluding bool)."""
    if isinstance(value, bool):
        return False
    if not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _validate_timestamps(credential: Credential) -> bool:
    """Reject non-finite, future-issued, inverted, over-long or expired credentials."""
    if not _is_finite_number(credential.issued_at) or not _is_finite_number(credential.expires_at):
        logger.debug("credential non-finite timestamp")
        return False

    now = time.time()

    if credential.issued_at > now + CLOCK_SKEW_SECONDS:
        logger.debug("credential issued in the future")
        return False

    if credential.expires_at <= credential.issued_at:
        logger.debug("credential expires_at <= issued_at")
        return False

    if credential.expires_at - credential.issued_at > MAX_CREDENTIAL_TTL_SECONDS + CLOCK_SKEW_SECONDS:
        logger.debug("credential lifetime too long")
        return False

    if now > credential.expires_at:
        logger.debug("credential expired")
        return False

    return True
