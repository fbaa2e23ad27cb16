"""Credential settings shared by the autopilot server and operator scripts."""

from pydantic import Field
from pydantic_settings import BaseSettings

from shared.auth.credentials import DEFAULT_CREDENTIAL_TTL_SECONDS, MAX_CREDENTIAL_TTL_SECONDS


class AuthSettings(BaseSettings):
    model_config = {"env_prefix": "AUTH_"}

    # HMAC secret for signing and verifying bearer credentials -- required, no default.
    # The server fails to start if AUTH_CREDENTIAL_SECRET is not set.
    credential_secret: str = Field(min_length=1)

    credential_ttl_seconds: int = Field(default=DEFAULT_CREDENTIAL_TTL_SECONDS, ge=1, le=MAX_CREDENTIAL_TTL_SECONDS)
