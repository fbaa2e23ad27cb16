"""Starlette AuthenticationBackend for signed bearer credentials."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.authentication import AuthCredentials, AuthenticationBackend, BaseUser

from shared.auth.credentials import verify_credential
from shared.auth.models import Principal

if TYPE_CHECKING:
    from starlette.requests import HTTPConnection

_BEARER_PREFIX = "bearer "


class CredentialUser(BaseUser):
    """Authenticated caller for Starlette's request.user."""

    def __init__(self, principal: Principal) -> None:
        self._principal = principal

    @property
    def is_authenticated(self) -> bool:  # pragma: no cover
        return True

    @property
    def display_name(self) -> str:  # pragma: no cover
        return self._principal.user_id

    @property
    def identity(self) -> str:  # pragma: no cover
        return self._principal.user_id

    @property
    def principal(self) -> Principal:
        return self._principal


class BearerCredentialBackend(AuthenticationBackend):
    """Authenticate requests carrying ``Authorization: Bearer <credential>``.

    Grants the ``authenticated`` scope to any valid credential and adds
    ``admin`` when the credential carries the admin claim. Missing or invalid
    credentials leave the request unauthenticated.
    """

    def __init__(self, secret: str) -> None:
        self._secret = secret

    async def authenticate(self, conn: HTTPConnection) -> tuple[AuthCredentials, CredentialUser] | None:
        header = conn.headers.get("authorization", "")
        if not header.lower().startswith(_BEARER_PREFIX):
            return None
        credential = verify_credential(header[len(_BEARER_PREFIX) :].strip(), self._secret)
        if credential is None:
            return None

        scopes = ["authenticated", "admin"] if credential.admin else ["authenticated"]
        principal = Principal(user_id=credential.user_id, is_admin=credential.admin)
        return AuthCredentials(scopes), CredentialUser(principal)
