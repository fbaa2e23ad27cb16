"""Bearer credential signing and the principal resolved from it."""

from shared.auth.credentials import Credential, create_signed_credential, sign_credential, verify_credential
from shared.auth.models import Principal
from shared.auth.settings import AuthSettings

__all__ = [
    "AuthSettings",
    "Credential",
    "Principal",
    "create_signed_credential",
    "sign_credential",
    "verify_credential",
]
