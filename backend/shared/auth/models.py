"""Caller identity as seen by authorization checks."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of an RPC.

    ``is_admin`` mirrors the ``admin`` claim of the verified credential.
    """

    user_id: str
    is_admin: bool = False
