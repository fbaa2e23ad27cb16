"""Typed exceptions for the autopilot engine and its collaborator operations.

Store failures are not here: they come from ``shared.dal.exceptions`` as
TransientStoreError (and its ConcurrentUpdateError subclass) and propagate
through the engine unchanged.
"""


class AutopilotError(Exception):
    """Base exception for engine and game-operation errors."""


class InvalidStateError(AutopilotError):
    """The stored GameState cannot be settled or started as-is.

    Raised for missing players, a missing maxBid, an already-ended game or an
    already-written round slot. Fatal to the invocation and not retried
    automatically: the next tick will hit the same state.
    """


class AuthorizationError(AutopilotError):
    """The caller lacks the admin claim required by the operation."""


class GameNotFoundError(AutopilotError):
    """No game document exists under the given id (or the id is blank)."""

    def __init__(self, game_id: str) -> None:
        self.game_id = game_id
        super().__init__(f"game not found: {game_id!r}")


class InvalidActionError(AutopilotError):
    """A player-facing operation was rejected (bad bid, closed round, unknown player, ...)."""
