from __future__ import annotations


class LobbyError(Exception):
    """Base class for typed coordinator failures.

    `kind` is the stable name the dispatcher reports back to clients.
    """

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(LobbyError):
    kind = "not_found"


class Unauthorized(LobbyError):
    kind = "unauthorized"


class Conflict(LobbyError):
    kind = "conflict"


class StoreUnavailable(LobbyError):
    kind = "store_unavailable"


class CorruptRecord(StoreUnavailable):
    """A stored document could not be decoded."""

    def __init__(self, message: str, *, key: str) -> None:
        super().__init__(message)
        self.key = key


class InvalidInput(LobbyError):
    kind = "invalid_input"
