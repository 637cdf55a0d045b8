# trailarena/models/errors.py
"""Exceptions raised by the match core and handled by the transport layer."""


class ArenaError(Exception):
    """Base class for all arena errors."""


class AdmissionError(ArenaError):
    """A join request was rejected before any entity was created."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict:
        return {"type": "error", "code": self.code, "message": self.message}


class StaleReference(ArenaError):
    """A message referenced an entity or match that no longer exists."""


class InvalidMessage(ArenaError):
    """A client payload could not be parsed into a known message."""
