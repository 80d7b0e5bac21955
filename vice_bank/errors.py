"""Error taxonomy shared by the engine, stores and service layer."""

from __future__ import annotations


class ViceBankError(Exception):
    """Base class for all vice bank failures."""


class NotFoundError(ViceBankError, LookupError):
    """A referenced task, deposit or user does not exist."""


class InvalidInputError(ViceBankError, ValueError):
    """Malformed input reached the engine or a parser.

    ``fields`` lists the offending field names when the error came from a
    record parser.
    """

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = list(fields or [])


class InternalError(ViceBankError):
    """A storage backend failed to read or write."""
