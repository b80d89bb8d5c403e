"""Error taxonomy shared by the indexer and the query surface."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    FATAL_CONSISTENCY = "FATAL_CONSISTENCY"
    TRANSIENT_STORAGE = "TRANSIENT_STORAGE"
    INVALID_QUERY = "INVALID_QUERY"
    INVALID_EVENT = "INVALID_EVENT"


class EnsRentError(Exception):
    """Base error carrying a stable code and a user-safe message."""

    code: ErrorCode

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class FatalConsistencyError(EnsRentError):
    """A rent event referenced a token that has no listing in the projection.

    Retrying cannot help; the event feed has a gap or is out of order.
    """

    code = ErrorCode.FATAL_CONSISTENCY

    def __init__(self, token_id: int, tx_hash: str) -> None:
        super().__init__(f"Listing not found for tokenId {token_id} (rent tx {tx_hash})")
        self.token_id = token_id
        self.tx_hash = tx_hash


class TransientStorageError(EnsRentError):
    """The projection store failed in a way a retry of the same event may fix."""

    code = ErrorCode.TRANSIENT_STORAGE

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class QueryError(EnsRentError):
    """Malformed filter, sort, limit or cursor supplied to a read query."""

    code = ErrorCode.INVALID_QUERY


class EventDecodeError(EnsRentError):
    """An inbound event payload could not be turned into a domain event."""

    code = ErrorCode.INVALID_EVENT

    def __init__(self, message: str, *, payload: object = None) -> None:
        super().__init__(message)
        self.payload = payload


__all__ = [
    "ErrorCode",
    "EnsRentError",
    "FatalConsistencyError",
    "TransientStorageError",
    "QueryError",
    "EventDecodeError",
]
