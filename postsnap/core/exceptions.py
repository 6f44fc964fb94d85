"""Custom exceptions for PostSnap."""

from enum import Enum
from typing import Optional


class PostSnapError(Exception):
    """Base exception for PostSnap."""
    pass


class InvalidUsernameError(PostSnapError):
    """Requested username is not a valid Instagram handle."""
    pass


class FailureKind(Enum):
    """Why a retrieval strategy produced nothing."""
    UNAVAILABLE = "unavailable"  # transport or navigation failure
    EMPTY = "empty"              # reachable, but no extractable content
    MALFORMED = "malformed"      # unexpected shape from the source


class StrategyError(PostSnapError):
    """A retrieval strategy failed; the orchestrator moves on to the next one."""

    kind = FailureKind.UNAVAILABLE

    def __init__(self, message: str = "", kind: Optional[FailureKind] = None):
        if kind is not None:
            self.kind = kind
        super().__init__(message or self.kind.value)


class SourceUnavailableError(StrategyError):
    """Source could not be reached or the page could not be loaded."""
    kind = FailureKind.UNAVAILABLE


class EmptyResultError(StrategyError):
    """Source answered but yielded no posts."""
    kind = FailureKind.EMPTY


class MalformedResponseError(StrategyError):
    """Source answered with data we could not interpret."""
    kind = FailureKind.MALFORMED
