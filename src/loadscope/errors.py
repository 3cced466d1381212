# Copyright (c) Syntropy Systems
"""Exception types raised by loadscope."""


class LoadscopeError(Exception):
    """Base class for loadscope errors."""


class TransportError(LoadscopeError):
    """Network or server failure talking to the control plane.

    Retryable by re-issuing the same request.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(LoadscopeError):
    """The requested run does not exist."""


class QueryCancelled(LoadscopeError):
    """A query was superseded before it completed. Never shown to users."""


class QueryValidationError(LoadscopeError):
    """Malformed filter or pagination input, rejected before any request."""
