"""Domain exceptions."""

from __future__ import annotations


class SalesIntelError(Exception):
    """Base class for errors raised by this package."""


class RequestNotFoundError(SalesIntelError):
    """Raised when updating an async request that does not exist (or expired)."""

    def __init__(self, request_id: str):
        super().__init__(f"Request not found: {request_id}")
        self.request_id = request_id


class InvalidTransitionError(SalesIntelError):
    """Raised when a status update would leave a terminal state or regress."""

    def __init__(self, request_id: str, current: str, requested: str):
        super().__init__(
            f"Illegal status transition for {request_id}: {current} -> {requested}"
        )
        self.request_id = request_id
        self.current = current
        self.requested = requested


class ModelInvocationError(SalesIntelError):
    """Raised by a ModelInvoker when no provider produced a response."""


class UnsupportedModelError(SalesIntelError):
    """Raised when no adapter exists for a model identifier."""
