"""Exception types raised by the search, storage and sync layers."""
from __future__ import annotations


class JobseekerError(Exception):
    """Base class for all jobseeker failures."""


class UpstreamError(JobseekerError):
    """Non-retryable upstream failure (4xx, refused query)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientNetworkError(JobseekerError):
    """Timeout, connection failure or 5xx; safe to retry."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(JobseekerError):
    """Response body lacks the expected ``hits`` array."""


class MalformedRecordError(JobseekerError):
    """A single hit inside a valid response could not be parsed."""


class PersistenceError(JobseekerError):
    """Storage-layer failure; the operation was not applied."""


class SyncMirrorError(JobseekerError):
    """Copying the store to the sync target failed."""
