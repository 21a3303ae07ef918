from __future__ import annotations


class TrackerError(Exception):
    """Base class for recoverable watchlist errors."""


class ValidationError(TrackerError):
    """Rejected user input. The watchlist is left unchanged."""


class StorageUnavailable(TrackerError):
    def __init__(self, tier: str, message: str) -> None:
        super().__init__(message)
        self.tier = tier


class AuthFailure(TrackerError):
    """Sign-in or sign-out rejected by the identity provider."""


class TransientSyncError(TrackerError):
    """The remote change channel failed. Subscriptions are retried, data is not lost."""
