"""Exceptions raised by the offline mutation queue."""
from __future__ import annotations

from typing import Optional


class OfflineSyncError(Exception):
    """Base class for every offline queue failure."""


class AuthenticationError(OfflineSyncError):
    """No authenticated user is available for the operation."""


class InvalidMutationError(OfflineSyncError, ValueError):
    """Unknown mutation type/action or a payload that does not match its variant."""


class QueueStorageError(OfflineSyncError):
    """The durable queue could not be written."""


class StorageExhaustedError(QueueStorageError):
    """The device ran out of storage while writing the queue."""


class BackgroundSyncError(OfflineSyncError):
    """The worker host refused a background sync registration."""


class ReplayError(OfflineSyncError):
    def __init__(self, message: str, *, status: Optional[int] = None, retryable: bool = True):
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class ReplayAuthError(ReplayError):
    """The backend rejected the replay credentials; the drain pass stops."""

    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(message, status=status, retryable=False)


class OfflineQueuedError(OfflineSyncError):
    """Internal signal: the mutation was queued instead of sent."""


__all__ = [
    "AuthenticationError",
    "BackgroundSyncError",
    "InvalidMutationError",
    "OfflineQueuedError",
    "OfflineSyncError",
    "QueueStorageError",
    "ReplayAuthError",
    "ReplayError",
    "StorageExhaustedError",
]
