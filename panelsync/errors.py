# -*- coding: utf-8 -*-
"""
Sync Errors

Failure taxonomy used while draining the queue. Each data-path error maps
to a FailureKind so the queue knows whether the item may be retried.
"""

from typing import Optional

from .models import FailureKind


class SyncError(Exception):
    """Base class for sync engine errors"""
    failure_kind: Optional[FailureKind] = None
    prefix = "Sync error"

    @property
    def reason(self) -> str:
        """Failure reason stored on the queue item"""
        return f"{self.prefix}: {self}"


class NetworkError(SyncError):
    """No response received (DNS, refused connection, timeout)"""
    failure_kind = FailureKind.NETWORK
    prefix = "Network error"


class HTTPStatusError(SyncError):
    """Non-2xx response"""

    def __init__(self, status: int, status_text: str = ""):
        self.status = status
        self.status_text = status_text
        super().__init__(f"HTTP {status}: {status_text}")


class ServerError(HTTPStatusError):
    """5xx response"""
    failure_kind = FailureKind.SERVER
    prefix = "Server error"


class ClientError(HTTPStatusError):
    """4xx response other than 409, never retried automatically"""
    failure_kind = FailureKind.CLIENT
    prefix = "Client error"


class ConflictError(HTTPStatusError):
    """409 response; always resolved, never terminal"""
    prefix = "Conflict"

    def __init__(self, remote_data: Optional[dict] = None, status_text: str = "Conflict"):
        super().__init__(409, status_text)
        self.remote_data = remote_data or {}


class ConfigurationError(SyncError):
    """Unknown entity type or operation, or a malformed payload"""
    failure_kind = FailureKind.CONFIGURATION
    prefix = "Configuration error"


class InvalidQueueItemError(SyncError, ValueError):
    """Rejected at enqueue time"""


class SyncInProgressError(SyncError):
    """A second cycle was requested while one is running"""

    def __init__(self, message: str = "Sync already in progress"):
        super().__init__(message)
