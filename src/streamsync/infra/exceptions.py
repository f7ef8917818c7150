"""
Custom exceptions for StreamSync operations.

This module provides custom exception classes for different types of errors
that can occur during catalog synchronization.
"""


class StreamSyncError(Exception):
    """Base exception for all StreamSync errors."""

    pass


class ValidationError(StreamSyncError):
    """Raised when validation fails."""

    pass


class NotFoundError(StreamSyncError):
    """Raised when a requested record does not exist."""

    pass


class SourceError(StreamSyncError):
    """Raised when the upstream catalog cannot be fetched or parsed."""

    pass


class JobError(StreamSyncError):
    """Raised when a job cannot be enqueued or dispatched."""

    pass
