"""Custom exception types for the dispatcher and executor."""
from __future__ import annotations


class AppError(Exception):
    """Base app exception."""


class ConfigurationError(AppError):
    """Settings are missing or inconsistent."""


class ValidationError(AppError):
    """Validation failure for a cron expression or timezone."""


class StoreError(AppError):
    """The schedule store could not be reached or queried."""


class QueueError(AppError):
    """Sending, receiving or deleting a queue message failed."""


class MessageFormatError(AppError):
    """A queue message body could not be parsed into a schedule message."""


class ExecutionApiError(AppError):
    """The workflow execution API rejected the request or was unreachable."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
