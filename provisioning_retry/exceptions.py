"""
Retry Scheduler Exceptions
==========================
Exception classes for the provisioning retry scheduler.
"""

from typing import Optional


class RetrySchedulerError(Exception):
    """Base class for all retry scheduler errors."""


class ConfigError(RetrySchedulerError, ValueError):
    """Raised when scheduler configuration is invalid."""


class StoreError(RetrySchedulerError):
    """Raised when the job store cannot be reached or rejects an operation."""

    def __init__(self, message: str, last_exception: Optional[Exception] = None):
        super().__init__(message)
        self.last_exception = last_exception


class MalformedJobError(RetrySchedulerError):
    """Raised when a stored job cannot be decoded."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class AttemptLimitExceeded(RetrySchedulerError):
    """Raised when a job is enqueued past the attempt cap."""

    def __init__(self, logical_key: str, attempt: int, max_attempts: int):
        self.logical_key = logical_key
        self.attempt = attempt
        self.max_attempts = max_attempts
        super().__init__(
            f"Cannot enqueue attempt {attempt} for '{logical_key}': "
            f"limit is {max_attempts}"
        )


class ProvisioningError(RetrySchedulerError):
    """Raised by executors when the provisioning operation fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message if status_code is None else f"{message} (Status: {status_code})")
