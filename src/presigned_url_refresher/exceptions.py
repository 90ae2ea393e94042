# src/presigned_url_refresher/exceptions.py

"""
Shared custom exceptions for the Presigned URL Refresher service.

Centralizing exception definitions in a separate module prevents circular
import errors between other modules that need to raise or catch them.

Exception Hierarchy:
- PresignedUrlRefresherError (base)
  - RetryableError (can be retried)
    - TableThrottlingError
  - NonRetryableError (should not be retried)
    - ConfigurationError
    - InvalidObjectKeyError
    - PresignedUrlGenerationError
    - MetadataTableError
    - ScanThrottleExhaustedError
    - NotificationDeliveryError
"""

from typing import Any, Dict, Optional


class PresignedUrlRefresherError(Exception):
    """Base exception for all Presigned URL Refresher errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}  # Copy context to prevent mutation

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "error_message": self.message,
            "context": self.context,
            "retryable": isinstance(self, RetryableError),
        }


class RetryableError(PresignedUrlRefresherError):
    """Base class for errors that can be retried."""
    pass


class NonRetryableError(PresignedUrlRefresherError):
    """Base class for errors that should not be retried."""
    pass


# === Configuration Errors ===

class ConfigurationError(NonRetryableError):
    """Raised when there's an error in the application configuration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", **kwargs)


# === S3 / Presigning Errors ===

class InvalidObjectKeyError(NonRetryableError):
    """Raised when a record has no usable S3 object key."""

    def __init__(self, key: Any = None, **kwargs):
        message = "Object key is required"
        context = {"key": None if key is None else str(key)}
        super().__init__(message, error_code="INVALID_OBJECT_KEY", context=context, **kwargs)


class PresignedUrlGenerationError(NonRetryableError):
    """Raised when botocore cannot produce a presigned URL for an object."""

    def __init__(self, bucket: str, key: str, reason: str, **kwargs):
        message = f"Failed to presign s3://{bucket}/{key}: {reason}"
        context = {"bucket": bucket, "key": key}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="PRESIGN_FAILED", context=context, **kwargs)


# === DynamoDB Errors ===

class MetadataTableError(NonRetryableError):
    """Raised for DynamoDB failures that must not be retried blindly."""

    def __init__(self, operation: str, reason: str, **kwargs):
        message = f"DynamoDB {operation} failed: {reason}"
        context = {"operation": operation}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        kwargs.setdefault("error_code", "TABLE_OPERATION_FAILED")
        super().__init__(message, context=context, **kwargs)


class TableThrottlingError(RetryableError):
    """Raised when DynamoDB rejects a request for exceeding provisioned capacity."""

    def __init__(self, operation: str, **kwargs):
        message = f"DynamoDB operation throttled: {operation}"
        context = {"operation": operation}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="TABLE_THROTTLING", context=context, **kwargs)


class ScanThrottleExhaustedError(NonRetryableError):
    """Raised when the same scan page keeps being throttled past the retry bound."""

    def __init__(self, attempts: int, **kwargs):
        message = f"Scan still throttled after {attempts} consecutive attempts"
        context = {"attempts": attempts}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="SCAN_THROTTLE_EXHAUSTED", context=context, **kwargs)


# === Notification Errors ===

class NotificationDeliveryError(NonRetryableError):
    """Raised when SES refuses or fails to deliver the job summary."""

    def __init__(self, reason: str, **kwargs):
        message = f"Failed to send job summary email: {reason}"
        super().__init__(message, error_code="NOTIFICATION_FAILED", **kwargs)


# === Utility Functions ===

def is_retryable_error(error: Exception) -> bool:
    """Check if an error is retryable."""
    return isinstance(error, RetryableError)


def get_error_context(error: Exception) -> Dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, PresignedUrlRefresherError):
        return error.to_dict()
    else:
        return {
            "error_type": error.__class__.__name__,
            "error_message": str(error),
            "retryable": False  # Unknown errors default to non-retryable
        }
