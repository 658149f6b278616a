"""Typed application errors.

Errors raised deliberately by the application are "operational": they carry
an HTTP-equivalent status code and are not escalated. Anything else reaching
an error boundary is treated as unexpected.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for errors modeled by the application."""
    code = "INTERNAL_ERROR"
    status_code = 500
    is_operational = True

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ValidationError(AppError):
    """Malformed input; rejected before any remote call."""
    code = "VALIDATION_ERROR"
    status_code = 400


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404


class MaxRetriesExceededError(AppError):
    """A failed upload task has used all of its manual retries."""
    code = "MAX_RETRIES_EXCEEDED"
    status_code = 409


class RateLimitExceededError(AppError):
    """The caller exceeded a rate limit and should back off."""
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, message: str, retry_after: int, remaining: int = 0, reset_at: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after
        self.remaining = remaining
        self.reset_at = reset_at

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data


class MediaStoreError(AppError):
    """Permanent failure reported by the media store (4xx other than 404)."""
    code = "MEDIA_STORE_ERROR"
    status_code = 502
    is_operational = False


class TransientMediaStoreError(MediaStoreError):
    """Network failure or 5xx from the media store; safe to retry."""
    code = "MEDIA_STORE_UNAVAILABLE"
    status_code = 503


class MaxRetryError(AppError):
    """Raised when a remote operation still fails after all retries."""
    code = "MAX_RETRIES"
    status_code = 503
    is_operational = False

    def __init__(self, original_exception: Exception, attempts: int, operation: Optional[str] = None):
        self.original_exception = original_exception
        self.attempts = attempts
        self.operation = operation
        where = f" in {operation}" if operation else ""
        super().__init__(f"Max retries ({attempts} attempts) exceeded{where}. Last error: {original_exception}")


def is_operational(error: BaseException) -> bool:
    """True if the error is an expected, modeled failure."""
    return isinstance(error, AppError) and error.is_operational
