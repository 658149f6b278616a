import pytest

from photostream.domain.errors import (
    AppError, MaxRetriesExceededError, MaxRetryError, MediaStoreError, NotFoundError,
    RateLimitExceededError, TransientMediaStoreError, UnauthorizedError, ValidationError,
    is_operational,
)


@pytest.mark.parametrize("error_cls, status", [
    (ValidationError, 400),
    (UnauthorizedError, 401),
    (NotFoundError, 404),
    (MaxRetriesExceededError, 409),
    (MediaStoreError, 502),
    (TransientMediaStoreError, 503),
])
def test_status_codes(error_cls, status):
    assert error_cls("x").status_code == status


def test_operational_classification():
    assert is_operational(ValidationError("bad"))
    assert is_operational(RateLimitExceededError("slow down", retry_after=5))
    assert not is_operational(MediaStoreError("broken"))
    assert not is_operational(RuntimeError("boom"))


def test_rate_limit_error_serializes_retry_after():
    error = RateLimitExceededError("Too many requests", retry_after=12, remaining=0, reset_at=1700000000.0)
    assert error.status_code == 429
    assert error.to_dict() == {"error": "Too many requests", "code": "RATE_LIMIT_EXCEEDED", "retry_after": 12}


def test_max_retry_error_keeps_last_error():
    cause = TransientMediaStoreError("503 from store")
    error = MaxRetryError(cause, attempts=4, operation="updatePhotoMetadata")
    assert error.original_exception is cause
    assert error.attempts == 4
    assert "updatePhotoMetadata" in str(error)
    assert "503 from store" in str(error)


def test_app_error_overrides():
    error = AppError("custom", code="CUSTOM", status_code=418)
    assert error.to_dict() == {"error": "custom", "code": "CUSTOM"}
    assert error.status_code == 418
