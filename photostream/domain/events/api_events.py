"""Domain Events for remote calls, rate limiting, uploads and batches.

Events are plain dataclasses; services dispatch them through
`dispatch_event`, which currently logs them at debug level.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Remote Call Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """A media store call is about to be made."""
    operation: str
    attempt_number: int = 1
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallSucceeded(DomainEvent):
    operation: str
    latency_ms: float
    attempt_number: int = 1
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallFailed(DomainEvent):
    """A media store call failed definitively (after retries, or not retryable)."""
    operation: str
    error_type: str
    error_message: str
    attempts: int = 1
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    operation: str
    attempt_number: int
    delay_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheInvalidated(DomainEvent):
    """Cache entries depending on a resource were dropped after a write."""
    resource_id: str
    keys_removed: int
    timestamp: float = field(default_factory=time.time)


# --- Rate Limiting Events ---

@dataclass
class RateLimitRejected(DomainEvent):
    purpose: str
    identifier: str
    retry_after_seconds: int
    timestamp: float = field(default_factory=time.time)


# --- Workflow Events ---

@dataclass
class UploadTaskSettled(DomainEvent):
    """An upload task reached `completed` or `error`."""
    task_id: str
    file_name: str
    status: str
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class BatchCompleted(DomainEvent):
    total: int
    succeeded: int
    failed: int
    dry_run: bool
    timestamp: float = field(default_factory=time.time)


@dataclass
class WebhookReceived(DomainEvent):
    notification_type: str
    public_id: Optional[str] = None
    payload: Optional[Any] = None
    timestamp: float = field(default_factory=time.time)


def dispatch_event(event: DomainEvent) -> None:
    """Publishes a domain event."""
    # TODO: route events to a subscriber registry once a consumer needs them
    logger.debug(f"EVENT: {event}")
