"""Interface for rate-limit counter stores.

A store atomically records a hit for a key and reports how many hits remain
in the trailing window. The in-process and Redis-backed stores both
implement it so callers see one interface.
"""

import abc
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate-limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # Epoch seconds when the oldest counted hit leaves the window
    retry_after_seconds: Optional[int] = None


class RateLimitStoreUnavailable(Exception):
    """Raised by a shared store when its backend cannot be reached."""
    pass


class RateLimitStore(abc.ABC):
    """Abstract Base Class for sliding-window counter stores."""

    @abc.abstractmethod
    async def hit(self, key: str, limit: int, window_ms: int, now_ms: float) -> RateLimitDecision:
        """Prunes, counts and, if under the limit, records `now_ms` in one atomic step.

        Args:
            key: Counter key, e.g. 'BATCH:ip:203.0.113.7'.
            limit: Maximum hits allowed inside the window.
            window_ms: Trailing window length in milliseconds.
            now_ms: Current time in epoch milliseconds.

        Raises:
            RateLimitStoreUnavailable: If the backing store cannot be reached.
        """
        pass

    @abc.abstractmethod
    async def reset(self, key: Optional[str] = None) -> None:
        """Forgets one counter, or all counters when `key` is None."""
        pass

    async def ping(self) -> bool:
        return True
