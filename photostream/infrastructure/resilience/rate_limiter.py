"""Sliding-window rate limiting for mutating endpoints.

Counters are keyed by (purpose, identifier) and hold the request timestamps
inside the trailing window. Two interchangeable stores back the limiter:

* `InMemoryRateLimitStore`: per-process, guarded by an asyncio.Lock.
* `RedisRateLimitStore`: shared sorted set per key, updated by a Lua script
  so prune, count and record happen atomically across instances.

The backend is chosen by configuration in `build_rate_limiter`; callers only
see `RateLimiter`.
"""

import asyncio
import logging
import math
import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict, Mapping, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from photostream.domain.errors import RateLimitExceededError
from photostream.domain.events.api_events import RateLimitRejected, dispatch_event
from photostream.domain.interfaces.rate_limit import (
    RateLimitDecision, RateLimitStore, RateLimitStoreUnavailable
)
from photostream.domain.models.common import ClientIdentifier, RateLimitRule

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "upload_rate_limit"
DEFAULT_WINDOW_MS = 60_000


def _retry_after_seconds(oldest_ms: float, window_ms: int, now_ms: float) -> int:
    return max(1, math.ceil((oldest_ms + window_ms - now_ms) / 1000))


# --- Stores ---

class InMemoryRateLimitStore(RateLimitStore):
    """Single-process store; counters reset when the process restarts.

    Keys whose window has fully elapsed are swept at most once per
    `sweep_interval_ms`, so idle identifiers do not accumulate.
    """

    def __init__(self, sweep_interval_ms: int = DEFAULT_WINDOW_MS):
        self._hits: Dict[str, Deque[float]] = {}
        self._windows: Dict[str, int] = {}
        self._lock = asyncio.Lock()
        self.sweep_interval_ms = sweep_interval_ms
        self._last_sweep_ms: Optional[float] = None
        logger.info("InMemoryRateLimitStore initialized.")

    def __len__(self) -> int:
        return len(self._hits)

    def _prune(self, timestamps: Deque[float], window_start: float) -> None:
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()

    def _sweep(self, now_ms: float) -> None:
        if self._last_sweep_ms is not None and now_ms - self._last_sweep_ms < self.sweep_interval_ms:
            return
        self._last_sweep_ms = now_ms
        expired = [
            key for key, timestamps in self._hits.items()
            if not timestamps or timestamps[-1] <= now_ms - self._windows[key]
        ]
        for key in expired:
            del self._hits[key]
            del self._windows[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit keys")

    async def hit(self, key: str, limit: int, window_ms: int, now_ms: float) -> RateLimitDecision:
        async with self._lock:
            self._sweep(now_ms)
            timestamps = self._hits.setdefault(key, deque())
            self._windows[key] = window_ms
            self._prune(timestamps, now_ms - window_ms)

            if len(timestamps) >= limit:
                oldest = timestamps[0]
                return RateLimitDecision(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    reset_at=(oldest + window_ms) / 1000,
                    retry_after_seconds=_retry_after_seconds(oldest, window_ms, now_ms),
                )

            timestamps.append(now_ms)
            return RateLimitDecision(
                allowed=True,
                limit=limit,
                remaining=limit - len(timestamps),
                reset_at=(timestamps[0] + window_ms) / 1000,
            )

    async def reset(self, key: Optional[str] = None) -> None:
        async with self._lock:
            if key is None:
                self._hits.clear()
                self._windows.clear()
            else:
                self._hits.pop(key, None)
                self._windows.pop(key, None)


# KEYS[1] = counter key; ARGV = now_ms, window_ms, limit, member
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
if count >= limit then
  return {0, count, oldest[2]}
end
redis.call('ZADD', key, now, ARGV[4])
redis.call('PEXPIRE', key, window)
if count == 0 then
  return {1, 1, ARGV[1]}
end
return {1, count + 1, oldest[2]}
"""


class RedisRateLimitStore(RateLimitStore):
    """Shared store for multi-instance deployments, backed by Redis sorted sets."""

    def __init__(self, client: "aioredis.Redis"):
        self.client = client
        self._script = client.register_script(SLIDING_WINDOW_SCRIPT)
        logger.info("RedisRateLimitStore initialized.")

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisRateLimitStore":
        return cls(aioredis.from_url(redis_url, decode_responses=True))

    async def hit(self, key: str, limit: int, window_ms: int, now_ms: float) -> RateLimitDecision:
        member = f"{now_ms}-{uuid.uuid4().hex[:8]}"
        try:
            allowed, count, oldest = await self._script(keys=[key], args=[now_ms, window_ms, limit, member])
        except RedisError as e:
            raise RateLimitStoreUnavailable(f"Redis unavailable for key {key}: {e}") from e

        oldest_ms = float(oldest) if oldest is not None else now_ms
        if int(allowed) == 1:
            return RateLimitDecision(
                allowed=True,
                limit=limit,
                remaining=max(0, limit - int(count)),
                reset_at=(oldest_ms + window_ms) / 1000,
            )
        return RateLimitDecision(
            allowed=False,
            limit=limit,
            remaining=0,
            reset_at=(oldest_ms + window_ms) / 1000,
            retry_after_seconds=_retry_after_seconds(oldest_ms, window_ms, now_ms),
        )

    async def reset(self, key: Optional[str] = None) -> None:
        try:
            if key is not None:
                await self.client.delete(key)
                return
            keys = [k async for k in self.client.scan_iter(match=f"{DEFAULT_KEY_PREFIX}:*")]
            if keys:
                await self.client.delete(*keys)
        except RedisError as e:
            raise RateLimitStoreUnavailable(f"Redis unavailable during reset: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False


# --- Limiter ---

class RateLimiter:
    """Checks and records requests per (purpose, identifier) against a store."""

    def __init__(
        self,
        store: RateLimitStore,
        rules: Optional[Dict[str, RateLimitRule]] = None,
        window_ms: int = DEFAULT_WINDOW_MS,
        fail_open: bool = False,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], float] = time.time,
    ):
        """Initializes the rate limiter.

        Args:
            store: Counter store (in-memory or Redis).
            rules: Limit per purpose, used by `enforce`.
            window_ms: Window length used when a check gives none.
            fail_open: Admit requests when the store is unreachable. The
                default rejects them for the length of one window.
            key_prefix: Namespace for counter keys.
            clock: Time source returning epoch seconds.
        """
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.store = store
        self.rules = dict(rules or {})
        self.window_ms = window_ms
        self.fail_open = fail_open
        self.key_prefix = key_prefix
        self._clock = clock
        logger.info(
            f"RateLimiter initialized: store={type(store).__name__}, window={window_ms}ms, "
            f"on_store_failure={'allow' if fail_open else 'reject'}"
        )

    def key_for(self, purpose: str, identifier: str) -> str:
        return f"{self.key_prefix}:{purpose}:{identifier}"

    async def check(
        self,
        identifier: str,
        limit: int,
        purpose: str,
        window_ms: Optional[int] = None,
    ) -> RateLimitDecision:
        """Checks one request and records it when admitted.

        Args:
            identifier: Caller identity, e.g. 'ip:203.0.113.7'.
            limit: Maximum requests per window.
            purpose: Endpoint or action being limited, e.g. 'BATCH'.
            window_ms: Window override for this check.

        Returns:
            The decision; `retry_after_seconds` is set when rejected.
        """
        if limit <= 0:
            raise ValueError("limit must be positive")
        window = window_ms or self.window_ms
        now_ms = self._clock() * 1000
        key = self.key_for(purpose, identifier)
        try:
            decision = await self.store.hit(key, limit, window, now_ms)
        except RateLimitStoreUnavailable as e:
            if self.fail_open:
                logger.warning(f"Rate limit store unavailable, allowing {purpose} for {identifier}: {e}")
                return RateLimitDecision(allowed=True, limit=limit, remaining=limit, reset_at=(now_ms + window) / 1000)
            logger.warning(f"Rate limit store unavailable, rejecting {purpose} for {identifier}: {e}")
            decision = RateLimitDecision(
                allowed=False,
                limit=limit,
                remaining=0,
                reset_at=(now_ms + window) / 1000,
                retry_after_seconds=max(1, math.ceil(window / 1000)),
            )

        if not decision.allowed:
            logger.info(f"Rate limit exceeded for {purpose}:{identifier}, retry after {decision.retry_after_seconds}s")
            dispatch_event(RateLimitRejected(purpose=purpose, identifier=identifier, retry_after_seconds=decision.retry_after_seconds or 0))
        return decision

    async def enforce(self, identifier: str, purpose: str) -> RateLimitDecision:
        """Checks against the configured rule for `purpose`.

        Raises:
            RateLimitExceededError: If the request is rejected.
            KeyError: If no rule is configured for `purpose`.
        """
        rule = self.rules[purpose]
        decision = await self.check(identifier, rule["limit"], purpose, rule["window_ms"])
        if not decision.allowed:
            raise RateLimitExceededError(
                f"Too many requests. Please try again in {decision.retry_after_seconds} seconds.",
                retry_after=decision.retry_after_seconds or 1,
                remaining=decision.remaining,
                reset_at=decision.reset_at,
            )
        return decision

    async def reset(self, identifier: Optional[str] = None, purpose: Optional[str] = None) -> None:
        if identifier is not None and purpose is not None:
            await self.store.reset(self.key_for(purpose, identifier))
        else:
            await self.store.reset()


def build_rate_limiter(
    backend: str,
    rules: Dict[str, RateLimitRule],
    redis_url: Optional[str] = None,
    fail_open: bool = False,
    window_ms: int = DEFAULT_WINDOW_MS,
) -> RateLimiter:
    """Builds the limiter with the store selected by configuration."""
    if backend == "redis":
        if not redis_url:
            raise ValueError("rate_limit.backend is 'redis' but redis.url is not configured")
        store: RateLimitStore = RedisRateLimitStore.from_url(redis_url)
    elif backend == "memory":
        store = InMemoryRateLimitStore()
    else:
        raise ValueError(f"Unknown rate limit backend: {backend!r}")
    return RateLimiter(store, rules=rules, window_ms=window_ms, fail_open=fail_open)


def get_client_identifier(headers: Mapping[str, str]) -> ClientIdentifier:
    """Derives the caller identity from proxy headers.

    Checks x-forwarded-for (first entry), x-real-ip, then cf-connecting-ip.
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    forwarded = lowered.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return ClientIdentifier(f"ip:{first}")
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = lowered.get(header)
        if value:
            return ClientIdentifier(f"ip:{value.strip()}")
    return ClientIdentifier("ip:unknown")
