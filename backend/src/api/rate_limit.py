"""
Per-client rate limiting for the refresh routes.

The limiter's state lives behind RateLimitStore so a shared backend can
replace the in-memory store when more than one API instance runs. Entries
carry their own expiry and the limiter sweeps expired ones periodically.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from fastapi import Request

from api.auth import has_admin_key, is_internal_call

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 300


@dataclass
class RateLimitEntry:
    count: int
    first_attempt: float
    expires_at: float
    blocked_until: Optional[float] = None


class RateLimitStore(Protocol):
    """Storage for rate-limit counters, keyed by client."""

    def get(self, key: str) -> Optional[RateLimitEntry]:
        ...

    def set(self, key: str, entry: RateLimitEntry) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def purge(self, now: float) -> int:
        """Drop entries whose expires_at has passed; return how many."""
        ...


class InMemoryRateLimitStore:
    """Process-local store; fine for a single instance."""

    def __init__(self):
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[RateLimitEntry]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def purge(self, now: float) -> int:
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[int] = None

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimitExceeded(Exception):
    """Raised when a client is over its request budget."""

    def __init__(self, result: RateLimitResult):
        super().__init__(f"Rate limit exceeded. Try again in {result.retry_after} seconds.")
        self.result = result


class RateLimiter:
    """
    Fixed-window limiter: max_requests per window_seconds per key.

    Exceeding the limit blocks the key for one full window. Every
    cleanup_interval seconds a hit also purges expired entries from the store.
    """

    def __init__(
        self,
        store: RateLimitStore,
        max_requests: int,
        window_seconds: float,
        key_prefix: str = "refresh",
        clock: Callable[[], float] = time.time,
        cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
    ):
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix
        self.clock = clock
        self.cleanup_interval = cleanup_interval
        self._last_cleanup = clock()

    def _maybe_cleanup(self, now: float):
        if now - self._last_cleanup < self.cleanup_interval:
            return
        self._last_cleanup = now
        removed = self.store.purge(now)
        if removed:
            logger.debug("Purged expired rate limit entries", extra={
                "key_prefix": self.key_prefix,
                "removed": removed
            })

    def hit(self, key: str) -> RateLimitResult:
        """Check and record one request for key."""
        full_key = f"{self.key_prefix}:{key}"
        now = self.clock()
        self._maybe_cleanup(now)
        entry = self.store.get(full_key)

        if entry and entry.blocked_until and now < entry.blocked_until:
            return RateLimitResult(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                retry_after=math.ceil(entry.blocked_until - now),
            )

        if entry is None or now - entry.first_attempt >= self.window_seconds:
            self.store.set(full_key, RateLimitEntry(
                count=1,
                first_attempt=now,
                expires_at=now + self.window_seconds,
            ))
            return RateLimitResult(allowed=True, limit=self.max_requests, remaining=self.max_requests - 1)

        if entry.count >= self.max_requests:
            entry.blocked_until = now + self.window_seconds
            entry.expires_at = entry.blocked_until
            self.store.set(full_key, entry)
            return RateLimitResult(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                retry_after=math.ceil(self.window_seconds),
            )

        entry.count += 1
        self.store.set(full_key, entry)
        return RateLimitResult(
            allowed=True,
            limit=self.max_requests,
            remaining=self.max_requests - entry.count,
        )

    def clear(self, key: str) -> None:
        self.store.delete(f"{self.key_prefix}:{key}")


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_rate_limit(request: Request, config, limiter: RateLimiter) -> Optional[RateLimitResult]:
    """
    Count a refresh request against its client's budget.

    Requests carrying the admin API key (automation) or a signed internal-call
    token (the orchestrator calling back into this API) are not limited and
    return None.

    Raises:
        RateLimitExceeded: If the client is over its limit
    """
    if has_admin_key(request, config) or is_internal_call(request, config):
        return None

    result = limiter.hit(client_ip(request))
    if not result.allowed:
        logger.warning("Refresh rate limit exceeded", extra={
            "client_ip": client_ip(request),
            "retry_after": result.retry_after
        })
        raise RateLimitExceeded(result)
    return result
