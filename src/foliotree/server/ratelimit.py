"""Token-bucket rate limiting for public read routes.

The limiter is an object handed to ``create_app`` rather than module
state, so a deployment with several processes can pass an implementation
backed by a shared store instead.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class RateDecision:
    """Outcome of one rate-limit check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Whole tokens left after this request.
        retry_after: Seconds until a token is available (0 when allowed).
    """

    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimiter(Protocol):
    def check(self, key: str) -> RateDecision:
        ...


@dataclass
class _Bucket:
    tokens: float
    updated: float


class TokenBucketLimiter:
    """Per-key token bucket.

    Each key starts with ``capacity`` tokens and regains them at
    ``capacity / window_seconds`` per second.

    Buckets that have refilled completely are dropped every
    ``sweep_every`` checks; a full bucket answers exactly like a new one.
    Past ``max_buckets`` keys the least recently seen buckets go first.

    Args:
        capacity: Burst size and steady-state requests per window.
        window_seconds: Time to refill an empty bucket.
        clock: Monotonic clock, injectable for tests.
        max_buckets: Upper bound on tracked keys.
        sweep_every: Checks between sweeps of refilled buckets.
    """

    def __init__(
        self,
        capacity: int = 240,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        max_buckets: int = 10_000,
        sweep_every: int = 1_000,
    ) -> None:
        if capacity < 1 or window_seconds <= 0:
            raise ValueError("capacity must be >= 1 and window_seconds > 0")
        if max_buckets < 1 or sweep_every < 1:
            raise ValueError("max_buckets and sweep_every must be >= 1")
        self._capacity = float(capacity)
        self._window = float(window_seconds)
        self._rate = capacity / window_seconds
        self._clock = clock
        self._max_buckets = max_buckets
        self._sweep_every = sweep_every
        self._checks = 0
        # Insertion order is recency order; check() re-inserts the key it sees
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def check(self, key: str) -> RateDecision:
        now = self._clock()
        with self._lock:
            self._checks += 1
            if self._checks % self._sweep_every == 0:
                self._sweep(now)

            bucket = self._buckets.pop(key, None)
            if bucket is None:
                bucket = _Bucket(tokens=self._capacity, updated=now)
            else:
                bucket.tokens = self._refilled(bucket, now)
                bucket.updated = now
            self._buckets[key] = bucket
            while len(self._buckets) > self._max_buckets:
                del self._buckets[next(iter(self._buckets))]

            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                return RateDecision(allowed=True, remaining=int(bucket.tokens))

            wait = (1.0 - bucket.tokens) * self._window / self._capacity
            return RateDecision(allowed=False, remaining=0, retry_after=max(1, math.ceil(wait)))

    def _refilled(self, bucket: _Bucket, now: float) -> float:
        elapsed = max(0.0, now - bucket.updated)
        return min(self._capacity, bucket.tokens + elapsed * self._rate)

    def _sweep(self, now: float) -> None:
        full = [
            key
            for key, bucket in self._buckets.items()
            if self._refilled(bucket, now) >= self._capacity
        ]
        for key in full:
            del self._buckets[key]

    def reset(self, key: str | None = None) -> None:
        """Forget one key's bucket, or all buckets."""
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)


def client_ip(
    headers: Mapping[str, str], remote_addr: str | None, trusted_proxies: int = 0
) -> str:
    """Return the address a request is rate limited under.

    Forwarding headers are client controlled, so they are ignored unless
    the app runs behind ``trusted_proxies`` reverse proxies. Each trusted
    proxy appends one X-Forwarded-For hop, so the client is the
    ``trusted_proxies``-th hop counted from the right. X-Real-IP is used
    when a trusted proxy sends no X-Forwarded-For.

    Args:
        headers: Request headers.
        remote_addr: Socket peer address.
        trusted_proxies: Number of reverse proxies in front of the app.
    """
    if trusted_proxies > 0:
        hops = [hop.strip() for hop in headers.get("X-Forwarded-For", "").split(",")]
        hops = [hop for hop in hops if hop]
        if len(hops) >= trusted_proxies:
            return hops[-trusted_proxies]
        if not hops:
            real_ip = headers.get("X-Real-IP", "").strip()
            if real_ip:
                return real_ip
    return remote_addr or "unknown"
