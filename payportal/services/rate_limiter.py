"""Sliding-window request limiter keyed by client and route bucket.

The limiter only counts; the window store decides where timestamps live. The
in-memory store suits a single process. A shared cache store can implement
the same two methods for multi-instance deployments.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from payportal.core.config import settings


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int
    remaining: int


class WindowStore(Protocol):
    def hits_since(self, key: str, since: float) -> list[float]: ...

    def add_hit(self, key: str, at: float) -> None: ...


class InMemoryWindowStore:
    def __init__(self) -> None:
        self._hits: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def hits_since(self, key: str, since: float) -> list[float]:
        with self._lock:
            kept = [hit for hit in self._hits.get(key, []) if hit > since]
            if kept:
                self._hits[key] = kept
            else:
                self._hits.pop(key, None)
            return list(kept)

    def add_hit(self, key: str, at: float) -> None:
        with self._lock:
            self._hits.setdefault(key, []).append(at)

    def clear(self) -> None:
        with self._lock:
            self._hits.clear()


class SlidingWindowRateLimiter:
    def __init__(
        self,
        rules: dict[str, RateLimitRule],
        store: WindowStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rules = rules
        self.store = store or InMemoryWindowStore()
        self._clock = clock

    def check_and_record(self, key: str, bucket: str) -> RateLimitDecision:
        """Count a request for ``key`` in ``bucket`` unless the window is full."""
        rule = self.rules[bucket]
        now = self._clock()
        store_key = f"{bucket}:{key}"
        hits = self.store.hits_since(store_key, now - rule.window_seconds)
        if len(hits) >= rule.max_requests:
            retry_after = max(1, math.ceil(hits[0] + rule.window_seconds - now))
            return RateLimitDecision(allowed=False, retry_after=retry_after, remaining=0)
        self.store.add_hit(store_key, now)
        return RateLimitDecision(allowed=True, retry_after=0, remaining=rule.max_requests - len(hits) - 1)


def build_default_limiter() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        {
            "auth": RateLimitRule(settings.rate_limit_auth_requests, settings.rate_limit_auth_window_seconds),
            "payments": RateLimitRule(settings.rate_limit_payments_requests, settings.rate_limit_payments_window_seconds),
            "general": RateLimitRule(settings.rate_limit_general_requests, settings.rate_limit_general_window_seconds),
        }
    )


rate_limiter: SlidingWindowRateLimiter = build_default_limiter()
