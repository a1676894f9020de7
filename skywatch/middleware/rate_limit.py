"""In-memory sliding-window rate limiter.

The limiter is a plain object built in ``create_app()`` and handed to the
middleware, so each app (and each test) gets its own counters. State is per
process: with several replicas each one enforces the limit on its own.
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0  # whole seconds, only meaningful when not allowed


class SlidingWindowRateLimiter:
    """Allow at most ``max_requests`` hits per key in any ``window_seconds`` span."""

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        # key -> timestamps of accepted hits, oldest first
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def hit(self, key: str) -> RateDecision:
        """Record a request for ``key`` if it fits in the window."""
        now = self._clock()
        hits = self._hits[key]
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

        if len(hits) >= self.max_requests:
            retry_after = int(self.window_seconds - (now - hits[0])) + 1
            return RateDecision(allowed=False, remaining=0, retry_after=max(retry_after, 1))

        hits.append(now)
        return RateDecision(allowed=True, remaining=self.max_requests - len(hits))

    def reset(self) -> None:
        self._hits.clear()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP rate limiting backed by a ``SlidingWindowRateLimiter``."""

    def __init__(self, app: Any, limiter: SlidingWindowRateLimiter) -> None:
        super().__init__(app)
        self._limiter = limiter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        decision = self._limiter.hit(client_ip(request))
        limit = str(self._limiter.max_requests)

        if not decision.allowed:
            return Response(
                content='{"detail":"Rate limit exceeded"}',
                status_code=429,
                media_type="application/json",
                headers={
                    "Retry-After": str(decision.retry_after),
                    "X-RateLimit-Limit": limit,
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)

        # Inform clients of their remaining budget
        response.headers["X-RateLimit-Limit"] = limit
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response
