"""In-memory sliding-window rate limiting keyed by client IP.

Counts are per worker process, which is enough to blunt scripted abuse of
identity-creation endpoints. A shared store would be needed for exact
limits across replicas.
"""

import time
import logging
import threading
from collections import deque

from fastapi import Request

from .errors import ApiError

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Best-effort client address, honoring proxy headers."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """Allow at most `limit` hits per key in any `window` seconds.

    Keys whose hits have all aged out are dropped, at most once per window,
    so a stream of one-off client addresses does not grow the table.
    """

    def __init__(self, limit: int, window: float = 60.0):
        self.limit = limit
        self.window = window
        self._hits: dict[str, deque[float]] = {}
        self._last_sweep = time.monotonic()
        self._lock = threading.Lock()

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)

    def check(self, key: str) -> tuple[bool, int]:
        """Record a hit for `key` if allowed.

        Returns:
            (allowed, remaining)
        """
        now = time.monotonic()
        cutoff = now - self.window
        with self._lock:
            if now - self._last_sweep >= self.window:
                self._sweep(cutoff)
                self._last_sweep = now

            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.limit:
                return False, 0
            hits.append(now)
            return True, self.limit - len(hits)

    def _sweep(self, cutoff: float) -> None:
        stale = [
            key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff
        ]
        for key in stale:
            del self._hits[key]
        if stale:
            logger.debug(f"Dropped {len(stale)} idle rate limit keys")

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._last_sweep = time.monotonic()

    def __call__(self, request: Request) -> None:
        """FastAPI dependency: raise a 429 `ApiError` once over the limit."""
        client_ip = get_client_ip(request)
        allowed, _ = self.check(client_ip)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")
            raise ApiError(429, "Too many requests. Please try again later.")


# 5 requests per minute per IP
orcid_profile_limiter = RateLimiter(limit=5, window=60.0)
