import threading
import time
from collections import defaultdict
from typing import Callable, Dict, List, Tuple

from fastapi import HTTPException, Request


class RateLimiter:
    """Sliding-window request counter keyed by client id."""

    def __init__(self, max_requests: int, window_seconds: int = 60,
                 clock: Callable[[], float] = time.time):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.requests: Dict[str, List[float]] = defaultdict(list)
        self.lock = threading.Lock()
        self._clock = clock

    def _recent(self, client_id: str, now: float) -> List[float]:
        recent = [t for t in self.requests.get(client_id, []) if now - t < self.window_seconds]
        if recent:
            self.requests[client_id] = recent
        else:
            self.requests.pop(client_id, None)
        return recent

    def is_allowed(self, client_id: str) -> Tuple[bool, int]:
        """Record a request. Returns (allowed, retry_after_seconds)."""
        now = self._clock()
        with self.lock:
            recent = self._recent(client_id, now)
            if len(recent) < self.max_requests:
                self.requests[client_id].append(now)
                return True, 0
            retry_after = int(min(recent) + self.window_seconds - now) + 1
            return False, retry_after

    def usage(self, client_id: str) -> dict:
        now = self._clock()
        with self.lock:
            recent = self._recent(client_id, now)
        reset_in = max(0, int(min(recent) + self.window_seconds - now)) if recent else 0
        return {
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "used": len(recent),
            "remaining": max(0, self.max_requests - len(recent)),
            "reset_in_seconds": reset_in,
        }


def get_client_id(request: Request) -> str:
    # First hop of X-Forwarded-For when behind a proxy
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def enforce(limiter: RateLimiter, request: Request) -> None:
    allowed, retry_after = limiter.is_allowed(get_client_id(request))
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail={
                "error": "Rate limit exceeded",
                "message": f"Maximum {limiter.max_requests} requests per minute allowed",
                "retry_after": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )
