"""
Per-client rate limiting with sliding window.
"""

import time
from collections import defaultdict
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from charla.api.schemas import error_response
from charla.shared.config import settings
from charla.shared.logging import get_logger

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """In-memory sliding window rate limiter per client."""

    def __init__(self, requests_per_minute: int = 60, window_seconds: int = 60):
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        # client key -> request timestamps in window
        self._requests: dict[str, list[float]] = defaultdict(list)

    def _prune(self, client_key: str):
        cutoff = time.time() - self.window_seconds
        self._requests[client_key] = [t for t in self._requests[client_key] if t > cutoff]

    def is_allowed(self, client_key: str) -> bool:
        self._prune(client_key)
        return len(self._requests[client_key]) < self.requests_per_minute

    def record(self, client_key: str):
        self._requests[client_key].append(time.time())

    def retry_after_seconds(self, client_key: str) -> int:
        """Seconds until the oldest request in the window expires."""
        self._prune(client_key)
        if len(self._requests[client_key]) < self.requests_per_minute:
            return 0
        oldest = min(self._requests[client_key])
        return max(1, int(self.window_seconds - (time.time() - oldest)))


def get_client_key(request: Request) -> Optional[str]:
    """Identify the caller: explicit X-Rate-Limit-Key, then client IP."""
    rate_key = request.headers.get("X-Rate-Limit-Key")
    if rate_key:
        return f"key:{rate_key[:64]}"
    client = request.client
    if client:
        return f"ip:{client.host}"
    return None


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client rate limiting middleware."""

    def __init__(
        self,
        app,
        requests_per_minute: Optional[int] = None,
        skip_paths: Optional[list[str]] = None,
    ):
        super().__init__(app)
        self.limiter = SlidingWindowRateLimiter(
            requests_per_minute or settings.api.rate_limit_requests_per_minute
        )
        self.skip_paths = set(skip_paths or ["/health", "/docs", "/openapi.json", "/redoc"])

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.skip_paths or path.startswith("/docs") or path.startswith("/redoc"):
            return await call_next(request)

        client_key = get_client_key(request)
        if not client_key:
            return await call_next(request)

        if not self.limiter.is_allowed(client_key):
            retry_after = self.limiter.retry_after_seconds(client_key)
            logger.warning(
                "Rate limit exceeded",
                extra={"client_key": client_key[:16], "retry_after": retry_after},
            )
            return JSONResponse(
                status_code=429,
                content=error_response("Rate limit exceeded. Try again later."),
                headers={"Retry-After": str(retry_after)},
            )

        self.limiter.record(client_key)
        return await call_next(request)
