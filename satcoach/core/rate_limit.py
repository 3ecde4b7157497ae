"""
In-memory sliding-window rate limiter.

Every model-backed endpoint costs a Gemini call (generation costs up to
~25), so those paths get tight per-client limits:
  - /api/generate   10/min  (stream + non-stream)
  - /api/learn      20/min  (explain, coach)
  - /api/format     20/min
  - other /api/     60/min

Keys are (client ip, rule prefix). State is process-local; behind several
workers each worker counts on its own.
"""

import time
import logging
from collections import defaultdict, deque
from typing import Deque, Dict, List, Tuple

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


# (path_prefix, max_requests, window_seconds), first match wins
RATE_RULES: List[Tuple[str, int, int]] = [
    ("/api/generate", 10, 60),
    ("/api/learn",    20, 60),
    ("/api/format",   20, 60),
]

DEFAULT_LIMIT = 60
DEFAULT_WINDOW = 60
CLEANUP_INTERVAL = 300


def find_rule(path: str) -> Tuple[str, int, int]:
    """Return (prefix, limit, window); limit 0 means unlimited."""
    for prefix, limit, window in RATE_RULES:
        if path.startswith(prefix):
            return prefix, limit, window
    if path.startswith("/api/"):
        return "/api/", DEFAULT_LIMIT, DEFAULT_WINDOW
    return "", 0, 0


class RateLimitMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._last_cleanup = time.monotonic()

    @staticmethod
    def _client_ip(request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _prune(self, now: float):
        if now - self._last_cleanup < CLEANUP_INTERVAL:
            return
        self._last_cleanup = now
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] < now - CLEANUP_INTERVAL]
        for key in stale:
            del self._hits[key]

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self.enabled:
            return await call_next(request)

        prefix, limit, window = find_rule(request.url.path)
        if limit == 0:
            return await call_next(request)

        client_ip = self._client_ip(request)
        hits = self._hits[f"{client_ip}:{prefix}"]
        now = time.monotonic()
        while hits and hits[0] <= now - window:
            hits.popleft()

        if len(hits) >= limit:
            retry_after = int(hits[0] + window - now) + 1
            logger.warning(f"Rate limited: {client_ip} on {prefix} ({len(hits)}/{limit} in {window}s)")
            return JSONResponse(
                status_code=429,
                content={"error": f"Too many requests. Try again in {retry_after}s.", "retry_after": retry_after},
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        hits.append(now)
        self._prune(now)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(limit - len(hits))
        return response
