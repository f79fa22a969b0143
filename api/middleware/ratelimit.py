import os
import threading
import time
from collections import defaultdict

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

WINDOW_SECONDS = 60

_counters = defaultdict(list)
_lock = threading.Lock()


def reset_counters() -> None:
    with _lock:
        _counters.clear()


def _limit() -> int:
    try:
        return max(int(os.getenv("RATE_LIMIT_PER_MINUTE", "10")), 1)
    except ValueError:
        return 10


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding one-minute window per API key, or per client address."""

    async def dispatch(self, request: Request, call_next):
        if os.getenv("RATE_LIMIT_ENABLED", "false").lower() != "true":
            return await call_next(request)
        if request.url.path == "/__health":
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        key = getattr(request.state, "api_key", None) or client
        limit = _limit()
        now = time.time()

        with _lock:
            window = [t for t in _counters[key] if t > now - WINDOW_SECONDS]
            window.append(now)
            _counters[key] = window
            count = len(window)

        if count > limit:
            retry_after = max(int(window[0] + WINDOW_SECONDS - now), 1)
            return JSONResponse(
                {"detail": "Rate limit exceeded"},
                status_code=429,
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)
