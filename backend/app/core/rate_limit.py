"""Per-client rate limiting middleware."""
import time
from collections import defaultdict
from typing import Dict, Iterable, Tuple
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware


class RateLimiter:
    """Sliding-window request counter kept in process memory."""

    def __init__(self, requests_per_minute: int = 60, requests_per_hour: int = 1000):
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.requests: Dict[str, list] = defaultdict(list)

    def is_allowed(self, client_id: str, now: float = None) -> Tuple[bool, str]:
        now = time.time() if now is None else now
        recent = [t for t in self.requests[client_id] if now - t < 3600]
        self.requests[client_id] = recent

        if sum(1 for t in recent if now - t < 60) >= self.requests_per_minute:
            return False, f"Rate limit exceeded. Max {self.requests_per_minute} requests per minute."
        if len(recent) >= self.requests_per_hour:
            return False, f"Rate limit exceeded. Max {self.requests_per_hour} requests per hour."

        recent.append(now)
        return True, ""


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Limits API calls per client IP. Health checks and served files are exempt."""

    def __init__(
        self,
        app,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        exempt_prefixes: Iterable[str] = ("/health", "/api/files"),
    ):
        super().__init__(app)
        self.limiter = RateLimiter(requests_per_minute, requests_per_hour)
        self.exempt_prefixes = tuple(exempt_prefixes)

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith(self.exempt_prefixes):
            return await call_next(request)

        client_id = request.client.host if request.client else "unknown"
        allowed, message = self.limiter.is_allowed(client_id)
        if not allowed:
            return JSONResponse(status_code=429, content={"detail": message, "error_code": "RATE_LIMITED"})

        return await call_next(request)
