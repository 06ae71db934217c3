"""
Rate Limiting

Two layers:

1. RateLimitMiddleware: token bucket per tenant in Redis (partner id, or
   PS_ROOT for platform traffic). Degrades to "allow" when Redis is down.
2. AttemptLimiter: in-process hourly window per client IP, used as a
   dependency on the login and refresh endpoints.

PRODUCTION NOTES:
- Redis is single point of failure (use Redis Cluster/Sentinel)
- AttemptLimiter state is per process; behind several workers the
  effective limit is multiplied by the worker count
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple
import redis
import time
import logging

from pathosaathi.config import get_settings
from pathosaathi.core.responses import error_response
from pathosaathi.services.tenant_config import ROOT_TENANT
from pathosaathi.utils.logging import log_security_event

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Token bucket rate limiter per tenant."""

    def __init__(self, app):
        super().__init__(app)
        self.settings = get_settings()
        self.redis_client = None
        self.redis_available = False

        self.excluded_paths = [
            "/docs",
            "/redoc",
            "/openapi.json",
            "/health",
        ]

        if not self.settings.RATE_LIMIT_ENABLED:
            logger.info("Rate limiting disabled by configuration")
            return

        try:
            self.redis_client = redis.from_url(
                self.settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5
            )
            self.redis_client.ping()
            self.redis_available = True
            logger.info("Redis connection established for rate limiting")
        except (redis.ConnectionError, redis.TimeoutError) as e:
            # FALLBACK: Availability over strict rate limiting
            logger.error(f"Redis connection failed: {e}")

    @property
    def refill_per_second(self) -> float:
        return self.settings.RATE_LIMIT_MAX_REQUESTS / float(self.settings.RATE_LIMIT_WINDOW_SECONDS)

    async def dispatch(self, request: Request, call_next):
        if not self.redis_available:
            return await call_next(request)

        if any(request.url.path.startswith(path) for path in self.excluded_paths):
            return await call_next(request)

        tenant = getattr(request.state, "tenant", None)
        bucket = tenant.partner_id if tenant is not None and tenant.partner_id else ROOT_TENANT

        allowed, retry_after = self._check_rate_limit(bucket)

        if not allowed:
            log_security_event(
                "rate_limit_exceeded",
                {"bucket": bucket, "path": request.url.path},
                logger,
            )
            return JSONResponse(
                status_code=429,
                content=error_response("Too many requests. Please try again later.", "RATE_LIMITED", {"retry_after": retry_after}),
                headers={"Retry-After": str(retry_after)}
            )

        return await call_next(request)

    def _check_rate_limit(self, bucket: str) -> Tuple[bool, int]:
        """
        Check if a request is allowed under the bucket's limit.

        Returns: (allowed, retry_after seconds)
        """
        rate = self.refill_per_second
        burst = self.settings.RATE_LIMIT_BURST
        ttl = self.settings.RATE_LIMIT_WINDOW_SECONDS

        key = f"rate_limit:{bucket}"
        key_timestamp = f"{key}:timestamp"

        try:
            current_tokens = self.redis_client.get(key)
            last_update = self.redis_client.get(key_timestamp)

            now = time.time()

            if current_tokens is None:
                self.redis_client.setex(key, ttl, burst - 1)
                self.redis_client.setex(key_timestamp, ttl, now)
                return True, 0

            current_tokens = float(current_tokens)
            last_update = float(last_update) if last_update else now

            new_tokens = min(burst, current_tokens + (now - last_update) * rate)

            if new_tokens >= 1:
                self.redis_client.setex(key, ttl, new_tokens - 1)
                self.redis_client.setex(key_timestamp, ttl, now)
                return True, 0

            retry_after = int(((1 - new_tokens) / rate) + 1)
            return False, retry_after

        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            return True, 0


class AttemptLimiter:
    """
    Sliding one-window counter per key (client IP).

    `hit` records an attempt and reports whether it is within `limit`. Keys
    whose attempts have all left the window are dropped, at most once per
    window.
    """

    def __init__(self, window_seconds: int = 3600, clock: Callable[[], float] = time.time):
        self.window_seconds = window_seconds
        self._clock = clock
        self._attempts: Dict[str, List[float]] = {}
        self._next_sweep = clock() + window_seconds
        self._lock = Lock()

    def hit(self, key: str, limit: int) -> Tuple[bool, int]:
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(cutoff)
                self._next_sweep = now + self.window_seconds
            attempts = [t for t in self._attempts.get(key, []) if t > cutoff]
            if len(attempts) >= limit:
                self._attempts[key] = attempts
                retry_after = int(attempts[0] + self.window_seconds - now) + 1
                return False, retry_after
            attempts.append(now)
            self._attempts[key] = attempts
        return True, 0

    def _sweep(self, cutoff: float) -> None:
        for key in [k for k, times in self._attempts.items() if not times or times[-1] <= cutoff]:
            del self._attempts[key]

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._attempts.clear()
            else:
                self._attempts.pop(key, None)

    def __len__(self) -> int:
        return len(self._attempts)
