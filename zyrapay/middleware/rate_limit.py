"""
Rate Limiting Middleware

Per-client rate limiting of signups using Redis.

ARCHITECTURE: Token bucket in Redis, keyed by client address.
Every signup provisions a wallet and a database, so only the
registration submit is limited; other routes pass straight through.

PRODUCTION NOTES:
- Behind a proxy, run uvicorn with --proxy-headers so request.client is
  the real caller
- Redis down means no limiting (logged), not failed signups
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from typing import Optional, Tuple
import redis
import time
import logging
from zyrapay.config import Settings, get_settings
from zyrapay.utils.logging import log_security_event

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Token bucket rate limiter for registration requests.
    """

    def __init__(self, app, settings: Optional[Settings] = None, redis_client=None):
        super().__init__(app)
        self.settings = settings or get_settings()
        self.limited_routes = {("POST", "/register")}
        self.redis_client = redis_client
        self.redis_available = False

        if not self.settings.RATE_LIMIT_ENABLED:
            logger.info("Registration rate limiting disabled by configuration")
            return

        try:
            if self.redis_client is None:
                self.redis_client = redis.from_url(
                    self.settings.REDIS_URL,
                    decode_responses=True,
                    socket_connect_timeout=5
                )
            # Test connection
            self.redis_client.ping()
            self.redis_available = True
            logger.info("Redis connection established for rate limiting")
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.error(f"Redis connection failed: {e}")
            # FALLBACK: Disable rate limiting if Redis is down

    async def dispatch(self, request: Request, call_next):
        """Apply rate limiting to registration submits."""

        if (request.method, request.url.path) not in self.limited_routes:
            return await call_next(request)

        if not self.redis_available:
            if self.settings.RATE_LIMIT_ENABLED:
                logger.warning("Rate limiting disabled - Redis unavailable")
            return await call_next(request)

        client = self._get_client_identifier(request)
        allowed, retry_after = self._check_rate_limit(client)

        if not allowed:
            log_security_event(
                "registration_rate_limited",
                {"client": client, "retry_after": retry_after},
                logger
            )
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Rate limit exceeded. Please try again later.",
                    "retry_after": retry_after
                },
                headers={"Retry-After": str(retry_after)}
            )

        return await call_next(request)

    def _check_rate_limit(self, client: str) -> Tuple[bool, int]:
        """
        Check if request is allowed under rate limit.

        Returns: (allowed: bool, retry_after: int)

        Uses token bucket algorithm:
        - Bucket holds max tokens (burst capacity)
        - Tokens added at fixed rate
        - Each request consumes one token
        """
        rate_limit = self.settings.REGISTRATION_RATE_LIMIT_PER_MINUTE
        burst = self.settings.REGISTRATION_RATE_LIMIT_BURST

        key = f"rate_limit:register:{client}"
        key_timestamp = f"{key}:timestamp"

        try:
            current_tokens = self.redis_client.get(key)
            last_update = self.redis_client.get(key_timestamp)

            now = time.time()

            if current_tokens is None:
                # First request - initialize bucket
                current_tokens = burst - 1  # Consume one token
                self.redis_client.setex(key, 60, current_tokens)
                self.redis_client.setex(key_timestamp, 60, now)
                return True, 0

            current_tokens = float(current_tokens)
            last_update = float(last_update) if last_update else now

            # Calculate tokens to add based on elapsed time
            elapsed = now - last_update
            tokens_to_add = elapsed * (rate_limit / 60.0)  # Convert per-minute to per-second
            new_tokens = min(burst, current_tokens + tokens_to_add)

            if new_tokens >= 1:
                new_tokens -= 1
                self.redis_client.setex(key, 60, new_tokens)
                self.redis_client.setex(key_timestamp, 60, now)
                return True, 0

            tokens_needed = 1 - new_tokens
            retry_after = int((tokens_needed / (rate_limit / 60.0)) + 1)
            return False, retry_after

        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            # Graceful degradation - allow request if Redis fails
            return True, 0

    def _get_client_identifier(self, request: Request) -> str:
        return request.client.host if request.client else "unknown"
