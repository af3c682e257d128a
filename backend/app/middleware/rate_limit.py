"""Rate limiting middleware for API protection."""

import asyncio
import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from app.core.request_utils import get_client_ip

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Too many requests. Please try again later."


@dataclass
class PathRateLimitConfig:
    """Sliding-window limit for one path prefix."""

    max_requests: int = 100
    window_seconds: int = 15 * 60
    message: str = DEFAULT_MESSAGE
    # Successful (< 400) responses do not count against the limit
    skip_successful: bool = False


@dataclass
class RateLimitBucket:
    """Request timestamps for a single client+path combination."""

    requests: list[float] = field(default_factory=list)
    last_update: float = field(default_factory=time.monotonic)


# Login code requests are the strictest: each one sends an email.
AUTH_PATH_CONFIGS: dict[str, PathRateLimitConfig] = {
    "/api/auth/send-code": PathRateLimitConfig(
        max_requests=3,
        window_seconds=5 * 60,
        message="Too many code requests. Please wait 5 minutes before requesting another code.",
    ),
    "/api/auth/verify-code": PathRateLimitConfig(
        max_requests=5,
        window_seconds=15 * 60,
        message="Too many authentication attempts. Please try again in 15 minutes.",
        skip_successful=True,
    ),
    "/api/auth/refresh-token": PathRateLimitConfig(
        max_requests=5,
        window_seconds=15 * 60,
        message="Too many authentication attempts. Please try again in 15 minutes.",
        skip_successful=True,
    ),
    "/health": PathRateLimitConfig(max_requests=30, window_seconds=60),
}


class RateLimiter:
    """In-memory per-IP rate limiter with per-path configuration.

    State lives in process memory, so limits apply per worker.
    """

    _instance: Optional["RateLimiter"] = None
    _instance_lock: threading.Lock = threading.Lock()

    def __init__(
        self,
        default_requests_per_minute: int = 100,
        path_configs: dict[str, PathRateLimitConfig] | None = None,
    ) -> None:
        self._buckets: dict[str, RateLimitBucket] = defaultdict(RateLimitBucket)
        self._lock = asyncio.Lock()
        self._path_configs = dict(AUTH_PATH_CONFIGS if path_configs is None else path_configs)
        self._default_config = PathRateLimitConfig(
            max_requests=default_requests_per_minute, window_seconds=60
        )

    @classmethod
    def get_instance(cls) -> "RateLimiter":
        """Get the singleton instance (thread-safe)."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def configure_default(self, requests_per_minute: int) -> None:
        self._default_config = PathRateLimitConfig(
            max_requests=requests_per_minute, window_seconds=60
        )

    def get_config_for_path(self, path: str) -> PathRateLimitConfig:
        for prefix, config in self._path_configs.items():
            if path.startswith(prefix):
                return config
        return self._default_config

    def _get_bucket_key(self, client_ip: str, path: str) -> str:
        for prefix in self._path_configs:
            if path.startswith(prefix):
                return f"{client_ip}:{prefix}"
        return f"{client_ip}:default"

    async def check_rate_limit(
        self,
        client_ip: str,
        path: str,
    ) -> tuple[bool, dict[str, str], float]:
        """Check and record a request.

        Returns:
            Tuple of (is_allowed, headers_dict, request_timestamp)
        """
        config = self.get_config_for_path(path)
        bucket_key = self._get_bucket_key(client_ip, path)

        async with self._lock:
            bucket = self._buckets[bucket_key]
            now = time.monotonic()
            cutoff = now - config.window_seconds
            bucket.requests = [ts for ts in bucket.requests if ts > cutoff]
            bucket.last_update = now

            remaining = config.max_requests - len(bucket.requests)
            headers = {
                "X-RateLimit-Limit": str(config.max_requests),
                "X-RateLimit-Remaining": str(max(0, remaining - 1)),
            }

            if remaining <= 0:
                oldest = min(bucket.requests) if bucket.requests else now
                reset_seconds = max(1, int(config.window_seconds - (now - oldest)))
                headers["Retry-After"] = str(reset_seconds)
                headers["X-RateLimit-Reset"] = str(reset_seconds)
                return False, headers, now

            bucket.requests.append(now)
            return True, headers, now

    async def forget_request(self, client_ip: str, path: str, timestamp: float) -> None:
        """Un-count a request (used for ``skip_successful`` paths)."""
        bucket_key = self._get_bucket_key(client_ip, path)
        async with self._lock:
            bucket = self._buckets.get(bucket_key)
            if bucket and timestamp in bucket.requests:
                bucket.requests.remove(timestamp)

    async def get_stats(self) -> dict[str, dict]:
        async with self._lock:
            return {key: {"count": len(bucket.requests)} for key, bucket in self._buckets.items()}

    async def reset(self, client_ip: str | None = None) -> None:
        """Reset rate limit counters."""
        async with self._lock:
            if client_ip:
                keys_to_remove = [k for k in self._buckets if k.startswith(f"{client_ip}:")]
                for key in keys_to_remove:
                    del self._buckets[key]
            else:
                self._buckets.clear()

    async def cleanup_inactive_buckets(self, inactive_seconds: int = 3600) -> int:
        """Remove buckets with no activity for ``inactive_seconds``.

        Returns:
            Number of buckets removed
        """
        async with self._lock:
            cutoff = time.monotonic() - inactive_seconds
            keys_to_remove = [
                key
                for key, bucket in self._buckets.items()
                if bucket.last_update < cutoff and all(ts < cutoff for ts in bucket.requests)
            ]
            for key in keys_to_remove:
                del self._buckets[key]

            if keys_to_remove:
                logger.info(f"Cleaned up {len(keys_to_remove)} inactive rate limit buckets")
            return len(keys_to_remove)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP rate limiting with stricter limits on the login endpoints.

    Rejections use the standard ``{success, data, message}`` envelope and
    carry ``Retry-After``.
    """

    def __init__(
        self,
        app: ASGIApp,
        requests_per_minute: int = 100,
        exclude_paths: list[str] | None = None,
        enabled: bool = True,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        super().__init__(app)
        self.exclude_paths = exclude_paths or ["/docs", "/redoc", "/openapi.json"]
        self.enabled = enabled
        self.rate_limiter = rate_limiter or RateLimiter.get_instance()
        self.rate_limiter.configure_default(requests_per_minute)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.enabled or request.method == "OPTIONS":
            return await call_next(request)

        path = request.url.path
        if any(path.startswith(p) for p in self.exclude_paths):
            return await call_next(request)

        client_ip = get_client_ip(request)
        is_allowed, headers, timestamp = await self.rate_limiter.check_rate_limit(client_ip, path)
        config = self.rate_limiter.get_config_for_path(path)

        if not is_allowed:
            logger.warning(
                f"Rate limit exceeded for {client_ip} on {path}",
                extra={"client_ip": client_ip, "path": path},
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"success": False, "data": None, "message": config.message},
                headers=headers,
            )

        response = await call_next(request)

        if config.skip_successful and response.status_code < 400:
            await self.rate_limiter.forget_request(client_ip, path, timestamp)

        for key, value in headers.items():
            response.headers[key] = value

        return response


def get_rate_limiter() -> RateLimiter:
    """Get the rate limiter singleton for stats/management."""
    return RateLimiter.get_instance()
