"""HTTP middleware for the Rugalika backend."""

from app.middleware.rate_limit import RateLimitMiddleware, get_rate_limiter
from app.middleware.rate_limit_cleanup import rate_limit_cleanup_loop
from app.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
    "get_rate_limiter",
    "rate_limit_cleanup_loop",
]
