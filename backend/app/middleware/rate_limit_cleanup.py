"""Background pruning of idle rate limiter buckets."""

import asyncio
import logging

from app.middleware.rate_limit import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)


async def rate_limit_cleanup_loop(
    interval_seconds: int = 3600,
    inactive_seconds: int = 3600,
    rate_limiter: RateLimiter | None = None,
) -> None:
    """Drop buckets for clients that have gone quiet so memory stays bounded."""
    limiter = rate_limiter or get_rate_limiter()
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            removed = await limiter.cleanup_inactive_buckets(inactive_seconds=inactive_seconds)
            if removed > 0:
                logger.debug(f"Rate limiter cleanup: removed {removed} inactive buckets")
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning(f"Rate limiter cleanup error: {e}")
