"""Server clock used for every expiry comparison."""

from collections.abc import Callable
from datetime import UTC, datetime

# Returns the current time as an aware UTC datetime. Stores, the token
# issuer and the auth service take one of these so tests can pin time.
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)
