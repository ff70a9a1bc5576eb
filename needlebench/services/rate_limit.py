"""Per-caller request throttle."""

from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from needlebench.config import get_settings
from needlebench.errors import RateLimitExceededError
from needlebench.utils.logging import get_logger

logger = get_logger(__name__)


class CallerRateLimiter:
    """Moving window limit on expensive requests, counted per caller."""

    def __init__(self, requests_per_minute: int = 60):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per caller per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)
        self.request_limit = parse(f"{requests_per_minute}/minute")

    def check(self, caller_id: str, action: str = "request") -> None:
        """Count one request for the caller.

        Raises:
            RateLimitExceededError: If the caller is over the limit
        """
        if not self.limiter.hit(self.request_limit, "caller", caller_id):
            logger.warning(f"Rate limit exceeded for caller {caller_id} on {action}")
            raise RateLimitExceededError(caller_id, str(self.request_limit))


_rate_limiter: CallerRateLimiter | None = None


def get_rate_limiter() -> CallerRateLimiter:
    """Get or create rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = CallerRateLimiter(get_settings().rate_limit_per_minute)
    return _rate_limiter
