"""Fixed-window admission control per client address."""

import logging
import math
import time
from dataclasses import dataclass
from typing import Dict

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from .models import RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = "Too many requests, please try again later."
RATE_LIMIT_NAMESPACE = "echo-proxy-api"


@dataclass(frozen=True)
class RateLimitDecision:
    admitted: bool
    limit: int
    remaining: int
    reset_after: float

    def headers(self) -> Dict[str, str]:
        """Standard RateLimit-* response headers for this decision."""
        reset = str(max(0, math.ceil(self.reset_after)))
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": reset,
        }
        if not self.admitted:
            headers["Retry-After"] = reset
        return headers


class RequestRateLimiter:
    """
    Admits at most ``limit`` requests per identifier per ``window`` seconds.

    A window opens on the first request from an identifier and its counter
    resets once the window has elapsed. Rejected requests do not extend it.
    """

    def __init__(
        self,
        limit: int = RATE_LIMIT_REQUESTS,
        window: float = RATE_LIMIT_WINDOW,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window <= 0:
            raise ValueError("window must be positive")
        self.limit = limit
        self.window = max(1, math.ceil(window))
        self.item = RateLimitItemPerSecond(limit, self.window, namespace=RATE_LIMIT_NAMESPACE)
        self.storage = MemoryStorage()
        self.strategy = FixedWindowRateLimiter(self.storage)

    def hit(self, identifier: str) -> RateLimitDecision:
        """Record a request from ``identifier`` and decide whether to admit it."""
        admitted = self.strategy.hit(self.item, identifier)
        reset_time, remaining = self.strategy.get_window_stats(self.item, identifier)
        reset_after = reset_time - time.time()

        if not admitted:
            logger.warning("Rate limit exceeded for %s", identifier)
            return RateLimitDecision(False, self.limit, 0, reset_after)
        return RateLimitDecision(True, self.limit, max(0, remaining), reset_after)

    def reset(self) -> None:
        self.storage.reset()
