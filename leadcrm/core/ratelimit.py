"""Per-vendor rate limiting for outbound API calls."""

import asyncio
import time

import structlog

log = structlog.get_logger()

DEFAULT_INTERVALS = {
    "hunter": 1.0,
    "zerobounce": 0.2,
    "brevo": 0.2,
    "serper": 0.5,
    "anthropic": 1.0,
}

DEFAULT_MAX_RETRIES = 2
DEFAULT_MAX_RETRY_AFTER = 30.0


class RateLimiter:
    """Spaces calls at least `min_interval` seconds apart.

    Slots are reserved before sleeping, so concurrent callers on the same
    event loop queue up instead of firing together.
    """

    def __init__(self, min_interval: float = 0.0):
        self.min_interval = min_interval
        self._next_allowed = 0.0

    async def wait(self) -> None:
        now = time.monotonic()
        slot = max(now, self._next_allowed)
        self._next_allowed = slot + self.min_interval
        delay = slot - now
        if delay > 0:
            await asyncio.sleep(delay)

    def backoff(self, seconds: float) -> None:
        """Hold every caller for `seconds` (vendor answered 429)."""
        self._next_allowed = max(self._next_allowed, time.monotonic() + seconds)

    def reset(self) -> None:
        self._next_allowed = 0.0


_limiters: dict[str, RateLimiter] = {}
retry_policy = {
    "max_retries": DEFAULT_MAX_RETRIES,
    "max_retry_after": DEFAULT_MAX_RETRY_AFTER,
}


def get_limiter(vendor: str) -> RateLimiter:
    if vendor not in _limiters:
        _limiters[vendor] = RateLimiter(DEFAULT_INTERVALS.get(vendor, 0.0))
    return _limiters[vendor]


def configure_rate_limits(settings) -> None:
    """Apply intervals and retry policy from Settings.rate_limits."""
    rate_limits = settings.rate_limits
    for vendor in DEFAULT_INTERVALS:
        get_limiter(vendor).min_interval = getattr(rate_limits, vendor)
    retry_policy["max_retries"] = rate_limits.max_retries
    retry_policy["max_retry_after"] = rate_limits.max_retry_after
    log.debug("rate_limits_configured", **{v: get_limiter(v).min_interval for v in DEFAULT_INTERVALS})


def reset_limiters(interval: float = 0.0) -> None:
    """Set every known limiter to `interval` and forget call history."""
    for vendor in DEFAULT_INTERVALS:
        limiter = get_limiter(vendor)
        limiter.min_interval = interval
        limiter.reset()
