"""Shared request helper for vendor APIs: rate limiting and 429 handling."""

from typing import Any

import httpx
import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from leadcrm.core.ratelimit import RateLimiter, get_limiter, retry_policy

log = structlog.get_logger()


def _retry_after(response: httpx.Response, default: float) -> float:
    value = response.headers.get("Retry-After") if response.headers else None
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def is_rate_limited(error: BaseException) -> bool:
    return isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 429


def wait_retry_after(vendor: str, limiter: RateLimiter):
    """Tenacity wait: the vendor's Retry-After, capped, held on the limiter too."""

    def wait(retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception()
        delay = min(
            _retry_after(error.response, default=2.0 ** (retry_state.attempt_number - 1)),
            retry_policy["max_retry_after"],
        )
        log.warning("vendor_rate_limited", vendor=vendor, retry_in=delay, attempt=retry_state.attempt_number)
        limiter.backoff(delay)
        return delay

    return wait


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    vendor: str,
    **kwargs: Any,
) -> Any:
    """Send a request through the vendor's limiter and return decoded JSON.

    HTTP 429 is retried after the vendor's Retry-After (bounded by
    `max_retry_after`) up to `max_retries` times; any other error status
    raises httpx.HTTPStatusError. An empty body (204) decodes to {}.
    """
    limiter = get_limiter(vendor)

    async for attempt in AsyncRetrying(
        retry=retry_if_exception(is_rate_limited),
        stop=stop_after_attempt(retry_policy["max_retries"] + 1),
        wait=wait_retry_after(vendor, limiter),
        reraise=True,
    ):
        with attempt:
            await limiter.wait()
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()

    return response.json() if response.content else {}
