"""ZeroBounce API client for email validation."""

import math
import os
from typing import Optional

import httpx
import structlog

from leadcrm.clients.http import request_json
from leadcrm.core.models import A_VERIFIER, INVALIDE, VALIDE

ZEROBOUNCE_API_KEY = os.getenv("ZEROBOUNCE_API_KEY", "")
BASE_URL = "https://api.zerobounce.net/v2"
BULK_URL = "https://bulkapi.zerobounce.net/v2"

COST_PER_EMAIL = 0.008
INVALID_STATUSES = ("invalid", "spamtrap", "abuse", "do_not_mail")

log = structlog.get_logger()


async def validate(email: str) -> Optional[dict]:
    """Validate a single address. Returns the raw ZeroBounce result."""
    if not ZEROBOUNCE_API_KEY:
        log.warning("zerobounce_api_key_not_set")
        return None

    async with httpx.AsyncClient(timeout=30.0) as client:
        data = await request_json(
            client, "GET", f"{BASE_URL}/validate", "zerobounce",
            params={"api_key": ZEROBOUNCE_API_KEY, "email": email, "ip_address": ""},
        )

    log.info("zerobounce_validated", email=email, status=data.get("status"))
    return data


async def validate_batch(emails: list[str]) -> list[dict]:
    """Validate up to 100 addresses in one call. Returns `email_batch`."""
    if not emails:
        return []

    if not ZEROBOUNCE_API_KEY:
        log.warning("zerobounce_api_key_not_set")
        return []

    async with httpx.AsyncClient(timeout=120.0) as client:
        data = await request_json(
            client, "POST", f"{BULK_URL}/validatebatch", "zerobounce",
            json={
                "api_key": ZEROBOUNCE_API_KEY,
                "email_batch": [{"email_address": email} for email in emails],
            },
        )

    for error in data.get("errors") or []:
        log.warning("zerobounce_batch_error", email=error.get("email_address"), error=error.get("error"))

    results = data.get("email_batch") or []
    log.info("zerobounce_batch_complete", requested=len(emails), returned=len(results))
    return results


async def get_credits() -> int:
    if not ZEROBOUNCE_API_KEY:
        log.warning("zerobounce_api_key_not_set")
        return 0

    async with httpx.AsyncClient(timeout=30.0) as client:
        data = await request_json(
            client, "GET", f"{BASE_URL}/getcredits", "zerobounce",
            params={"api_key": ZEROBOUNCE_API_KEY},
        )

    try:
        return max(int(data.get("Credits", 0)), 0)
    except (TypeError, ValueError):
        return 0


def map_status(status: Optional[str]) -> str:
    """Map a ZeroBounce status to an email_status."""
    if status == "valid":
        return VALIDE
    if status in INVALID_STATUSES:
        return INVALIDE
    return A_VERIFIER


def estimate_cost(email_count: int) -> dict:
    cost = email_count * COST_PER_EMAIL
    return {
        "credits": email_count,
        "estimated_cost": f"${cost:.2f} (~{math.ceil(cost * 0.95)}€)",
    }
