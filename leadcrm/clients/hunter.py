"""Hunter.io API client: domain search, email finder and verifier."""

import os
import unicodedata
from typing import Optional

import httpx
import structlog

from leadcrm.clients.http import request_json
from leadcrm.core.models import INVALIDE, VALIDE

HUNTER_API_KEY = os.getenv("HUNTER_API_KEY", "")
BASE_URL = "https://api.hunter.io/v2"

log = structlog.get_logger()


async def _get(path: str, params: dict) -> dict:
    params = {k: v for k, v in params.items() if v not in (None, "")}
    params["api_key"] = HUNTER_API_KEY
    async with httpx.AsyncClient(timeout=30.0) as client:
        data = await request_json(client, "GET", f"{BASE_URL}/{path}", "hunter", params=params)
    return data.get("data") or {}


async def domain_search(
    domain: str,
    type: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Optional[dict]:
    """List the addresses Hunter knows for a domain.

    Returns the `data` object (domain, organization, pattern, emails) or
    None when no API key is configured.
    """
    if not HUNTER_API_KEY:
        log.warning("hunter_api_key_not_set")
        return None

    data = await _get("domain-search", {
        "domain": domain,
        "type": type,
        "limit": limit,
        "offset": offset,
    })
    log.info("hunter_domain_search_complete", domain=domain, count=len(data.get("emails") or []))
    return data


async def find_domain(company: str) -> Optional[str]:
    """Resolve a company name (e.g. "EHPAD Les Tilleuls Amiens") to its domain."""
    if not HUNTER_API_KEY:
        log.warning("hunter_api_key_not_set")
        return None

    data = await _get("domain-search", {"company": company})
    domain = data.get("domain")
    log.info("hunter_domain_lookup", company=company, domain=domain)
    return domain or None


async def find_email(
    domain: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    full_name: Optional[str] = None,
    company: Optional[str] = None,
) -> Optional[dict]:
    """Find the most likely address of a person at a domain."""
    if not HUNTER_API_KEY:
        log.warning("hunter_api_key_not_set")
        return None

    data = await _get("email-finder", {
        "domain": domain,
        "first_name": first_name,
        "last_name": last_name,
        "full_name": full_name,
        "company": company,
    })
    if not data.get("email"):
        return None
    return data


async def verify_email(email: str) -> Optional[dict]:
    """Run Hunter's verifier. Returns data with `result` and `score`."""
    if not HUNTER_API_KEY:
        log.warning("hunter_api_key_not_set")
        return None

    return await _get("email-verifier", {"email": email})


async def get_account() -> Optional[dict]:
    if not HUNTER_API_KEY:
        log.warning("hunter_api_key_not_set")
        return None

    return await _get("account", {})


def available_searches(account: Optional[dict]) -> int:
    """Remaining domain searches from an account payload."""
    if not account:
        return 0
    searches = (account.get("requests") or {}).get("searches") or {}
    return int(searches.get("available") or 0)


def _ascii(value: str) -> str:
    normalized = unicodedata.normalize("NFD", value.lower())
    return "".join(c for c in normalized if not unicodedata.combining(c))


def generate_email_formats(first_name: str, last_name: str, domain: str) -> list[str]:
    """Common address patterns for a person, most likely first."""
    f = _ascii(first_name)
    l = _ascii(last_name)

    return [
        f"{f}.{l}@{domain}",
        f"{f}{l}@{domain}",
        f"{f[0]}.{l}@{domain}",
        f"{f[0]}{l}@{domain}",
        f"{l}.{f}@{domain}",
        f"{l}{f[0]}@{domain}",
        f"{f}@{domain}",
        f"{l}@{domain}",
        f"direction@{domain}",
        f"contact@{domain}",
    ]


def map_verifier_result(result: Optional[str], score: Optional[int], threshold: int) -> str:
    """Map a verifier answer to an email_status."""
    if result == "deliverable" and (score or 0) >= threshold:
        return VALIDE
    return INVALIDE
