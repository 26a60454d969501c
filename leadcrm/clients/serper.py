"""Serper.dev Google search client."""

import os

import httpx
import structlog

from leadcrm.clients.http import request_json

SERPER_API_KEY = os.getenv("SERPER_API_KEY", "")
SEARCH_URL = "https://google.serper.dev/search"

MAX_ORGANIC = 5
MAX_NEWS = 3

log = structlog.get_logger()


async def search(query: str, num: int = 5) -> list[str]:
    """Search Google (French locale) and flatten results to short lines.

    Organic results become "title: snippet", news items
    "[ACTU] title: snippet".
    """
    if not SERPER_API_KEY:
        log.warning("serper_api_key_not_set")
        return []

    async with httpx.AsyncClient(timeout=30.0) as client:
        data = await request_json(
            client, "POST", SEARCH_URL, "serper",
            headers={"X-API-KEY": SERPER_API_KEY, "Content-Type": "application/json"},
            json={"q": query, "gl": "fr", "hl": "fr", "num": num},
        )

    results = []
    for item in (data.get("organic") or [])[:MAX_ORGANIC]:
        if item.get("snippet"):
            results.append(f"{item.get('title', '')}: {item['snippet']}")

    for item in (data.get("news") or [])[:MAX_NEWS]:
        results.append(f"[ACTU] {item.get('title', '')}: {item.get('snippet', '')}")

    log.debug("serper_search_complete", query=query, count=len(results))
    return results
