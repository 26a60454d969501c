"""Brevo (ex-Sendinblue) API client: transactional email, contacts, events."""

import os
from typing import Optional

import httpx
import structlog

from leadcrm.clients.http import request_json

BREVO_API_KEY = os.getenv("BREVO_API_KEY", "")
BASE_URL = "https://api.brevo.com/v3"

log = structlog.get_logger()


class BrevoError(RuntimeError):
    """Brevo refused or failed a request."""


def _headers() -> dict:
    return {
        "accept": "application/json",
        "api-key": BREVO_API_KEY,
        "content-type": "application/json",
    }


def _error_message(error: httpx.HTTPStatusError) -> str:
    try:
        body = error.response.json()
    except ValueError:
        body = {}
    return body.get("message") or error.response.reason_phrase or str(error)


async def send_email(
    to: list[dict],
    subject: str,
    html_content: str,
    text_content: Optional[str] = None,
    reply_to: Optional[dict] = None,
    tags: Optional[list[str]] = None,
    params: Optional[dict] = None,
    sender: Optional[dict] = None,
) -> dict:
    """Send a transactional email.

    Args:
        to: Recipients as [{"email": ..., "name": ...}]
        sender: {"name": ..., "email": ...}; Brevo's default sender when omitted

    Returns:
        {"message_id": "<...@smtp-relay.mailin.fr>"}

    Raises:
        BrevoError: no API key, or Brevo rejected the message.
    """
    if not BREVO_API_KEY:
        log.warning("brevo_api_key_not_set")
        raise BrevoError("BREVO_API_KEY not set")

    payload = {
        "to": to,
        "subject": subject,
        "htmlContent": html_content,
        "headers": {"X-Mailin-custom": "leadcrm"},
    }
    if sender:
        payload["sender"] = sender
    if text_content:
        payload["textContent"] = text_content
    if reply_to:
        payload["replyTo"] = reply_to
    if tags:
        payload["tags"] = tags
    if params:
        payload["params"] = params

    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            data = await request_json(
                client, "POST", f"{BASE_URL}/smtp/email", "brevo",
                headers=_headers(), json=payload,
            )
    except httpx.HTTPStatusError as e:
        message = _error_message(e)
        log.error("brevo_send_error", to=[r.get("email") for r in to], error=message)
        raise BrevoError(f"Brevo API Error: {message}") from e

    message_id = data.get("messageId")
    log.info("brevo_email_sent", to=[r.get("email") for r in to], message_id=message_id)
    return {"message_id": message_id}


async def upsert_contact(
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    attributes: Optional[dict] = None,
    list_ids: Optional[list[int]] = None,
) -> Optional[dict]:
    """Create or update a Brevo contact."""
    if not BREVO_API_KEY:
        log.warning("brevo_api_key_not_set")
        return None

    payload = {
        "email": email,
        "attributes": {
            "PRENOM": first_name or "",
            "NOM": last_name or "",
            **(attributes or {}),
        },
        "updateEnabled": True,
    }
    if list_ids:
        payload["listIds"] = list_ids

    # 204 on update, 201 with {"id": ...} on create
    async with httpx.AsyncClient(timeout=30.0) as client:
        data = await request_json(
            client, "POST", f"{BASE_URL}/contacts", "brevo",
            headers=_headers(), json=payload,
        )

    log.info("brevo_contact_upserted", email=email)
    return data


async def get_email_events(
    message_id: Optional[str] = None,
    email: Optional[str] = None,
    days: Optional[int] = None,
    limit: Optional[int] = None,
) -> list[dict]:
    """Fetch transactional email events (delivered, opened, clicks...)."""
    if not BREVO_API_KEY:
        log.warning("brevo_api_key_not_set")
        return []

    params = {}
    if message_id:
        params["messageId"] = message_id
    if email:
        params["email"] = email
    if days:
        params["days"] = days
    if limit:
        params["limit"] = limit

    async with httpx.AsyncClient(timeout=30.0) as client:
        data = await request_json(
            client, "GET", f"{BASE_URL}/smtp/statistics/events", "brevo",
            headers=_headers(), params=params,
        )
    return data.get("events") or []

