"""Brevo delivery events: webhook handling and polling."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog

from leadcrm.clients import brevo
from leadcrm.core import db
from leadcrm.core.models import (
    BOUNCED,
    CLICKED,
    DELIVERED,
    INVALIDE,
    OPENED,
    PAS_INTERESSE,
    SPAM,
    UNSUBSCRIBED,
    InvalidTransition,
)

log = structlog.get_logger()

EVENT_STATUS = {
    "delivered": DELIVERED,
    "opened": OPENED,
    "unique_opened": OPENED,
    "click": CLICKED,
    "clicked": CLICKED,
    "hard_bounce": BOUNCED,
    "soft_bounce": BOUNCED,
    "spam": SPAM,
    "complaint": SPAM,
    "unsubscribed": UNSUBSCRIBED,
}

# Names used by the statistics/events API, mapped to webhook names
POLLED_EVENTS = {
    "delivered": "delivered",
    "opened": "opened",
    "clicks": "click",
    "hardBounces": "hard_bounce",
    "softBounces": "soft_bounce",
    "spam": "spam",
    "unsubscribed": "unsubscribed",
}


def handle_brevo_event(db_path: Path, payload: dict) -> dict:
    """Apply one Brevo webhook event to the matching sent email.

    Matches on message-id, else the latest email sent to the recipient.
    """
    event = payload.get("event")
    email = payload.get("email")
    message_id = payload.get("message-id") or payload.get("messageId")

    record = db.find_email_sent(db_path, message_id=message_id, email=email)
    if record is None:
        log.info("webhook_email_not_found", webhook_event=event, email=email)
        return {"received": True, "found": False}

    status = EVENT_STATUS.get(event)
    if status is None:
        log.info("webhook_event_ignored", webhook_event=event, email=email)
        return {"received": True, "found": True, "event": event, "processed": False}

    opened = event == "opened" or (event == "unique_opened" and record["open_count"] == 0)
    clicked = status == CLICKED

    new_status = db.apply_email_event(
        db_path,
        record["id"],
        status,
        opened=opened,
        clicked=clicked,
        link=payload.get("link") if clicked else None,
    )

    contact_id = record["contact_id"]
    if contact_id is not None:
        if opened or clicked:
            db.increment_prospection_counters(
                db_path, contact_id, opens=int(opened), clicks=int(clicked)
            )

        try:
            if event == "hard_bounce":
                db.set_contact_email_status(db_path, contact_id, INVALIDE, validation_result="brevo:hard_bounce")
            elif event == "unsubscribed":
                db.set_prospection_status(db_path, contact_id, PAS_INTERESSE)
        except InvalidTransition as e:
            log.warning("webhook_transition_skipped", contact_id=contact_id, error=str(e))

    log.info("webhook_event_applied", webhook_event=event, email=email, email_id=record["id"], status=new_status)
    return {
        "received": True,
        "found": True,
        "event": event,
        "email": email,
        "status": new_status,
        "processed": True,
    }


def _event_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


async def sync_email_events(db_path: Path, limit: int = 50, days: int = 7) -> dict:
    """Poll Brevo for events on recent emails the webhook may have missed.

    Only events newer than the email's last update are applied.
    """
    results = {"checked": 0, "events_applied": 0, "errors": []}

    for record in db.get_recent_emails(db_path, days=days, limit=limit):
        results["checked"] += 1
        try:
            events = await brevo.get_email_events(message_id=record["message_id"], days=days)
            last_update = _event_time(record["updated_at"])

            for item in sorted(events, key=lambda e: e.get("date") or ""):
                event = POLLED_EVENTS.get(item.get("event"))
                happened_at = _event_time(item.get("date"))
                if event is None or (last_update and happened_at and happened_at <= last_update):
                    continue

                result = handle_brevo_event(db_path, {
                    "event": event,
                    "email": item.get("email") or record["to_email"],
                    "message-id": record["message_id"],
                    "link": item.get("link"),
                })
                if result.get("processed"):
                    results["events_applied"] += 1

        except Exception as e:
            log.error("event_sync_error", email_id=record["id"], error=str(e))
            results["errors"].append(f"{record['to_email']}: {e}")

    log.info("event_sync_complete", checked=results["checked"], applied=results["events_applied"])
    return results
