"""Email sending via Brevo and sequence bookkeeping."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import structlog

from leadcrm.clients import brevo
from leadcrm.core import db
from leadcrm.core.config import Settings, render_template
from leadcrm.outreach.composer import insert_icebreaker, template_variables

log = structlog.get_logger()


def next_contact_time(started_at: datetime, step: int, delays: list[int]) -> Optional[datetime]:
    """When step+1 is due, as an offset from the sequence start. None after the last step."""
    if step >= len(delays):
        return None
    return started_at + timedelta(days=delays[step])


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _recipient(contact, to_email: Optional[str] = None, to_name: Optional[str] = None) -> dict:
    email = to_email or contact["email"]
    name = to_name
    if not name and contact is not None:
        name = f"{contact['first_name'] or ''} {contact['last_name'] or ''}".strip()
    return {"email": email, "name": name or email}


async def deliver(
    db_path: Path,
    contact,
    subject: str,
    html: str,
    step: Optional[int],
    settings: Settings,
    template_name: Optional[str] = None,
    to_email: Optional[str] = None,
    to_name: Optional[str] = None,
    has_icebreaker: bool = False,
    is_first_email: Optional[bool] = None,
) -> dict:
    """Send one email through Brevo and record it.

    `is_first_email` defaults to whether this is step 1 of the sequence.

    Returns dict with message_id and email_id. Raises BrevoError on failure.
    """
    recipient = _recipient(contact, to_email, to_name)
    sending = settings.sending

    tags = list(sending.tags)
    if contact is not None and contact["establishment_category"]:
        tags.append(contact["establishment_category"].lower())

    result = await brevo.send_email(
        to=[recipient],
        subject=subject,
        html_content=html,
        sender={"name": sending.sender_name, "email": sending.sender_email},
        reply_to={"email": sending.reply_to or sending.sender_email},
        tags=tags,
    )

    contact_id = contact["id"] if contact is not None else None
    prospection_id = db.ensure_prospection(db_path, contact_id) if contact_id else None

    email_id = db.insert_email_sent(
        db_path,
        contact_id=contact_id,
        to_email=recipient["email"],
        subject=subject,
        message_id=result["message_id"],
        step=step,
        prospection_id=prospection_id,
        template_name=template_name,
        is_first_email=step == 1 if is_first_email is None else is_first_email,
        has_icebreaker=has_icebreaker,
    )

    if sending.sync_contacts and step == 1 and contact is not None:
        try:
            await brevo.upsert_contact(
                recipient["email"],
                first_name=contact["first_name"],
                last_name=contact["last_name"],
                attributes={
                    "ETABLISSEMENT": contact["establishment_name"],
                    "POSTE": contact["role"],
                },
                list_ids=sending.list_ids,
            )
        except Exception as e:
            log.warning("brevo_contact_sync_failed", email=recipient["email"], error=str(e))

    log.info("email_sent", to=recipient["email"], step=step, message_id=result["message_id"])
    return {"message_id": result["message_id"], "email_id": email_id}


def advance_sequence(db_path: Path, contact_id: int, step: int, settings: Settings) -> int:
    """Record that `step` went out and schedule the next one. Returns the prospection id."""
    delays = settings.sequence.delays_days
    prospection = db.get_prospection(db_path, contact_id)
    started_at = _parse_time(prospection["sequence_started_at"]) if prospection else None
    started_at = started_at or datetime.now(timezone.utc)

    return db.record_sequence_step(
        db_path,
        contact_id,
        step=step,
        next_contact_at=next_contact_time(started_at, step, delays),
        completed=step >= len(delays),
    )


async def send_contact_email(
    db_path: Path,
    settings: Settings,
    to_email: str,
    subject: str,
    html_content: str,
    contact_id: Optional[int] = None,
    to_name: Optional[str] = None,
    include_icebreaker: bool = True,
    is_first_email: bool = True,
) -> dict:
    """Send a hand-written email, optionally to a known contact.

    For a contact, placeholders are rendered, the ice breaker is inserted on
    a first email, and the prospection moves one step forward.

    Raises:
        ValueError: missing recipient, subject or content.
        LookupError: unknown contact.
        BrevoError: Brevo rejected the message.
    """
    if not to_email or not subject or not html_content:
        raise ValueError("Email, sujet et contenu requis")

    contact = None
    html = html_content
    has_icebreaker = False

    if contact_id is not None:
        contact = db.get_contact(db_path, contact_id)
        if contact is None:
            raise LookupError(f"Contact {contact_id} not found")

        if include_icebreaker and is_first_email and contact["icebreaker"]:
            html = insert_icebreaker(html, contact["icebreaker"])
            has_icebreaker = True
        html = render_template(html, template_variables(contact))

    step = None
    if contact is not None:
        prospection = db.get_prospection(db_path, contact_id)
        step = (prospection["sequence_step"] if prospection else 0) + 1

    sent = await deliver(
        db_path,
        contact,
        subject=subject,
        html=html,
        step=step,
        settings=settings,
        to_email=to_email,
        to_name=to_name,
        has_icebreaker=has_icebreaker,
        is_first_email=is_first_email,
    )

    if contact is not None:
        advance_sequence(db_path, contact_id, step, settings)

    return {
        "success": True,
        "message_id": sent["message_id"],
        "email_id": sent["email_id"],
        "had_icebreaker": has_icebreaker,
    }
