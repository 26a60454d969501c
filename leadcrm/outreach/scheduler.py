"""Drip sequence stepper: first emails and due follow-ups."""

from pathlib import Path

import structlog

from leadcrm.core import db
from leadcrm.core.config import EmailTemplate, Settings, load_templates
from leadcrm.outreach.composer import compose_email
from leadcrm.outreach.sender import advance_sequence, deliver

log = structlog.get_logger()

SEQUENCE_LENGTH = 4


def load_sequence(db_path: Path) -> list[EmailTemplate]:
    """Load the stored sequence templates ordered by step.

    Raises:
        ValueError: steps 1 to 4 are not all present.
    """
    templates = [
        EmailTemplate(
            name=row["name"],
            step=row["step"],
            delay_days=row["delay_days"],
            subject=row["subject"],
            body=row["body_html"],
        )
        for row in db.get_templates(db_path)
    ]

    steps = {t.step for t in templates}
    missing = [step for step in range(1, SEQUENCE_LENGTH + 1) if step not in steps]
    if missing:
        raise ValueError(f"Sequence templates missing for steps: {missing}")

    return [t for t in templates if t.step <= SEQUENCE_LENGTH]


async def _send_step(
    db_path: Path,
    contact,
    template: EmailTemplate,
    settings: Settings,
    results: dict,
) -> None:
    composed = compose_email(template, contact, include_icebreaker=template.step == 1)
    sent = await deliver(
        db_path,
        contact,
        subject=composed["subject"],
        html=composed["html"],
        step=template.step,
        settings=settings,
        template_name=template.name,
        has_icebreaker=composed["has_icebreaker"],
    )
    advance_sequence(db_path, contact["id"], template.step, settings)

    results["emails_sent"] += 1
    results["details"].append({
        "contact_id": contact["id"],
        "email": contact["email"],
        "step": template.step,
        "message_id": sent["message_id"],
    })


async def run_send_cycle(db_path: Path, settings: Settings) -> dict:
    """Send due follow-ups, then start new sequences, up to max_emails_per_run.

    Returns dict with checked, emails_sent, errors, details and
    daily_limit_reached.
    """
    results = {
        "checked": 0,
        "emails_sent": 0,
        "errors": [],
        "details": [],
        "daily_limit_reached": False,
    }

    try:
        templates = {t.step: t for t in load_sequence(db_path)}
    except ValueError as e:
        log.error("sequence_not_configured", error=str(e))
        results["errors"].append(str(e))
        return results

    budget = settings.sequence.max_emails_per_run

    def limit_reached() -> bool:
        if results["emails_sent"] >= budget:
            results["daily_limit_reached"] = True
            return True
        return False

    # Follow-ups go out before new sequences start
    for contact in db.get_prospections_due(db_path, max_step=SEQUENCE_LENGTH - 1, limit=budget):
        if limit_reached():
            break
        results["checked"] += 1
        template = templates[contact["sequence_step"] + 1]
        try:
            await _send_step(db_path, contact, template, settings, results)
        except Exception as e:
            log.error("followup_send_failed", contact_id=contact["id"], step=template.step, error=str(e))
            results["errors"].append(f"{contact['email']}: {e}")

    remaining = budget - results["emails_sent"]
    if remaining > 0:
        new_contacts = db.get_contacts_to_start(
            db_path, settings.sequence.require_icebreaker, limit=remaining
        )
        for contact in new_contacts:
            if limit_reached():
                break
            results["checked"] += 1
            try:
                await _send_step(db_path, contact, templates[1], settings, results)
            except Exception as e:
                log.error("first_email_send_failed", contact_id=contact["id"], error=str(e))
                results["errors"].append(f"{contact['email']}: {e}")

    limit_reached()
    log.info(
        "send_cycle_complete",
        checked=results["checked"],
        sent=results["emails_sent"],
        errors=len(results["errors"]),
    )
    return results


def install_templates(db_path: Path, config_path: Path) -> int:
    """Store the templates.md sequence in the database. Returns the number stored."""
    templates = load_templates(config_path)
    for template in templates:
        db.upsert_template(
            db_path,
            step=template.step,
            name=template.name,
            subject=template.subject,
            body_html=template.body,
            delay_days=template.delay_days,
        )
    log.info("templates_installed", count=len(templates))
    return len(templates)
