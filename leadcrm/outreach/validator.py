"""Email validation for found addresses: ZeroBounce, with Hunter as fallback."""

from pathlib import Path
from typing import Optional

import structlog

from leadcrm.clients import hunter, zerobounce
from leadcrm.core import db
from leadcrm.core.config import Settings
from leadcrm.core.models import INVALIDE, VALIDE

log = structlog.get_logger()


async def _hunter_status(email: str, settings: Settings) -> tuple[str, str]:
    result = await hunter.verify_email(email) or {}
    status = hunter.map_verifier_result(
        result.get("result"), result.get("score"), settings.limits.hunter_verify_threshold
    )
    return status, f"hunter:{result.get('result')}"


async def run_validation(
    db_path: Path,
    settings: Settings,
    limit: Optional[int] = None,
    batch: bool = False,
) -> dict:
    """Validate trouve / a_verifier addresses.

    Returns dict with processed, valid, invalid, risky, credits_remaining
    and errors; plus `aborted` and `message` when no provider can run.
    """
    limit = limit or settings.limits.validations_per_run
    results = {
        "processed": 0,
        "valid": 0,
        "invalid": 0,
        "risky": 0,
        "credits_remaining": 0,
        "errors": [],
    }

    credits = await zerobounce.get_credits() if zerobounce.ZEROBOUNCE_API_KEY else 0
    results["credits_remaining"] = credits
    use_zerobounce = credits >= settings.limits.min_validation_credits

    if not use_zerobounce and not hunter.HUNTER_API_KEY:
        message = (
            "Not enough ZeroBounce credits" if zerobounce.ZEROBOUNCE_API_KEY
            else "No validation provider configured"
        )
        log.warning("validation_aborted", reason=message, credits=credits)
        results.update({"aborted": True, "message": message})
        return results

    if use_zerobounce:
        limit = min(limit, credits)

    contacts = db.get_contacts_to_validate(db_path, limit)
    if not contacts:
        log.info("no_emails_to_validate")
        return results

    if use_zerobounce:
        log.info("zerobounce_validation_started", **zerobounce.estimate_cost(len(contacts)))

    batch_results = {}
    if use_zerobounce and batch:
        try:
            for item in await zerobounce.validate_batch([c["email"] for c in contacts]):
                batch_results[(item.get("address") or "").lower()] = item
        except Exception as e:
            log.error("zerobounce_batch_failed", error=str(e))
            results["errors"].append(f"batch: {e}")

    for contact in contacts:
        email = contact["email"]
        results["processed"] += 1

        try:
            if use_zerobounce:
                validation = batch_results.get(email.lower()) if batch else None
                if validation is None:
                    validation = await zerobounce.validate(email)
                if not validation:
                    results["errors"].append(f"{email}: Validation failed")
                    continue
                status = zerobounce.map_status(validation.get("status"))
                raw = f"zerobounce:{validation.get('status')}"
            else:
                status, raw = await _hunter_status(email, settings)

            if not db.set_contact_email_status(db_path, contact["id"], status, validation_result=raw):
                log.info("contact_changed_concurrently", contact_id=contact["id"])
                continue

            if status == VALIDE:
                results["valid"] += 1
                db.ensure_prospection(db_path, contact["id"])
            elif status == INVALIDE:
                results["invalid"] += 1
            else:
                results["risky"] += 1

            log.info("email_validated", contact_id=contact["id"], email=email, status=status, raw=raw)

        except Exception as e:
            log.error("validation_error", contact_id=contact["id"], error=str(e))
            results["errors"].append(f"{email}: {e}")

    if use_zerobounce:
        results["credits_remaining"] = max(credits - results["processed"], 0)

    return results
