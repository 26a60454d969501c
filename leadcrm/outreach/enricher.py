"""Email enrichment for contacts without an address, via Hunter.io."""

from pathlib import Path
from typing import Optional

import structlog

from leadcrm.clients import hunter
from leadcrm.core import db
from leadcrm.core.config import Settings
from leadcrm.core.models import A_VERIFIER, TROUVE
from leadcrm.outreach.contacts import resolve_domain

log = structlog.get_logger()

DIRECTOR_KEYWORDS = ("directeur", "directrice", "direction")


def _is_director(position: Optional[str]) -> bool:
    position = (position or "").lower()
    return any(keyword in position for keyword in DIRECTOR_KEYWORDS)


def pick_domain_email(emails: list[dict]) -> Optional[dict]:
    """Prefer a director-level address, else the first one."""
    if not emails:
        return None
    for found in emails:
        if _is_director(found.get("position")):
            return found
    return emails[0]


def guess_email(first_name: Optional[str], last_name: Optional[str], domain: str) -> str:
    """Most common address format, or the direction mailbox without a name."""
    if first_name and last_name:
        return hunter.generate_email_formats(first_name, last_name, domain)[0]
    return f"direction@{domain}"


async def find_contact_email(contact, domain: str, db_path: Path) -> Optional[dict]:
    """Look for an address in three passes: domain search, finder, guessed format.

    Returns {"email", "confidence", "first_name", "last_name"} or None when
    every candidate already belongs to another contact of the establishment.
    """
    establishment_id = contact["establishment_id"]

    def unused(address: Optional[str]) -> bool:
        return bool(address) and not db.contact_exists(db_path, establishment_id, email=address)

    search = await hunter.domain_search(domain, type="personal", limit=5)
    candidates = [e for e in (search or {}).get("emails") or [] if unused(e.get("value"))]
    found = pick_domain_email(candidates)
    if found:
        return {
            "email": found["value"],
            "confidence": found.get("confidence") or 0,
            "first_name": found.get("first_name"),
            "last_name": found.get("last_name"),
        }

    if contact["first_name"] and contact["last_name"]:
        finder = await hunter.find_email(
            domain,
            first_name=contact["first_name"],
            last_name=contact["last_name"],
            company=contact["establishment_name"],
        )
        if finder and unused(finder.get("email")):
            return {
                "email": finder["email"],
                "confidence": finder.get("score") or 0,
                "first_name": None,
                "last_name": None,
            }

    guessed = guess_email(contact["first_name"], contact["last_name"], domain)
    if unused(guessed):
        return {"email": guessed, "confidence": 0, "first_name": None, "last_name": None}
    return None


async def run_enrichment(db_path: Path, settings: Settings, limit: Optional[int] = None) -> dict:
    """Find addresses for a_trouver contacts.

    Returns dict with processed, enriched, skipped and errors.
    """
    limit = limit or settings.limits.enrich_per_run
    threshold = settings.limits.hunter_confidence_threshold
    results = {"processed": 0, "enriched": 0, "skipped": 0, "errors": []}

    contacts = db.get_contacts_to_enrich(db_path, limit)
    if not contacts:
        log.info("no_contacts_to_enrich")
        return results

    for contact in contacts:
        results["processed"] += 1
        label = contact["establishment_name"]

        try:
            establishment = db.get_establishment(db_path, contact["establishment_id"])
            domain = await resolve_domain(db_path, establishment)
            if not domain:
                results["skipped"] += 1
                results["errors"].append(f"{label}: No domain found")
                continue

            found = await find_contact_email(contact, domain, db_path)
            if not found:
                results["skipped"] += 1
                continue

            status = TROUVE if found["confidence"] > threshold else A_VERIFIER
            stored = db.update_contact_email(
                db_path,
                contact["id"],
                email=found["email"],
                email_status=status,
                source="hunter",
                first_name=found["first_name"],
                last_name=found["last_name"],
            )
            if not stored:
                log.info("contact_changed_concurrently", contact_id=contact["id"])
                results["skipped"] += 1
                continue

            results["enriched"] += 1
            log.info(
                "contact_enriched",
                contact_id=contact["id"],
                email=found["email"],
                status=status,
                confidence=found["confidence"],
            )

        except Exception as e:
            log.error("enrichment_error", contact_id=contact["id"], error=str(e))
            results["errors"].append(f"{label}: {e}")

    return results
