"""Contact discovery: placeholder roles, domain lookup, Hunter search, verification."""

from pathlib import Path
from typing import Optional

import structlog

from leadcrm.clients import hunter, zerobounce
from leadcrm.core import db
from leadcrm.core.config import Settings
from leadcrm.core.models import A_TROUVER, A_VERIFIER, TROUVE, VALIDE

log = structlog.get_logger()

MIN_CONTACTS_PER_ESTABLISHMENT = 3


def roles_for(category: Optional[str], settings: Settings) -> list[str]:
    """Expected roles for an establishment category, DEFAULT when unknown."""
    return settings.roles.get(category or "") or settings.roles.get("DEFAULT", ["Directeur"])


def create_placeholder_contacts(
    db_path: Path,
    settings: Settings,
    limit: Optional[int] = None,
    roles_per_establishment: Optional[int] = None,
    source: str = "cron_auto",
) -> dict:
    """Create a_trouver contacts for establishments that have none yet."""
    limit = limit or settings.limits.contacts_per_run
    roles_per_establishment = roles_per_establishment or settings.limits.roles_per_establishment

    establishments = db.get_establishments_without_contacts(db_path, limit)
    created = 0

    for establishment in establishments:
        for role in roles_for(establishment["category"], settings)[:roles_per_establishment]:
            db.insert_contact(
                db_path=db_path,
                establishment_id=establishment["id"],
                role=role,
                source=source,
                email_status=A_TROUVER,
            )
            created += 1

    log.info("placeholder_contacts_created", establishments=len(establishments), contacts=created)
    return {"establishments": len(establishments), "contacts_created": created}


def extract_domain(website: Optional[str]) -> Optional[str]:
    """Bare domain from a website value ("https://www.x.fr/a" -> "x.fr")."""
    if not website:
        return None
    domain = website.strip().lower()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    if domain.startswith("www."):
        domain = domain[4:]
    domain = domain.split("/")[0].split("?")[0]
    return domain or None


async def resolve_domain(db_path: Path, establishment) -> Optional[str]:
    """Domain of an establishment, looked up on Hunter and saved when unknown."""
    domain = extract_domain(establishment["website"])
    if domain:
        return domain

    company = " ".join(part for part in (establishment["name"], establishment["city"]) if part)
    domain = await hunter.find_domain(company)
    if domain:
        db.update_establishment_website(db_path, establishment["id"], f"https://{domain}")
        log.info("establishment_domain_found", establishment_id=establishment["id"], domain=domain)
    return domain


async def search_establishment_contacts(db_path: Path, establishment_id: int, settings: Settings) -> dict:
    """Find people at an establishment through Hunter and store them as contacts.

    Tops up with placeholder roles when fewer than three contacts came back.

    Raises:
        LookupError: unknown establishment.
    """
    establishment = db.get_establishment(db_path, establishment_id)
    if establishment is None:
        raise LookupError(f"Establishment {establishment_id} not found")

    domain = await resolve_domain(db_path, establishment)
    if not domain:
        return {"domain": None, "contacts": [], "total_found": 0}

    search = await hunter.domain_search(domain, limit=10)
    emails = (search or {}).get("emails") or []
    threshold = settings.limits.hunter_confidence_threshold

    created = []
    for found in emails:
        address = found.get("value")
        if not address or db.contact_exists(db_path, establishment_id, email=address):
            continue

        contact_id = db.insert_contact(
            db_path=db_path,
            establishment_id=establishment_id,
            role=found.get("position") or found.get("department") or "Contact",
            source="hunter",
            email_status=TROUVE if (found.get("confidence") or 0) > threshold else A_VERIFIER,
            first_name=found.get("first_name"),
            last_name=found.get("last_name"),
            email=address,
        )
        created.append(contact_id)

    if len(created) < MIN_CONTACTS_PER_ESTABLISHMENT:
        for role in roles_for(establishment["category"], settings)[:MIN_CONTACTS_PER_ESTABLISHMENT]:
            if db.contact_exists(db_path, establishment_id, role=role):
                continue
            created.append(db.insert_contact(
                db_path=db_path,
                establishment_id=establishment_id,
                role=role,
                source="auto_generated",
                email_status=A_TROUVER,
            ))

    log.info(
        "establishment_contacts_searched",
        establishment_id=establishment_id,
        domain=domain,
        found=len(emails),
        created=len(created),
    )
    return {
        "domain": domain,
        "contacts": [dict(db.get_contact(db_path, contact_id)) for contact_id in created],
        "total_found": len(emails),
    }


async def _check_address(email: str, settings: Settings) -> tuple[str, str]:
    """Return (email_status, provider) for an address."""
    if zerobounce.ZEROBOUNCE_API_KEY:
        result = await zerobounce.validate(email)
        status = (result or {}).get("status")
        if status and status != "unknown":
            return zerobounce.map_status(status), "zerobounce"

    result = await hunter.verify_email(email)
    if result is None:
        return A_VERIFIER, "none"
    status = hunter.map_verifier_result(
        result.get("result"), result.get("score"), settings.limits.hunter_verify_threshold
    )
    return status, "hunter"


async def verify_contact_email(
    db_path: Path,
    email: str,
    settings: Settings,
    contact_id: Optional[int] = None,
) -> dict:
    """Verify one address with ZeroBounce, falling back to Hunter.

    When a contact id is given, the contact's address and status are updated,
    unless the contact already holds a different address.
    """
    status, provider = await _check_address(email, settings)
    updated = False

    if contact_id is not None:
        contact = db.get_contact(db_path, contact_id)
        if contact is None:
            raise LookupError(f"Contact {contact_id} not found")

        if contact["email"] and contact["email"].casefold() != email.casefold():
            # The verdict belongs to another address; leave the contact alone
            log.warning("verified_email_mismatch", contact_id=contact_id, email=email)
        else:
            if contact["email_status"] == A_TROUVER:
                db.update_contact_email(
                    db_path, contact_id, email=email, email_status=A_VERIFIER,
                    source=contact["source"] or "manual",
                )
            updated = db.set_contact_email_status(db_path, contact_id, status, validation_result=provider)

            if status == VALIDE:
                db.ensure_prospection(db_path, contact_id)

    log.info("email_verified", email=email, status=status, provider=provider, contact_id=contact_id)
    return {
        "email": email,
        "valid": status == VALIDE,
        "status": status,
        "provider": provider,
        "updated": updated,
    }


def set_prospection_status(db_path: Path, contact_id: int, status: str) -> bool:
    """Move a contact's prospection forward, creating it if needed.

    Raises:
        LookupError: unknown contact.
        InvalidTransition: backwards or unknown status.
    """
    if db.get_contact(db_path, contact_id) is None:
        raise LookupError(f"Contact {contact_id} not found")

    db.ensure_prospection(db_path, contact_id)
    changed = db.set_prospection_status(db_path, contact_id, status)
    log.info("prospection_status_set", contact_id=contact_id, status=status, changed=changed)
    return changed
