"""Contact actions: domain lookup, Hunter search, verification, ice breakers, status."""

from pathlib import Path
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from leadcrm.api.deps import get_db_path, get_settings, require_cron_secret
from leadcrm.clients import hunter, zerobounce
from leadcrm.core import db
from leadcrm.core.config import Settings
from leadcrm.core.models import InvalidTransition
from leadcrm.outreach import contacts as contact_ops
from leadcrm.outreach.icebreaker import generate_for_contact, icebreaker_stats, run_icebreakers

log = structlog.get_logger()

router = APIRouter(dependencies=[Depends(require_cron_secret)])

BULK_ESTABLISHMENT_LIMIT = 100
BULK_ROLES = 3
BULK_ICEBREAKER_LIMIT = 10


class EnrichRequest(BaseModel):
    action: str
    establishment_id: Optional[int] = None
    contact_id: Optional[int] = None
    email: Optional[str] = None


class IcebreakerRequest(BaseModel):
    action: str
    contact_id: Optional[int] = None


class StatusRequest(BaseModel):
    status: str


def _establishment_or_404(db_path: Path, establishment_id: Optional[int]):
    if establishment_id is None:
        raise HTTPException(status_code=400, detail="establishment_id requis")
    establishment = db.get_establishment(db_path, establishment_id)
    if establishment is None:
        raise HTTPException(status_code=404, detail="Établissement non trouvé")
    return establishment


@router.post("/enrich")
async def enrich(
    body: EnrichRequest,
    db_path: Path = Depends(get_db_path),
    settings: Settings = Depends(get_settings),
):
    if body.action == "find_domain":
        establishment = _establishment_or_404(db_path, body.establishment_id)
        domain = await contact_ops.resolve_domain(db_path, establishment)
        return {"domain": domain}

    if body.action == "search_contacts":
        _establishment_or_404(db_path, body.establishment_id)
        result = await contact_ops.search_establishment_contacts(db_path, body.establishment_id, settings)
        if result["domain"] is None:
            return {"error": "Domaine non trouvé", "contacts": []}
        return result

    if body.action == "verify_email":
        if not body.email:
            raise HTTPException(status_code=400, detail="Email requis")
        try:
            return await contact_ops.verify_contact_email(
                db_path, body.email, settings, contact_id=body.contact_id
            )
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except InvalidTransition as e:
            raise HTTPException(status_code=400, detail=str(e))

    if body.action == "bulk_create_contacts":
        result = contact_ops.create_placeholder_contacts(
            db_path,
            settings,
            limit=BULK_ESTABLISHMENT_LIMIT,
            roles_per_establishment=BULK_ROLES,
            source="auto_generated",
        )
        return {"created": result["contacts_created"]}

    raise HTTPException(status_code=400, detail="Action non reconnue")


@router.get("/enrich")
async def enrich_status():
    """Which enrichment providers are configured, with remaining credits."""
    status = {
        "hunter": {"available": bool(hunter.HUNTER_API_KEY), "credits": None},
        "zerobounce": {"available": bool(zerobounce.ZEROBOUNCE_API_KEY), "credits": None},
    }

    if hunter.HUNTER_API_KEY:
        try:
            status["hunter"]["credits"] = hunter.available_searches(await hunter.get_account())
        except Exception as e:
            log.warning("hunter_credits_error", error=str(e))

    if zerobounce.ZEROBOUNCE_API_KEY:
        try:
            status["zerobounce"]["credits"] = await zerobounce.get_credits()
        except Exception as e:
            log.warning("zerobounce_credits_error", error=str(e))

    return status


@router.post("/icebreaker")
async def icebreaker(
    body: IcebreakerRequest,
    db_path: Path = Depends(get_db_path),
    settings: Settings = Depends(get_settings),
):
    if body.action == "generate":
        if body.contact_id is None:
            raise HTTPException(status_code=400, detail="contact_id requis")
        try:
            result = await generate_for_contact(db_path, body.contact_id, settings)
        except LookupError:
            raise HTTPException(status_code=404, detail="Contact non trouvé")
        return {"success": True, **result}

    if body.action == "bulk_generate":
        result = await run_icebreakers(db_path, settings, limit=BULK_ICEBREAKER_LIMIT)
        return {"success": True, "generated": result["generated"], "errors": result["errors"]}

    raise HTTPException(status_code=400, detail="Action non reconnue")


@router.get("/icebreaker")
def icebreaker_status(db_path: Path = Depends(get_db_path)):
    return icebreaker_stats(db_path)


@router.post("/{contact_id}/status")
def update_status(
    contact_id: int,
    body: StatusRequest,
    db_path: Path = Depends(get_db_path),
):
    try:
        changed = contact_ops.set_prospection_status(db_path, contact_id, body.status)
    except LookupError:
        raise HTTPException(status_code=404, detail="Contact non trouvé")
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"contact_id": contact_id, "status": body.status, "changed": changed}
