"""Brevo webhook receiver. Always answers 200 so Brevo does not retry."""

from datetime import datetime, timezone
from pathlib import Path

import structlog
from fastapi import APIRouter, Depends, Request

from leadcrm.api.deps import get_db_path
from leadcrm.outreach.webhook import handle_brevo_event

log = structlog.get_logger()

router = APIRouter()


@router.post("/brevo")
async def brevo_webhook(request: Request, db_path: Path = Depends(get_db_path)):
    try:
        payload = await request.json()
        return handle_brevo_event(db_path, payload)
    except Exception as e:
        log.error("webhook_error", error=str(e))
        return {"received": True, "error": str(e)}


@router.get("/brevo")
def brevo_webhook_status():
    return {
        "status": "active",
        "message": "Brevo webhook",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
