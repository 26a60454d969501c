"""Scheduled job triggers, one GET per pipeline stage."""

import time
from pathlib import Path

import structlog
from fastapi import APIRouter, Depends

from leadcrm.api.deps import get_config_path, get_db_path, get_settings, require_cron_secret
from leadcrm.core.config import Settings
from leadcrm.outreach.contacts import create_placeholder_contacts
from leadcrm.outreach.enricher import run_enrichment
from leadcrm.outreach.icebreaker import run_icebreakers
from leadcrm.outreach.importer import import_establishments, load_dataset
from leadcrm.outreach.master import run_daily
from leadcrm.outreach.scheduler import run_send_cycle
from leadcrm.outreach.validator import run_validation

log = structlog.get_logger()

router = APIRouter(dependencies=[Depends(require_cron_secret)])


@router.get("/scrape-etablissements")
def scrape_establishments(
    db_path: Path = Depends(get_db_path),
    settings: Settings = Depends(get_settings),
    config_path: Path = Depends(get_config_path),
):
    results = import_establishments(db_path, load_dataset(config_path), settings)
    return {"success": True, "message": "Import completed", "results": results}


@router.get("/enrich-contacts")
async def enrich_contacts(
    db_path: Path = Depends(get_db_path),
    settings: Settings = Depends(get_settings),
):
    placeholders = create_placeholder_contacts(db_path, settings)
    results = await run_enrichment(db_path, settings)
    results["contacts_created"] = placeholders["contacts_created"]
    return {"success": True, "message": "Enrichment completed", "results": results}


@router.get("/validate-emails")
async def validate_emails(
    db_path: Path = Depends(get_db_path),
    settings: Settings = Depends(get_settings),
):
    results = await run_validation(db_path, settings)
    if results.get("aborted"):
        return {"success": False, "message": results["message"], "results": results}
    return {"success": True, "message": "Validation completed", "results": results}


@router.get("/generate-icebreakers")
async def generate_icebreakers(
    db_path: Path = Depends(get_db_path),
    settings: Settings = Depends(get_settings),
):
    results = await run_icebreakers(db_path, settings)
    return {"success": True, "message": "Ice breakers generated", "results": results}


@router.get("/send-sequences")
async def send_sequences(
    db_path: Path = Depends(get_db_path),
    settings: Settings = Depends(get_settings),
):
    results = await run_send_cycle(db_path, settings)
    return {"success": True, "results": results}


@router.get("/master")
async def master(
    db_path: Path = Depends(get_db_path),
    settings: Settings = Depends(get_settings),
    config_path: Path = Depends(get_config_path),
):
    started = time.monotonic()
    report = await run_daily(db_path, settings, config_path)
    return {
        "success": True,
        "message": "Daily automation completed",
        "duration": f"{round(time.monotonic() - started)}s",
        "report": report,
    }
