#!/usr/bin/env python3
"""Daily automation wrapper: import, contacts, enrich, validate, ice breakers, send, report."""

import asyncio
from datetime import datetime
from dotenv import load_dotenv

load_dotenv()

import structlog

from leadcrm.core.config import DEFAULT_CONFIG_PATH, load_settings
from leadcrm.core.db import init_db, resolve_db_path
from leadcrm.core.ratelimit import configure_rate_limits
from leadcrm.outreach.master import run_daily

log = structlog.get_logger()


async def main():
    start_time = datetime.now()
    log.info("daily_run_started", time=start_time.isoformat())

    db_path = resolve_db_path()
    init_db(db_path)
    settings = load_settings(DEFAULT_CONFIG_PATH)
    configure_rate_limits(settings)

    report = await run_daily(db_path, settings, DEFAULT_CONFIG_PATH)

    for step in report["steps"]:
        log.info("daily_step", name=step["name"], status=step["status"])

    elapsed = (datetime.now() - start_time).total_seconds()
    log.info("daily_run_completed", elapsed_seconds=elapsed, errors=len(report["errors"]))


if __name__ == "__main__":
    asyncio.run(main())
