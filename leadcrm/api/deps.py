"""Shared route dependencies: app state and bearer authentication."""

import hmac
import os
from pathlib import Path
from typing import Optional

import structlog
from fastapi import Header, HTTPException, Request

from leadcrm.core.config import Settings, get_secret

log = structlog.get_logger()


def get_db_path(request: Request) -> Path:
    return request.app.state.db_path


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_config_path(request: Request) -> Path:
    return request.app.state.config_path


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Check `Authorization: Bearer <CRON_SECRET>`.

    Without CRON_SECRET configured, requests are only let through when
    LEADCRM_ENV=development.
    """
    secret = get_secret("CRON_SECRET")
    if not secret:
        if os.getenv("LEADCRM_ENV") == "development":
            return
        log.warning("cron_secret_not_set")
        raise HTTPException(status_code=401, detail="Unauthorized")

    expected = f"Bearer {secret}".encode()
    if not authorization or not hmac.compare_digest(authorization.encode(), expected):
        raise HTTPException(status_code=401, detail="Unauthorized")
