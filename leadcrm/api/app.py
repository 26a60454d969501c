"""FastAPI application: cron triggers, contact actions, sending, Brevo webhook."""

from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from leadcrm.api.routes import contacts, cron, emails, webhook
from leadcrm.core.config import DEFAULT_CONFIG_PATH, load_settings
from leadcrm.core.db import init_db, resolve_db_path
from leadcrm.core.ratelimit import configure_rate_limits


def create_app(db_path: Optional[Path] = None, config_path: Optional[Path] = None) -> FastAPI:
    """Build the API around one database and config directory."""
    config_path = config_path or DEFAULT_CONFIG_PATH
    db_path = db_path or resolve_db_path()
    settings = load_settings(config_path)

    init_db(db_path)
    configure_rate_limits(settings)

    app = FastAPI(
        title="Lead CRM API",
        description="Prospection automation for care establishments.",
        version="1.0.0",
    )
    app.state.db_path = db_path
    app.state.config_path = config_path
    app.state.settings = settings

    app.include_router(cron.router, prefix="/api/cron", tags=["Cron"])
    app.include_router(contacts.router, prefix="/api/contacts", tags=["Contacts"])
    app.include_router(emails.router, prefix="/api/emails", tags=["Emails"])
    app.include_router(webhook.router, prefix="/api/webhook", tags=["Webhook"])

    @app.get("/")
    def read_root():
        return {"message": "Lead CRM API is running."}

    return app
