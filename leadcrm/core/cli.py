"""Command-line interface for the lead CRM."""

import asyncio
from pathlib import Path
from typing import Optional

import click
import structlog

from leadcrm.clients import hunter, zerobounce
from leadcrm.core.config import DEFAULT_CONFIG_PATH, load_settings
from leadcrm.core.db import count_contacts, get_contact, get_pipeline_stats, init_db, resolve_db_path
from leadcrm.core.ratelimit import configure_rate_limits
from leadcrm.outreach.contacts import create_placeholder_contacts
from leadcrm.outreach.enricher import run_enrichment
from leadcrm.outreach.icebreaker import run_icebreakers
from leadcrm.outreach.importer import (
    create_example_excel,
    import_establishments,
    load_dataset,
    read_establishments_excel,
)
from leadcrm.outreach.master import run_daily
from leadcrm.outreach.scheduler import install_templates, run_send_cycle
from leadcrm.outreach.validator import run_validation
from leadcrm.outreach.webhook import sync_email_events

# Configure structlog for CLI output
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer()
    ]
)

log = structlog.get_logger()


def db_option(func):
    return click.option("--db", "db_path", type=click.Path(), default=None,
                        help="Database path (default: $LEADCRM_DB_PATH or data/crm.db)")(func)


def config_option(func):
    return click.option("--config", "config_path", type=click.Path(), default=str(DEFAULT_CONFIG_PATH),
                        help="Config directory path")(func)


def _setup(db_path: Optional[str], config_path: str):
    db = resolve_db_path(db_path)
    config = Path(config_path)
    init_db(db)
    settings = load_settings(config)
    configure_rate_limits(settings)
    return db, config, settings


def _echo_errors(errors: list[str]) -> None:
    for error in errors[:10]:
        click.echo(f"  ✗ {error}")
    if len(errors) > 10:
        click.echo(f"  ... and {len(errors) - 10} more")


@click.group()
def cli():
    """Lead CRM - prospection automation for care establishments."""


@cli.command()
@db_option
@config_option
def init(db_path: Optional[str], config_path: str):
    """Create the database and install the email sequence templates."""
    db, config, _ = _setup(db_path, config_path)
    count = install_templates(db, config)
    click.echo(f"Database ready: {db}")
    click.echo(f"Templates installed: {count}")


@cli.command("import")
@db_option
@config_option
@click.option("--excel", "excel_path", type=click.Path(exists=True), default=None,
              help="Import from a FINESS Excel export instead of the bundled dataset")
@click.option("--example", "example_path", type=click.Path(), default=None,
              help="Write an example Excel file and exit")
def import_cmd(db_path: Optional[str], config_path: str, excel_path: Optional[str], example_path: Optional[str]):
    """Import establishments and create their Directeur contacts."""
    if example_path:
        create_example_excel(Path(example_path))
        click.echo(f"Example file written to {example_path}")
        return

    db, config, settings = _setup(db_path, config_path)

    if excel_path:
        records = read_establishments_excel(Path(excel_path))
    else:
        records = load_dataset(config)

    result = import_establishments(db, records, settings)

    click.echo(f"Establishments read:     {result['fetched']}")
    click.echo(f"In target departments:   {result['filtered']}")
    click.echo(f"New establishments:      {result['new_establishments']}")
    click.echo(f"New contacts:            {result['new_contacts']}")
    _echo_errors(result["errors"])


@cli.command()
@db_option
@config_option
@click.option("--limit", type=int, default=None, help="Establishments to process")
def contacts(db_path: Optional[str], config_path: str, limit: Optional[int]):
    """Create placeholder contacts for establishments lacking them."""
    db, _, settings = _setup(db_path, config_path)
    result = create_placeholder_contacts(db, settings, limit=limit)
    click.echo(f"Establishments: {result['establishments']}")
    click.echo(f"Contacts created: {result['contacts_created']}")


@cli.command()
@db_option
@config_option
@click.option("--limit", type=int, default=None, help="Contacts to process")
def enrich(db_path: Optional[str], config_path: str, limit: Optional[int]):
    """Find email addresses with Hunter."""
    db, _, settings = _setup(db_path, config_path)
    result = asyncio.run(run_enrichment(db, settings, limit=limit))
    click.echo(f"Processed: {result['processed']}")
    click.echo(f"Enriched:  {result['enriched']}")
    click.echo(f"Skipped:   {result['skipped']}")
    _echo_errors(result["errors"])


@cli.command()
@db_option
@config_option
@click.option("--limit", type=int, default=None, help="Contacts to process")
@click.option("--batch", is_flag=True, help="Use the ZeroBounce batch endpoint")
def validate(db_path: Optional[str], config_path: str, limit: Optional[int], batch: bool):
    """Validate found email addresses."""
    db, _, settings = _setup(db_path, config_path)
    result = asyncio.run(run_validation(db, settings, limit=limit, batch=batch))

    if result.get("aborted"):
        click.echo(f"Validation skipped: {result['message']}")
        return

    click.echo(f"Processed: {result['processed']}")
    click.echo(f"Valid:     {result['valid']}")
    click.echo(f"Invalid:   {result['invalid']}")
    click.echo(f"Risky:     {result['risky']}")
    if result.get("credits_remaining") is not None:
        click.echo(f"ZeroBounce credits left: {result['credits_remaining']}")
    _echo_errors(result["errors"])


@cli.command()
@db_option
@config_option
@click.option("--limit", type=int, default=None, help="Contacts to process")
def icebreakers(db_path: Optional[str], config_path: str, limit: Optional[int]):
    """Generate personalised ice breakers for validated contacts."""
    db, _, settings = _setup(db_path, config_path)
    result = asyncio.run(run_icebreakers(db, settings, limit=limit))
    click.echo(f"Processed: {result['processed']}")
    click.echo(f"Generated: {result['generated']}")
    _echo_errors(result["errors"])


@cli.command()
@db_option
@config_option
def send(db_path: Optional[str], config_path: str):
    """Send first emails and due follow-ups."""
    db, _, settings = _setup(db_path, config_path)
    result = asyncio.run(run_send_cycle(db, settings))

    for detail in result["details"]:
        click.echo(f"  ✓ {detail['email']} (step {detail['step']})")

    click.echo(f"\nChecked: {result['checked']}")
    click.echo(f"Emails sent: {result['emails_sent']}")
    _echo_errors(result["errors"])

    if result["daily_limit_reached"]:
        click.echo("\n⚠️  Run limit reached. Remaining emails go out next run.")


@cli.command("sync-events")
@db_option
@click.option("--limit", type=int, default=50, help="Emails to check")
@click.option("--days", type=int, default=7, help="Look back this many days")
def sync_events(db_path: Optional[str], limit: int, days: int):
    """Poll Brevo for delivery, open and click events."""
    db = resolve_db_path(db_path)
    init_db(db)
    result = asyncio.run(sync_email_events(db, limit=limit, days=days))
    click.echo(f"Emails checked: {result['checked']}")
    click.echo(f"Events applied: {result['events_applied']}")
    _echo_errors(result["errors"])


@cli.command()
@db_option
@config_option
def daily(db_path: Optional[str], config_path: str):
    """Run the full daily automation and send the report."""
    db, config, settings = _setup(db_path, config_path)
    report = asyncio.run(run_daily(db, settings, config))

    click.echo("=" * 40)
    click.echo("DAILY REPORT")
    click.echo("=" * 40)
    for step in report["steps"]:
        click.echo(f"  {step['name']}: {step['status']}")
    click.echo(f"\nNew establishments: {report['total_new_prospects']}")
    click.echo(f"Contacts created:   {report['total_contacts_created']}")
    click.echo(f"Emails found:       {report['total_emails_enriched']}")
    click.echo(f"Emails validated:   {report['total_emails_validated']}")
    click.echo(f"Ice breakers:       {report['total_icebreakers']}")
    click.echo(f"Emails sent:        {report['total_emails_sent']}")
    click.echo(f"Hot leads:          {len(report['hot_leads'])}")
    _echo_errors(report["errors"])


@cli.command()
@db_option
@click.option("--contact", "contact_id", type=int, default=None, help="Show one contact")
def status(db_path: Optional[str], contact_id: Optional[int]):
    """Show pipeline status."""
    db = resolve_db_path(db_path)
    init_db(db)

    if contact_id is not None:
        contact = get_contact(db, contact_id)
        if not contact:
            click.echo(f"Contact not found: {contact_id}")
            return

        click.echo(f"\nContact #{contact['id']}: {contact['first_name'] or ''} {contact['last_name'] or ''}")
        click.echo(f"  Role: {contact['role']}")
        click.echo(f"  Establishment: {contact['establishment_name']} ({contact['establishment_city']})")
        click.echo(f"  Email: {contact['email'] or 'N/A'} [{contact['email_status']}]")
        click.echo(f"  Ice breaker: {contact['icebreaker'] or 'N/A'}")
        return

    stats = get_pipeline_stats(db)

    click.echo("\nPipeline Status")
    click.echo("───────────────")
    click.echo(f"Establishments:        {stats['establishments']}")
    click.echo("Contacts by email status:")
    for name, count in sorted(stats["email_status"].items()):
        click.echo(f"  - {name:<20} {count}")
    click.echo(f"  with ice breaker:     {count_contacts(db, with_icebreaker=True)}")
    click.echo("Prospections:")
    for name, count in sorted(stats["prospection"].items()):
        click.echo(f"  - {name:<20} {count}")
    click.echo(f"  due for follow-up:    {stats['due_for_followup']}")
    click.echo("───────────────")
    click.echo(f"Sent today: {stats['sent_today']}")


@cli.command()
def credits():
    """Show remaining Hunter and ZeroBounce credits."""

    async def fetch():
        account = await hunter.get_account()
        zb = await zerobounce.get_credits()
        return account, zb

    account, zb_credits = asyncio.run(fetch())

    if hunter.HUNTER_API_KEY:
        click.echo(f"Hunter searches left: {hunter.available_searches(account)}")
    else:
        click.echo("Hunter: HUNTER_API_KEY not set")

    if zerobounce.ZEROBOUNCE_API_KEY:
        click.echo(f"ZeroBounce credits:   {zb_credits}")
    else:
        click.echo("ZeroBounce: ZEROBOUNCE_API_KEY not set")


@cli.command()
@db_option
@config_option
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", type=int, default=8000, help="Port")
def serve(db_path: Optional[str], config_path: str, host: str, port: int):
    """Run the HTTP API (cron triggers, webhook, contact actions)."""
    import uvicorn

    from leadcrm.api.app import create_app

    app = create_app(resolve_db_path(db_path), Path(config_path))
    uvicorn.run(app, host=host, port=port)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
