"""Daily pipeline: import, enrich, validate, personalize, send, report."""

import html
import inspect
import time
from datetime import datetime, timezone
from pathlib import Path

import structlog

from leadcrm.clients import brevo
from leadcrm.core import db
from leadcrm.core.config import DEFAULT_CONFIG_PATH, Settings
from leadcrm.outreach.contacts import create_placeholder_contacts
from leadcrm.outreach.enricher import run_enrichment
from leadcrm.outreach.icebreaker import run_icebreakers
from leadcrm.outreach.importer import import_establishments, load_dataset
from leadcrm.outreach.scheduler import run_send_cycle
from leadcrm.outreach.validator import run_validation
from leadcrm.services.slack_notifier import SlackNotifier

log = structlog.get_logger()

OPEN_SCORE = 10
CLICK_SCORE = 25


def find_hot_leads(db_path: Path, settings: Settings) -> list[dict]:
    """Contacts who opened or clicked enough to deserve a call."""
    report = settings.report
    rows = db.get_hot_leads(
        db_path,
        min_opens=report.hot_lead_min_opens,
        min_clicks=report.hot_lead_min_clicks,
        limit=report.hot_leads_limit,
    )
    return [
        {
            "contact_id": row["contact_id"],
            "name": f"{row['first_name'] or ''} {row['last_name'] or ''}".strip() or "Inconnu",
            "establishment": row["establishment_name"] or "Inconnu",
            "opens": row["open_count"],
            "clicks": row["click_count"],
            "score": row["open_count"] * OPEN_SCORE + row["click_count"] * CLICK_SCORE,
        }
        for row in rows
    ]


def render_report_html(report: dict, app_url: str = "") -> str:
    """HTML body of the daily report email."""
    esc = html.escape

    if report["hot_leads"]:
        hot_leads_html = "".join(
            f"<li>🔥 <strong>{esc(lead['name'])}</strong> - {esc(lead['establishment'])} "
            f"(score: {lead['score']})</li>"
            for lead in report["hot_leads"]
        )
    else:
        hot_leads_html = "<li>Aucun hot lead aujourd'hui</li>"

    icons = {"success": "✅", "failed": "❌"}
    steps_html = "".join(
        f'<tr><td style="padding: 8px; border-bottom: 1px solid #eee;">{esc(step["name"])}</td>'
        f'<td style="padding: 8px; border-bottom: 1px solid #eee;">'
        f'{icons.get(step["status"], "⚠️")} {step["status"]}</td></tr>'
        for step in report["steps"]
    )

    errors_html = ""
    if report["errors"]:
        items = "".join(f"<li>{esc(error)}</li>" for error in report["errors"])
        errors_html = (
            '<div style="background: #fee2e2; border-radius: 8px; padding: 20px; margin: 20px 0;">'
            '<h2 style="margin-top: 0; color: #dc2626;">⚠️ Erreurs</h2>'
            f"<ul>{items}</ul></div>"
        )

    dashboard = f'<p style="color: #666; font-size: 12px;"><a href="{esc(app_url)}">Ouvrir le dashboard</a></p>' if app_url else ""
    day = datetime.fromisoformat(report["date"]).strftime("%d/%m/%Y")

    return f"""<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #7c3aed;">📊 Rapport de prospection</h1>
  <p style="color: #666;">Rapport automatique du {day}</p>
  <div style="background: #f9fafb; border-radius: 8px; padding: 20px; margin: 20px 0;">
    <h2 style="margin-top: 0;">📈 Résumé</h2>
    <table style="width: 100%;">
      <tr><td>Nouveaux établissements</td><td><strong>{report['total_new_prospects']}</strong></td></tr>
      <tr><td>Contacts créés</td><td><strong>{report['total_contacts_created']}</strong></td></tr>
      <tr><td>Emails enrichis</td><td><strong>{report['total_emails_enriched']}</strong></td></tr>
      <tr><td>Emails validés</td><td><strong>{report['total_emails_validated']}</strong></td></tr>
      <tr><td>Ice breakers générés</td><td><strong>{report['total_icebreakers']}</strong></td></tr>
      <tr><td>Emails envoyés</td><td><strong>{report['total_emails_sent']}</strong></td></tr>
      <tr><td>Durée totale</td><td><strong>{report['duration_seconds']}s</strong></td></tr>
    </table>
  </div>
  <div style="background: #fef3c7; border-radius: 8px; padding: 20px; margin: 20px 0;">
    <h2 style="margin-top: 0;">🔥 Hot Leads à contacter</h2>
    <ul>{hot_leads_html}</ul>
  </div>
  <div style="margin: 20px 0;">
    <h2>⚙️ Détail des étapes</h2>
    <table style="width: 100%; border-collapse: collapse;">{steps_html}</table>
  </div>
  {errors_html}
  {dashboard}
</div>"""


async def send_report_email(report: dict, settings: Settings) -> bool:
    recipient = settings.report
    subject = (
        f"📊 Prospection - {report['total_emails_sent']} emails envoyés | "
        f"{len(report['hot_leads'])} hot leads"
    )
    try:
        await brevo.send_email(
            to=[{"email": recipient.recipient_email, "name": recipient.recipient_name}],
            subject=subject,
            html_content=render_report_html(report, recipient.app_url),
            sender={"name": settings.sending.sender_name, "email": settings.sending.sender_email},
            tags=["rapport"],
        )
        return True
    except Exception as e:
        log.error("daily_report_send_failed", error=str(e))
        report["errors"].append(f"Rapport: {e}")
        return False


async def _run_step(report: dict, name: str, label: str, func, *args, **kwargs) -> dict:
    """Run one pipeline step, recording its outcome without letting it stop the run."""
    log.info("daily_step_started", step=name)
    try:
        result = func(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
    except Exception as e:
        log.error("daily_step_error", step=name, error=str(e))
        report["steps"].append({"name": name, "status": "error", "details": str(e)})
        report["errors"].append(f"{label}: {e}")
        return {}

    status = "failed" if result.get("aborted") else "success"
    report["steps"].append({"name": name, "status": status, "details": result})
    for error in result.get("errors") or []:
        report["errors"].append(f"{label}: {error}")
    return result


async def run_daily(
    db_path: Path,
    settings: Settings,
    config_path: Path = DEFAULT_CONFIG_PATH,
) -> dict:
    """Run every stage of the daily automation and send the report.

    Each stage is isolated: a failure is recorded and the next stage runs.
    """
    started = time.monotonic()
    report = {
        "date": datetime.now(timezone.utc).isoformat(),
        "steps": [],
        "total_new_prospects": 0,
        "total_contacts_created": 0,
        "total_emails_enriched": 0,
        "total_emails_validated": 0,
        "total_icebreakers": 0,
        "total_emails_sent": 0,
        "hot_leads": [],
        "errors": [],
    }

    def import_dataset():
        return import_establishments(db_path, load_dataset(config_path), settings)

    imported = await _run_step(report, "Import établissements", "Import", import_dataset)
    report["total_new_prospects"] = imported.get("new_establishments", 0)

    placeholders = await _run_step(
        report, "Création contacts", "Contacts",
        create_placeholder_contacts, db_path, settings,
    )
    report["total_contacts_created"] = (
        imported.get("new_contacts", 0) + placeholders.get("contacts_created", 0)
    )

    enriched = await _run_step(
        report, "Enrichissement emails", "Enrichissement",
        run_enrichment, db_path, settings,
    )
    report["total_emails_enriched"] = enriched.get("enriched", 0)

    validated = await _run_step(
        report, "Validation emails", "Validation",
        run_validation, db_path, settings,
    )
    report["total_emails_validated"] = validated.get("valid", 0)

    icebreakers = await _run_step(
        report, "Ice breakers", "Ice breakers",
        run_icebreakers, db_path, settings,
    )
    report["total_icebreakers"] = icebreakers.get("generated", 0)

    sent = await _run_step(
        report, "Envoi séquences", "Envoi",
        run_send_cycle, db_path, settings,
    )
    report["total_emails_sent"] = sent.get("emails_sent", 0)

    try:
        report["hot_leads"] = find_hot_leads(db_path, settings)
    except Exception as e:
        log.error("hot_leads_error", error=str(e))
        report["errors"].append(f"Hot leads: {e}")

    report["duration_seconds"] = round(time.monotonic() - started)
    report["report_sent"] = await send_report_email(report, settings)
    report["slack_sent"] = await SlackNotifier().send_daily_report(report)

    log.info(
        "daily_run_complete",
        duration=report["duration_seconds"],
        sent=report["total_emails_sent"],
        hot_leads=len(report["hot_leads"]),
        errors=len(report["errors"]),
    )
    return report
