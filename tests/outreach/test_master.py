"""Tests for the daily pipeline and its report."""

from contextlib import ExitStack
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from leadcrm.core import db
from leadcrm.core.config import Settings
from leadcrm.outreach.master import find_hot_leads, render_report_html, run_daily


def _patch_steps(stack: ExitStack, **overrides) -> dict:
    defaults = {
        "load_dataset": MagicMock(return_value=[]),
        "import_establishments": MagicMock(return_value={"new_establishments": 3, "new_contacts": 3, "errors": []}),
        "create_placeholder_contacts": MagicMock(return_value={"contacts_created": 2, "errors": []}),
        "run_enrichment": AsyncMock(return_value={"enriched": 4, "errors": []}),
        "run_validation": AsyncMock(return_value={"valid": 3, "errors": []}),
        "run_icebreakers": AsyncMock(return_value={"generated": 2, "errors": []}),
        "run_send_cycle": AsyncMock(return_value={"emails_sent": 5, "errors": []}),
    }
    defaults.update(overrides)
    for name, mock in defaults.items():
        stack.enter_context(patch(f"leadcrm.outreach.master.{name}", mock))
    return defaults


def _engaged_contact(db_path, first_name, opens, clicks, status="en_cours"):
    est_id = db.insert_establishment(db_path, f"EHPAD {first_name}", "EHPAD", "Lille")
    contact_id = db.insert_contact(db_path, est_id, "Directeur", "hunter", first_name=first_name)
    db.ensure_prospection(db_path, contact_id)
    db.set_prospection_status(db_path, contact_id, status)
    db.increment_prospection_counters(db_path, contact_id, opens=opens, clicks=clicks)
    return contact_id


def test_find_hot_leads_scores_and_filters(db_path):
    _engaged_contact(db_path, "Anne", opens=3, clicks=0)
    clicker = _engaged_contact(db_path, "Paul", opens=1, clicks=2)
    _engaged_contact(db_path, "Luc", opens=1, clicks=0)
    _engaged_contact(db_path, "Rdv", opens=9, clicks=3, status="rdv_pris")

    leads = find_hot_leads(db_path, Settings())

    assert [lead["name"] for lead in leads] == ["Paul", "Anne"]
    assert leads[0]["contact_id"] == clicker
    assert leads[0]["score"] == 60
    assert leads[0]["establishment"] == "EHPAD Paul"


def test_render_report_html_escapes_content():
    report = {
        "date": "2026-03-02T07:00:00",
        "steps": [{"name": "Envoi séquences", "status": "success"}],
        "total_new_prospects": 1,
        "total_contacts_created": 2,
        "total_emails_enriched": 3,
        "total_emails_validated": 4,
        "total_icebreakers": 5,
        "total_emails_sent": 6,
        "duration_seconds": 42,
        "hot_leads": [{"name": "Anne <b>", "establishment": "EHPAD", "score": 30}],
        "errors": ["Envoi: boom"],
    }

    body = render_report_html(report, "https://crm.example.fr")

    assert "02/03/2026" in body
    assert "Anne &lt;b&gt;" in body
    assert "Envoi: boom" in body
    assert "42s" in body
    assert 'href="https://crm.example.fr"' in body


def test_render_report_html_without_hot_leads():
    report = {
        "date": "2026-03-02T07:00:00",
        "steps": [],
        "total_new_prospects": 0,
        "total_contacts_created": 0,
        "total_emails_enriched": 0,
        "total_emails_validated": 0,
        "total_icebreakers": 0,
        "total_emails_sent": 0,
        "duration_seconds": 1,
        "hot_leads": [],
        "errors": [],
    }

    body = render_report_html(report)

    assert "Aucun hot lead" in body
    assert "Erreurs" not in body


@pytest.mark.asyncio
async def test_run_daily_aggregates_steps(db_path):
    with ExitStack() as stack:
        _patch_steps(stack)
        mock_send = stack.enter_context(patch("leadcrm.outreach.master.brevo.send_email", new_callable=AsyncMock))
        mock_slack = stack.enter_context(patch("leadcrm.outreach.master.SlackNotifier"))
        mock_slack.return_value.send_daily_report = AsyncMock(return_value=True)
        mock_send.return_value = {"message_id": "<r>"}

        report = await run_daily(db_path, Settings())

        subject = mock_send.call_args[1]["subject"]

    assert [step["status"] for step in report["steps"]] == ["success"] * 6
    assert report["total_new_prospects"] == 3
    assert report["total_contacts_created"] == 5
    assert report["total_emails_enriched"] == 4
    assert report["total_emails_validated"] == 3
    assert report["total_icebreakers"] == 2
    assert report["total_emails_sent"] == 5
    assert report["report_sent"] is True
    assert report["slack_sent"] is True
    assert report["errors"] == []
    assert "5 emails envoyés" in subject


@pytest.mark.asyncio
async def test_failing_step_does_not_stop_the_run(db_path):
    with ExitStack() as stack:
        mocks = _patch_steps(
            stack,
            run_enrichment=AsyncMock(side_effect=RuntimeError("hunter down")),
            run_validation=AsyncMock(return_value={"aborted": True, "errors": ["no credits"]}),
        )
        stack.enter_context(patch("leadcrm.outreach.master.brevo.send_email", new_callable=AsyncMock))
        mock_slack = stack.enter_context(patch("leadcrm.outreach.master.SlackNotifier"))
        mock_slack.return_value.send_daily_report = AsyncMock(return_value=False)

        report = await run_daily(db_path, Settings())

        mocks["run_send_cycle"].assert_awaited_once()

    statuses = {step["name"]: step["status"] for step in report["steps"]}
    assert statuses["Enrichissement emails"] == "error"
    assert statuses["Validation emails"] == "failed"
    assert statuses["Envoi séquences"] == "success"
    assert "Enrichissement: hunter down" in report["errors"]
    assert "Validation: no credits" in report["errors"]
    assert report["total_emails_enriched"] == 0
    assert report["total_emails_sent"] == 5


@pytest.mark.asyncio
async def test_report_email_failure_is_recorded(db_path):
    with ExitStack() as stack:
        _patch_steps(stack)
        stack.enter_context(patch(
            "leadcrm.outreach.master.brevo.send_email",
            new_callable=AsyncMock,
            side_effect=RuntimeError("quota"),
        ))
        mock_slack = stack.enter_context(patch("leadcrm.outreach.master.SlackNotifier"))
        mock_slack.return_value.send_daily_report = AsyncMock(return_value=True)

        report = await run_daily(db_path, Settings())

    assert report["report_sent"] is False
    assert report["errors"] == ["Rapport: quota"]
