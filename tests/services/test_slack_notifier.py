# tests/services/test_slack_notifier.py
"""Tests for Slack notifier service."""

import pytest
from unittest.mock import AsyncMock, patch, MagicMock

from leadcrm.services.slack_notifier import SlackNotifier

REPORT = {
    "total_new_prospects": 12,
    "total_emails_enriched": 8,
    "total_emails_validated": 6,
    "total_emails_sent": 5,
    "hot_leads": [{"name": "Marie Dupont", "establishment": "EHPAD Les Tilleuls", "score": 45}],
    "errors": [],
}


def _mock_client(mock_client_class):
    mock_client = AsyncMock()
    mock_response = MagicMock()
    mock_response.status_code = 200
    mock_response.raise_for_status = MagicMock()
    mock_client.post = AsyncMock(return_value=mock_response)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_class.return_value = mock_client
    return mock_client


@pytest.mark.asyncio
async def test_send_daily_report_posts_blocks():
    """send_daily_report should POST the report blocks to the webhook URL."""
    with patch("leadcrm.services.slack_notifier.httpx.AsyncClient") as mock_client_class:
        mock_client = _mock_client(mock_client_class)

        notifier = SlackNotifier(webhook_url="https://hooks.slack.com/test")
        result = await notifier.send_daily_report(REPORT)

        assert result is True
        mock_client.post.assert_called_once()

        assert mock_client.post.call_args[0][0] == "https://hooks.slack.com/test"
        blocks = mock_client.post.call_args[1]["json"]["blocks"]

        # Header, stats and hot leads
        assert len(blocks) == 3
        assert blocks[0]["type"] == "header"
        assert blocks[0]["text"]["text"].startswith("✅")
        assert "Marie Dupont" in blocks[2]["text"]["text"]


def test_build_blocks_includes_errors():
    """Errors switch the header icon and add an issues section."""
    notifier = SlackNotifier(webhook_url="https://hooks.slack.com/test")
    report = {**REPORT, "hot_leads": [], "errors": ["Envoi: boom"]}

    blocks = notifier.build_blocks(report)

    assert blocks[0]["text"]["text"].startswith("⚠️")
    assert "Issues" in blocks[-1]["text"]["text"]
    assert "Envoi: boom" in blocks[-1]["text"]["text"]


@pytest.mark.asyncio
async def test_send_daily_report_returns_false_without_webhook():
    """send_daily_report should return False if no webhook URL configured."""
    with patch.dict("os.environ", {}, clear=True):
        notifier = SlackNotifier(webhook_url=None)
        result = await notifier.send_daily_report(REPORT)
        assert result is False


@pytest.mark.asyncio
async def test_send_daily_report_handles_http_error():
    """send_daily_report should return False on HTTP errors."""
    with patch("leadcrm.services.slack_notifier.httpx.AsyncClient") as mock_client_class:
        mock_client = _mock_client(mock_client_class)
        mock_client.post = AsyncMock(side_effect=Exception("Network error"))

        notifier = SlackNotifier(webhook_url="https://hooks.slack.com/test")
        result = await notifier.send_daily_report(REPORT)

        assert result is False
