"""Slack notification service for the daily prospection run."""

import os
from typing import Optional

import httpx
import structlog

log = structlog.get_logger()


class SlackNotifier:
    """Service for sending Slack notifications."""

    def __init__(self, webhook_url: Optional[str] = None):
        """Initialize with webhook URL."""
        self.webhook_url = webhook_url or os.getenv("SLACK_WEBHOOK_URL")

    def build_blocks(self, report: dict) -> list[dict]:
        """Block Kit layout for a daily report."""
        ok = not report.get("errors")
        status_emoji = "✅" if ok else "⚠️"

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"{status_emoji} Prospection quotidienne terminée",
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Nouveaux établissements:*\n{report.get('total_new_prospects', 0)}"},
                    {"type": "mrkdwn", "text": f"*Emails enrichis:*\n{report.get('total_emails_enriched', 0)}"},
                    {"type": "mrkdwn", "text": f"*Emails validés:*\n{report.get('total_emails_validated', 0)}"},
                    {"type": "mrkdwn", "text": f"*Emails envoyés:*\n{report.get('total_emails_sent', 0)}"},
                ]
            }
        ]

        hot_leads = report.get("hot_leads") or []
        if hot_leads:
            lines = "\n".join(
                f"🔥 *{lead['name']}* ({lead['establishment']}) score {lead['score']}"
                for lead in hot_leads[:5]
            )
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Hot leads:*\n{lines}"}
            })

        errors = report.get("errors") or []
        if errors:
            error_text = "\n".join(f"• {e}" for e in errors[:5])
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Issues:*\n{error_text}"}
            })

        return blocks

    async def send_daily_report(self, report: dict) -> bool:
        """Post the daily report summary to Slack.

        Returns:
            True if sent successfully
        """
        if not self.webhook_url:
            log.warning("slack_webhook_not_configured")
            return False

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(
                    self.webhook_url,
                    json={"blocks": self.build_blocks(report)},
                )
                response.raise_for_status()
                log.info(
                    "slack_report_sent",
                    sent=report.get("total_emails_sent", 0),
                    hot_leads=len(report.get("hot_leads") or []),
                )
                return True

        except Exception as e:
            log.error("slack_send_error", error=str(e))
            return False
