"""Email composition from sequence templates."""

import html
import re

from leadcrm.core.config import EmailTemplate, render_template

ICEBREAKER_PLACEHOLDER = "{{icebreaker}}"
GREETING_PARAGRAPH = re.compile(r"(<p[^>]*>.*?Bonjour.*?</p>)", re.IGNORECASE)


def template_variables(contact) -> dict:
    """Placeholder values for a contact row joined with its establishment."""
    return {
        "prenom": contact["first_name"] or "",
        "nom": contact["last_name"] or "",
        "poste": contact["role"] or "",
        "nom_etablissement": contact["establishment_name"] or "",
        "etablissement": contact["establishment_name"] or "",
        "type_etablissement": contact["establishment_category"] or "",
        "type": contact["establishment_category"] or "",
        "ville": contact["establishment_city"] or "",
        "icebreaker": contact["icebreaker"] or "",
    }


def insert_icebreaker(body_html: str, icebreaker: str) -> str:
    """Place the ice breaker paragraph after the greeting, or at the top."""
    paragraph = f'<p style="color: #374151; margin-bottom: 16px;">{html.escape(icebreaker)}</p>'

    if GREETING_PARAGRAPH.search(body_html):
        return GREETING_PARAGRAPH.sub(lambda m: f"{m.group(1)}\n{paragraph}", body_html, count=1)
    return paragraph + body_html


def compose_email(template: EmailTemplate, contact, include_icebreaker: bool = True) -> dict:
    """Render a template for a contact.

    Returns dict with subject, html and has_icebreaker.
    """
    variables = template_variables(contact)
    body = template.body
    icebreaker = variables["icebreaker"] if include_icebreaker else ""
    variables["icebreaker"] = html.escape(icebreaker)

    has_icebreaker = bool(icebreaker)
    if has_icebreaker and ICEBREAKER_PLACEHOLDER not in body:
        body = insert_icebreaker(body, icebreaker)

    return {
        "subject": render_template(template.subject, variables),
        "html": render_template(body, variables),
        "has_icebreaker": has_icebreaker,
    }
