"""Configuration loading and models."""

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class SequenceConfig(BaseModel):
    delays_days: list[int] = [0, 3, 7, 14]
    max_emails_per_run: int = 50
    require_icebreaker: bool = True


class SendingConfig(BaseModel):
    sender_name: str = "Loïc - SoignantVoice"
    sender_email: str = "loic@soignantvoice.fr"
    reply_to: str = ""
    tags: list[str] = ["soignantvoice", "prospection"]
    sync_contacts: bool = False
    list_ids: list[int] = []


class LimitsConfig(BaseModel):
    contacts_per_run: int = 30
    roles_per_establishment: int = 2
    enrich_per_run: int = 20
    validations_per_run: int = 20
    min_validation_credits: int = 5
    icebreakers_per_run: int = 15
    hunter_confidence_threshold: int = 80
    hunter_verify_threshold: int = 80


class RateLimitConfig(BaseModel):
    hunter: float = 1.0
    zerobounce: float = 0.2
    brevo: float = 0.2
    serper: float = 0.5
    anthropic: float = 1.0
    max_retries: int = 2
    max_retry_after: float = 30.0


class IcebreakerConfig(BaseModel):
    model: str = "claude-haiku-4-5-20251001"
    max_tokens: int = 300
    company_pitch: str = (
        "SoignantVoice, une solution de transcription vocale pour les soignants "
        "en EHPAD et établissements médico-sociaux"
    )


class ReportConfig(BaseModel):
    recipient_email: str = "loic@soignantvoice.fr"
    recipient_name: str = "Loïc"
    app_url: str = "http://localhost:8000"
    hot_lead_min_opens: int = 3
    hot_lead_min_clicks: int = 1
    hot_leads_limit: int = 10


class ImportConfig(BaseModel):
    target_departments: list[str] = []
    default_region: str = "Hauts-de-France"


DEFAULT_ROLES: dict[str, list[str]] = {
    "EHPAD": ["Directeur", "IDEC", "Médecin coordonnateur", "Cadre de santé", "Responsable RH"],
    "IME": ["Directeur", "Chef de service éducatif", "Psychologue", "Médecin"],
    "ESAT": ["Directeur", "Moniteur principal", "Chef de production", "Responsable RH"],
    "FAM": ["Directeur", "Chef de service", "Cadre de santé", "Psychologue"],
    "MAS": ["Directeur", "IDEC", "Médecin coordonnateur", "Cadre de santé"],
    "SESSAD": ["Directeur", "Chef de service", "Coordinateur"],
    "SAMSAH": ["Directeur", "Chef de service", "Coordinateur"],
    "SAVS": ["Directeur", "Chef de service"],
    "ITEP": ["Directeur", "Chef de service éducatif", "Psychologue"],
    "DEFAULT": ["Directeur", "Responsable", "Adjoint de direction"],
}


class Settings(BaseModel):
    sequence: SequenceConfig = SequenceConfig()
    sending: SendingConfig = SendingConfig()
    limits: LimitsConfig = LimitsConfig()
    rate_limits: RateLimitConfig = RateLimitConfig()
    icebreaker: IcebreakerConfig = IcebreakerConfig()
    report: ReportConfig = ReportConfig()
    import_: ImportConfig = Field(default=ImportConfig(), alias="import")
    roles: dict[str, list[str]] = DEFAULT_ROLES

    model_config = {"populate_by_name": True}


DEFAULT_CONFIG_PATH = Path("config")


def load_settings(config_path: Path = DEFAULT_CONFIG_PATH) -> Settings:
    """Load settings from YAML file."""
    settings_file = config_path / "settings.yaml"

    if not settings_file.exists():
        return Settings()

    with open(settings_file) as f:
        data = yaml.safe_load(f) or {}

    settings = Settings(**data)

    # Env vars win over YAML for sender identity
    sender_email = os.environ.get("BREVO_SENDER_EMAIL", "")
    if sender_email:
        settings.sending.sender_email = sender_email
    sender_name = os.environ.get("BREVO_SENDER_NAME", "")
    if sender_name:
        settings.sending.sender_name = sender_name

    return settings


def render_template(template: str, variables: dict) -> str:
    """Render a template with variable substitution."""
    result = template
    for key, value in variables.items():
        result = result.replace(f"{{{{{key}}}}}", str(value) if value else "")
    return result


class EmailTemplate(BaseModel):
    """One step of the outreach sequence."""
    name: str
    step: int
    delay_days: int
    subject: str
    body: str


def load_templates(config_path: Path = DEFAULT_CONFIG_PATH) -> list[EmailTemplate]:
    """Load and parse templates.md into a list of EmailTemplate ordered by step."""
    templates_file = config_path / "templates.md"

    if not templates_file.exists():
        return []

    content = templates_file.read_text()

    # Split on frontmatter delimiters (---)
    sections = re.split(r'^---\s*$', content, flags=re.MULTILINE)

    templates = []
    # Process pairs of (frontmatter, body)
    i = 1
    while i < len(sections) - 1:
        frontmatter = sections[i].strip()
        body = sections[i + 1].strip()

        if not frontmatter:
            i += 2
            continue

        meta = yaml.safe_load(frontmatter)
        if not meta or "template" not in meta:
            i += 2
            continue

        lines = body.split('\n')
        subject = ""
        body_start = 0
        for idx, line in enumerate(lines):
            if line.startswith('subject:'):
                subject = line.replace('subject:', '').strip()
                body_start = idx + 1
                break

        body_content = '\n'.join(lines[body_start:]).strip()

        templates.append(EmailTemplate(
            name=meta["template"],
            step=meta.get("step", len(templates) + 1),
            delay_days=meta.get("delay_days", 0),
            subject=subject,
            body=body_content,
        ))

        i += 2

    return sorted(templates, key=lambda t: t.step)


def get_secret(name: str) -> Optional[str]:
    """Read a secret from the environment, treating blanks as unset."""
    value = os.environ.get(name, "").strip()
    return value or None
