"""Personalized ice breakers: Google research via Serper, writing via Claude."""

import os
from pathlib import Path
from typing import Optional

import anthropic
import structlog

from leadcrm.clients import serper
from leadcrm.core import db
from leadcrm.core.config import Settings
from leadcrm.core.models import VALIDE
from leadcrm.core.ratelimit import get_limiter

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

log = structlog.get_logger()


def build_prompt(contact, search_results: list[str], settings: Settings) -> str:
    """Build the ice breaker prompt for one contact."""
    name = f"{contact['first_name'] or ''} {contact['last_name'] or ''}".strip()
    research = "\n\n".join(search_results) if search_results else "Aucune information spécifique trouvée."
    pitch = settings.icebreaker.company_pitch

    return f"""Tu es un expert en prospection B2B pour {pitch}.

CONTEXTE DU CONTACT:
- Établissement: {contact['establishment_name']}
- Type: {contact['establishment_category']}
- Ville: {contact['establishment_city'] or ''}
- Poste du contact: {contact['role']}
- Nom: {name}
- Site web: {contact['establishment_website'] or 'Non trouvé'}

INFORMATIONS TROUVÉES SUR INTERNET:
{research}

MISSION:
Génère un "ice breaker" personnalisé de 2-3 phrases MAXIMUM pour débuter un email de prospection.

RÈGLES:
1. Mentionne quelque chose de SPÉCIFIQUE à l'établissement ou à la personne (actualité, projet, rénovation, certification, événement, agrandissement, nouveau service...)
2. Montre que tu as fait des recherches, sans être intrusif
3. Fais le lien naturellement avec les problématiques des transmissions soignantes
4. Ton chaleureux et professionnel, comme un vrai humain
5. PAS de formules génériques type "J'espère que vous allez bien"
6. Si pas d'info spécifique trouvée, utilise le contexte local (ville, région) ou le type d'établissement

EXEMPLES DE BONS ICE BREAKERS:
- "J'ai vu que votre EHPAD a obtenu la certification Qualité de vie au travail en 2023, félicitations ! C'est en discutant avec des directeurs engagés comme vous sur le bien-être des équipes que nous avons créé notre solution."
- "Suite à l'agrandissement de votre IME annoncé dans La Voix du Nord, vous devez gérer une équipe encore plus grande. Les transmissions quotidiennes doivent représenter un défi logistique !"

Réponds UNIQUEMENT avec le ice breaker, rien d'autre."""


def search_queries(contact, extended: bool = False) -> list[str]:
    name = contact["establishment_name"]
    city = contact["establishment_city"] or ""
    queries = [f'"{name}" {city}'.strip()]

    if extended:
        queries.append(f"{name} actualité projet")
        if contact["last_name"]:
            person = f"{contact['first_name'] or ''} {contact['last_name']}".strip()
            queries.append(f'"{person}" {name}')

    return queries


async def gather_context(contact, extended: bool = False) -> list[str]:
    """Run the Google searches for a contact and deduplicate the results."""
    results: list[str] = []
    for query in search_queries(contact, extended):
        for line in await serper.search(query):
            if line not in results:
                results.append(line)
    return results


def summarize_context(search_results: list[str]) -> str:
    return " | ".join(search_results[:3])[:500]


async def generate_icebreaker(contact, search_results: list[str], settings: Settings) -> Optional[str]:
    """Ask Claude for an ice breaker. Returns None if unavailable or on error."""
    if not ANTHROPIC_API_KEY:
        log.warning("anthropic_api_key_not_set")
        return None

    prompt = build_prompt(contact, search_results, settings)

    try:
        await get_limiter("anthropic").wait()
        client = anthropic.AsyncAnthropic(api_key=ANTHROPIC_API_KEY)

        response = await client.messages.create(
            model=settings.icebreaker.model,
            max_tokens=settings.icebreaker.max_tokens,
            messages=[{"role": "user", "content": prompt}]
        )

        text = response.content[0].text.strip() if response.content else ""
        return text.strip('"').strip() or None

    except Exception as e:
        log.error("claude_error", contact_id=contact["id"], error=str(e))
        return None


async def generate_for_contact(db_path: Path, contact_id: int, settings: Settings) -> dict:
    """Research and write an ice breaker for one contact, storing it when produced.

    Raises:
        LookupError: unknown contact.
    """
    contact = db.get_contact(db_path, contact_id)
    if contact is None:
        raise LookupError(f"Contact {contact_id} not found")

    search_results = await gather_context(contact, extended=True)
    icebreaker = await generate_icebreaker(contact, search_results, settings)
    context = summarize_context(search_results)

    if icebreaker:
        db.update_contact_icebreaker(db_path, contact_id, icebreaker, context)
        log.info("icebreaker_generated", contact_id=contact_id, results=len(search_results))

    return {
        "icebreaker": icebreaker,
        "context": context,
        "search_results_count": len(search_results),
    }


async def run_icebreakers(db_path: Path, settings: Settings, limit: Optional[int] = None) -> dict:
    """Write ice breakers for validated contacts that have none.

    Returns dict with processed, generated and errors.
    """
    limit = limit or settings.limits.icebreakers_per_run
    results = {"processed": 0, "generated": 0, "errors": []}

    if not ANTHROPIC_API_KEY:
        log.warning("anthropic_api_key_not_set")
        return results

    for contact in db.get_contacts_for_icebreaker(db_path, limit):
        results["processed"] += 1
        try:
            search_results = await gather_context(contact)
            icebreaker = await generate_icebreaker(contact, search_results, settings)
            if icebreaker:
                db.update_contact_icebreaker(
                    db_path, contact["id"], icebreaker, summarize_context(search_results)
                )
                results["generated"] += 1
                log.info("icebreaker_generated", contact_id=contact["id"], results=len(search_results))
        except Exception as e:
            log.error("icebreaker_error", contact_id=contact["id"], error=str(e))
            results["errors"].append(f"{contact['establishment_name']}: {e}")

    return results


def icebreaker_stats(db_path: Path) -> dict:
    total = db.count_contacts(db_path, email_status=VALIDE)
    with_icebreaker = db.count_contacts(db_path, email_status=VALIDE, with_icebreaker=True)
    return {
        "total_valid_contacts": total,
        "with_icebreaker": with_icebreaker,
        "pending": total - with_icebreaker,
        "apis": {
            "anthropic": bool(ANTHROPIC_API_KEY),
            "serper": bool(serper.SERPER_API_KEY),
        },
    }
