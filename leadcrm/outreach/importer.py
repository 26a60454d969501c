"""Establishment importer: static YAML dataset and FINESS Excel exports."""

import re
from pathlib import Path
from typing import Optional

import structlog
import yaml
from openpyxl import Workbook, load_workbook

from leadcrm.core.config import DEFAULT_CONFIG_PATH, Settings
from leadcrm.core.db import (
    ensure_prospection,
    establishment_key,
    get_establishment_keys,
    insert_contact,
    insert_establishment,
)
from leadcrm.core.models import A_TROUVER

log = structlog.get_logger()

DEFAULT_ROLE = "Directeur"
IMPORT_SOURCE = "import_auto"

# FINESS "categetab" codes to establishment categories
FINESS_CATEGORIES = {
    "500": "EHPAD",
    "501": "EHPA",
    "502": "EHPAD",
    "183": "IME",
    "186": "ITEP",
    "188": "IME",
    "189": "IME",
    "190": "IME",
    "194": "SESSAD",
    "195": "CMPP",
    "196": "CAMSP",
    "238": "ESAT",
    "246": "ESAT",
    "249": "ESAT",
    "252": "FAM",
    "253": "FAM",
    "255": "MAS",
    "382": "SESSAD",
    "390": "SAVS",
    "395": "SAMSAH",
    "445": "SAVS",
    "446": "SAMSAH",
    "448": "SSIAD",
    "449": "SSIAD",
}

# Accepted spreadsheet headers, ours first then FINESS names
COLUMN_ALIASES = {
    "name": ("name", "nom", "rslongue", "rs"),
    "category": ("category", "type", "categetab", "libcategetab"),
    "city": ("city", "ville", "commune"),
    "postal_code": ("postal_code", "code_postal"),
    "department": ("department", "departement", "libdepartement"),
    "phone": ("phone", "telephone"),
    "website": ("website", "site_web"),
    "routing_line": ("ligneacheminement",),
}


def load_dataset(config_path: Path = DEFAULT_CONFIG_PATH) -> list[dict]:
    """Load the static establishment list from establishments.yaml."""
    dataset_file = config_path / "establishments.yaml"

    if not dataset_file.exists():
        log.warning("establishment_dataset_missing", path=str(dataset_file))
        return []

    with open(dataset_file) as f:
        data = yaml.safe_load(f) or {}

    return data.get("establishments") or []


def map_finess_category(value) -> Optional[str]:
    """Map a FINESS category code (or an already-named category) to our type."""
    if value is None:
        return None
    text = str(value).strip()
    if text in FINESS_CATEGORIES:
        return FINESS_CATEGORIES[text]
    return text.upper() or None


def _parse_routing_line(line: str) -> tuple[Optional[str], Optional[str]]:
    """Split a FINESS routing line ("80000 AMIENS") into postal code and city."""
    match = re.search(r"(\d{5})\s*(.*)", line or "")
    if not match:
        return None, None
    return match.group(1), match.group(2).strip() or None


def read_establishments_excel(excel_path: Path) -> list[dict]:
    """Read establishments from an Excel file.

    Expected columns: name, category, city, postal_code, department, phone,
    website. FINESS extracts (rs/rslongue, categetab, commune,
    ligneacheminement, departement, telephone) are accepted as well.
    """
    wb = load_workbook(excel_path, read_only=True)
    ws = wb.active

    rows = ws.iter_rows(values_only=True)
    headers = [str(h).lower().strip() if h else "" for h in next(rows, [])]

    col_map = {}
    for field, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in headers:
                col_map[field] = headers.index(alias)
                break

    if "name" not in col_map or "category" not in col_map:
        raise ValueError(f"Excel must have name and category columns. Found: {headers}")

    def cell(row, field):
        idx = col_map.get(field)
        if idx is None or idx >= len(row) or row[idx] is None:
            return None
        return str(row[idx]).strip() or None

    records = []
    for row in rows:
        name = cell(row, "name")
        if not name:
            continue

        postal_code = cell(row, "postal_code")
        city = cell(row, "city")
        if "routing_line" in col_map:
            routed_code, routed_city = _parse_routing_line(cell(row, "routing_line") or "")
            postal_code = postal_code or routed_code
            city = city or routed_city

        records.append({
            "name": name,
            "category": map_finess_category(cell(row, "category")),
            "city": city,
            "postal_code": postal_code,
            "department": cell(row, "department"),
            "phone": cell(row, "phone"),
            "website": cell(row, "website"),
        })

    wb.close()
    return records


def matches_departments(record: dict, target_departments: list[str]) -> bool:
    """True if the record lies in one of the target departments (empty = all)."""
    if not target_departments:
        return True

    postal_code = str(record.get("postal_code") or "")
    department = str(record.get("department") or "").strip().lower()
    for target in target_departments:
        target = str(target).strip()
        if postal_code.startswith(target) or department == target.lower():
            return True
    return False


def import_establishments(db_path: Path, records: list[dict], settings: Settings) -> dict:
    """Insert new establishments, each with a Directeur contact and a prospection.

    Returns dict with fetched, filtered, new_establishments, new_contacts
    and errors.
    """
    results = {
        "fetched": len(records),
        "filtered": 0,
        "new_establishments": 0,
        "new_contacts": 0,
        "errors": [],
    }

    existing = get_establishment_keys(db_path)
    target_departments = settings.import_.target_departments

    for record in records:
        name = (record.get("name") or "").strip()
        city = record.get("city")
        if not name:
            continue

        key = establishment_key(name, city)
        if key in existing:
            continue
        if not matches_departments(record, target_departments):
            continue

        results["filtered"] += 1

        try:
            establishment_id = insert_establishment(
                db_path=db_path,
                name=name,
                category=record.get("category") or "DEFAULT",
                city=city,
                postal_code=record.get("postal_code"),
                department=record.get("department"),
                region=record.get("region") or settings.import_.default_region,
                phone=record.get("phone"),
                website=record.get("website"),
            )
        except Exception as e:
            log.error("establishment_import_error", name=name, error=str(e))
            results["errors"].append(f"Etablissement {name}: {e}")
            continue

        existing.add(key)
        if establishment_id is None:
            log.info("establishment_skipped_duplicate", name=name, city=city)
            continue

        results["new_establishments"] += 1
        log.info("establishment_imported", name=name, city=city, establishment_id=establishment_id)

        try:
            contact_id = insert_contact(
                db_path=db_path,
                establishment_id=establishment_id,
                role=DEFAULT_ROLE,
                source=IMPORT_SOURCE,
                email_status=A_TROUVER,
            )
            ensure_prospection(db_path, contact_id)
            results["new_contacts"] += 1
        except Exception as e:
            log.error("contact_create_error", establishment_id=establishment_id, error=str(e))
            results["errors"].append(f"Contact {name}: {e}")

    log.info(
        "import_complete",
        fetched=results["fetched"],
        new_establishments=results["new_establishments"],
        new_contacts=results["new_contacts"],
    )
    return results


def create_example_excel(output_path: Path) -> None:
    """Create an example Excel file showing expected format."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Etablissements"

    ws.append(["name", "category", "city", "postal_code", "department", "phone", "website"])

    ws.append([
        "EHPAD Les Tilleuls",
        "EHPAD",
        "Amiens",
        "80000",
        "Somme",
        "03 22 00 00 00",
        "www.ehpad-tilleuls.fr",
    ])
    ws.append([
        "IME Les Peupliers",
        "183",
        "Beauvais",
        "60000",
        "Oise",
        "",
        "",
    ])

    wb.save(output_path)
