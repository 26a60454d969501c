"""SQLite database operations."""

import os
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from leadcrm.core.models import (
    A_PROSPECTER,
    A_TROUVER,
    A_VERIFIER,
    EN_COURS,
    TROUVE,
    VALIDE,
    check_email_status,
    check_prospection_status,
    next_delivery_status,
)

DEFAULT_DB_PATH = Path("data/crm.db")


def resolve_db_path(value: Optional[str] = None) -> Path:
    """Database path from an explicit value, LEADCRM_DB_PATH, or the default."""
    return Path(value or os.getenv("LEADCRM_DB_PATH") or DEFAULT_DB_PATH)


CONTACT_SELECT = """
    SELECT c.*,
           e.name AS establishment_name,
           e.category AS establishment_category,
           e.city AS establishment_city,
           e.department AS establishment_department,
           e.website AS establishment_website
    FROM contacts c
    JOIN establishments e ON e.id = c.establishment_id
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def establishment_key(name: str, city: Optional[str]) -> str:
    """Dedupe key for an establishment: case-insensitive name + city."""
    return f"{name.strip()}-{(city or '').strip()}".casefold()


def get_connection(db_path: Path = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Get a database connection with row factory."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Initialize database with schema."""
    conn = get_connection(db_path)

    conn.executescript("""
        CREATE TABLE IF NOT EXISTS establishments (
            id INTEGER PRIMARY KEY,
            dedupe_key TEXT UNIQUE NOT NULL,
            name TEXT NOT NULL,
            category TEXT NOT NULL,
            city TEXT,
            postal_code TEXT,
            department TEXT,
            region TEXT,
            phone TEXT,
            website TEXT,
            created_at TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS contacts (
            id INTEGER PRIMARY KEY,
            establishment_id INTEGER NOT NULL REFERENCES establishments(id),
            role TEXT NOT NULL,
            first_name TEXT,
            last_name TEXT,
            email TEXT,
            email_status TEXT NOT NULL DEFAULT 'a_trouver',
            email_validated_at TIMESTAMP,
            email_validation_result TEXT,

            -- Ice breaker
            icebreaker TEXT,
            icebreaker_context TEXT,
            icebreaker_generated_at TIMESTAMP,

            source TEXT,
            created_at TIMESTAMP,
            updated_at TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS prospections (
            id INTEGER PRIMARY KEY,
            contact_id INTEGER UNIQUE NOT NULL REFERENCES contacts(id),
            status TEXT NOT NULL DEFAULT 'a_prospecter',

            -- Sequence state
            sequence_step INTEGER NOT NULL DEFAULT 0,
            sequence_started_at TIMESTAMP,
            sequence_completed_at TIMESTAMP,
            last_contact_at TIMESTAMP,
            next_contact_at TIMESTAMP,

            emails_sent_count INTEGER NOT NULL DEFAULT 0,
            open_count INTEGER NOT NULL DEFAULT 0,
            click_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP,
            updated_at TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS emails_sent (
            id INTEGER PRIMARY KEY,
            contact_id INTEGER REFERENCES contacts(id),
            prospection_id INTEGER REFERENCES prospections(id),
            message_id TEXT,
            template_name TEXT,
            subject TEXT,
            to_email TEXT NOT NULL,
            step INTEGER,
            status TEXT NOT NULL DEFAULT 'sent',
            is_first_email INTEGER NOT NULL DEFAULT 0,
            has_icebreaker INTEGER NOT NULL DEFAULT 0,
            opened_at TIMESTAMP,
            clicked_at TIMESTAMP,
            clicked_link TEXT,
            open_count INTEGER NOT NULL DEFAULT 0,
            click_count INTEGER NOT NULL DEFAULT 0,
            sent_at TIMESTAMP,
            updated_at TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS email_templates (
            id INTEGER PRIMARY KEY,
            step INTEGER UNIQUE NOT NULL,
            name TEXT NOT NULL,
            subject TEXT NOT NULL,
            body_html TEXT NOT NULL,
            delay_days INTEGER NOT NULL DEFAULT 0
        );

        CREATE INDEX IF NOT EXISTS idx_contacts_establishment ON contacts(establishment_id);
        CREATE INDEX IF NOT EXISTS idx_contacts_email_status ON contacts(email_status);
        CREATE INDEX IF NOT EXISTS idx_prospections_next ON prospections(next_contact_at);
        CREATE INDEX IF NOT EXISTS idx_emails_sent_message ON emails_sent(message_id);
        CREATE INDEX IF NOT EXISTS idx_emails_sent_to ON emails_sent(to_email);
    """)

    conn.commit()
    conn.close()


# --- Establishments ---------------------------------------------------------


def insert_establishment(
    db_path: Path,
    name: str,
    category: str,
    city: Optional[str],
    postal_code: Optional[str] = None,
    department: Optional[str] = None,
    region: Optional[str] = None,
    phone: Optional[str] = None,
    website: Optional[str] = None,
) -> Optional[int]:
    """Insert an establishment. Returns its id or None if (name, city) exists."""
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(
            """
            INSERT INTO establishments
            (dedupe_key, name, category, city, postal_code, department, region, phone, website, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (establishment_key(name, city), name, category, city, postal_code,
             department, region, phone, website or None, _now())
        )
        conn.commit()
        return cursor.lastrowid
    except sqlite3.IntegrityError:
        return None
    finally:
        conn.close()


def get_establishment_keys(db_path: Path) -> set[str]:
    conn = get_connection(db_path)
    cursor = conn.execute("SELECT dedupe_key FROM establishments")
    keys = {row[0] for row in cursor.fetchall()}
    conn.close()
    return keys


def get_establishment(db_path: Path, establishment_id: int) -> Optional[sqlite3.Row]:
    conn = get_connection(db_path)
    cursor = conn.execute("SELECT * FROM establishments WHERE id = ?", (establishment_id,))
    row = cursor.fetchone()
    conn.close()
    return row


def update_establishment_website(db_path: Path, establishment_id: int, website: str) -> None:
    """Backfill the website; the only field that changes after import."""
    conn = get_connection(db_path)
    conn.execute(
        "UPDATE establishments SET website = ? WHERE id = ?",
        (website, establishment_id)
    )
    conn.commit()
    conn.close()


def get_establishments_without_contacts(db_path: Path, limit: int) -> list[sqlite3.Row]:
    conn = get_connection(db_path)
    cursor = conn.execute(
        """
        SELECT e.* FROM establishments e
        WHERE NOT EXISTS (SELECT 1 FROM contacts c WHERE c.establishment_id = e.id)
        ORDER BY e.id
        LIMIT ?
        """,
        (limit,)
    )
    rows = cursor.fetchall()
    conn.close()
    return rows


# --- Contacts ---------------------------------------------------------------


def insert_contact(
    db_path: Path,
    establishment_id: int,
    role: str,
    source: str,
    email_status: str = A_TROUVER,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email: Optional[str] = None,
) -> int:
    """Insert a contact and return its id."""
    now = _now()
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(
            """
            INSERT INTO contacts
            (establishment_id, role, first_name, last_name, email, email_status, source, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (establishment_id, role, first_name or None, last_name or None,
             email, email_status, source, now, now)
        )
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()


def get_contact(db_path: Path, contact_id: int) -> Optional[sqlite3.Row]:
    """Get a contact joined with its establishment."""
    conn = get_connection(db_path)
    cursor = conn.execute(CONTACT_SELECT + " WHERE c.id = ?", (contact_id,))
    row = cursor.fetchone()
    conn.close()
    return row


def contact_exists(
    db_path: Path,
    establishment_id: int,
    email: Optional[str] = None,
    role: Optional[str] = None,
) -> bool:
    conn = get_connection(db_path)
    if email is not None:
        cursor = conn.execute(
            "SELECT 1 FROM contacts WHERE establishment_id = ? AND lower(email) = lower(?)",
            (establishment_id, email)
        )
    else:
        cursor = conn.execute(
            "SELECT 1 FROM contacts WHERE establishment_id = ? AND role = ?",
            (establishment_id, role)
        )
    exists = cursor.fetchone() is not None
    conn.close()
    return exists


def get_contacts_to_enrich(db_path: Path, limit: int) -> list[sqlite3.Row]:
    """Contacts still waiting for an email address."""
    conn = get_connection(db_path)
    cursor = conn.execute(
        CONTACT_SELECT + " WHERE c.email_status = ? AND c.email IS NULL ORDER BY c.id LIMIT ?",
        (A_TROUVER, limit)
    )
    rows = cursor.fetchall()
    conn.close()
    return rows


def get_contacts_to_validate(db_path: Path, limit: int) -> list[sqlite3.Row]:
    """Contacts with an address that has not been validated yet.

    Addresses that already came back risky keep a_verifier but carry
    email_validated_at, and are left for manual review.
    """
    conn = get_connection(db_path)
    cursor = conn.execute(
        CONTACT_SELECT
        + """
        WHERE c.email_status IN (?, ?)
        AND c.email IS NOT NULL
        AND c.email_validated_at IS NULL
        ORDER BY c.id LIMIT ?
        """,
        (TROUVE, A_VERIFIER, limit)
    )
    rows = cursor.fetchall()
    conn.close()
    return rows


def get_contacts_for_icebreaker(db_path: Path, limit: int) -> list[sqlite3.Row]:
    conn = get_connection(db_path)
    cursor = conn.execute(
        CONTACT_SELECT + " WHERE c.email_status = ? AND c.icebreaker IS NULL ORDER BY c.id LIMIT ?",
        (VALIDE, limit)
    )
    rows = cursor.fetchall()
    conn.close()
    return rows


def update_contact_email(
    db_path: Path,
    contact_id: int,
    email: str,
    email_status: str,
    source: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    expected_status: str = A_TROUVER,
) -> bool:
    """Store a found address. Returns False if another job moved the contact first."""
    check_email_status(expected_status, email_status)
    conn = get_connection(db_path)
    cursor = conn.execute(
        """
        UPDATE contacts
        SET email = ?, email_status = ?, source = ?,
            first_name = COALESCE(?, first_name), last_name = COALESCE(?, last_name),
            updated_at = ?
        WHERE id = ? AND email_status = ?
        """,
        (email, email_status, source, first_name or None, last_name or None,
         _now(), contact_id, expected_status)
    )
    conn.commit()
    conn.close()
    return cursor.rowcount > 0


def set_contact_email_status(
    db_path: Path,
    contact_id: int,
    new_status: str,
    validation_result: Optional[str] = None,
) -> bool:
    """Move a contact's email_status forward.

    Raises InvalidTransition for a backwards move. Returns False when the
    contact is missing or its status changed underneath us.
    """
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT email_status FROM contacts WHERE id = ?", (contact_id,)
        ).fetchone()
        if row is None:
            return False

        current = row["email_status"]
        check_email_status(current, new_status)

        now = _now()
        validated_at = now if validation_result is not None else None
        cursor = conn.execute(
            """
            UPDATE contacts
            SET email_status = ?, updated_at = ?,
                email_validated_at = COALESCE(?, email_validated_at),
                email_validation_result = COALESCE(?, email_validation_result)
            WHERE id = ? AND email_status = ?
            """,
            (new_status, now, validated_at, validation_result, contact_id, current)
        )
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


def update_contact_icebreaker(db_path: Path, contact_id: int, icebreaker: str, context: str) -> None:
    conn = get_connection(db_path)
    now = _now()
    conn.execute(
        """
        UPDATE contacts
        SET icebreaker = ?, icebreaker_context = ?, icebreaker_generated_at = ?, updated_at = ?
        WHERE id = ?
        """,
        (icebreaker, context, now, now, contact_id)
    )
    conn.commit()
    conn.close()


def count_contacts(db_path: Path, email_status: Optional[str] = None, with_icebreaker: bool = False) -> int:
    conn = get_connection(db_path)
    query = "SELECT COUNT(*) FROM contacts WHERE 1 = 1"
    params: list = []
    if email_status:
        query += " AND email_status = ?"
        params.append(email_status)
    if with_icebreaker:
        query += " AND icebreaker IS NOT NULL"
    count = conn.execute(query, params).fetchone()[0]
    conn.close()
    return count


# --- Prospections -----------------------------------------------------------


def ensure_prospection(db_path: Path, contact_id: int) -> int:
    """Return the contact's prospection id, creating an a_prospecter row if needed."""
    conn = get_connection(db_path)
    try:
        now = _now()
        conn.execute(
            """
            INSERT OR IGNORE INTO prospections (contact_id, status, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            """,
            (contact_id, A_PROSPECTER, now, now)
        )
        conn.commit()
        row = conn.execute(
            "SELECT id FROM prospections WHERE contact_id = ?", (contact_id,)
        ).fetchone()
        return row["id"]
    finally:
        conn.close()


def get_prospection(db_path: Path, contact_id: int) -> Optional[sqlite3.Row]:
    conn = get_connection(db_path)
    cursor = conn.execute("SELECT * FROM prospections WHERE contact_id = ?", (contact_id,))
    row = cursor.fetchone()
    conn.close()
    return row


def set_prospection_status(db_path: Path, contact_id: int, status: str) -> bool:
    """Move a prospection forward. Raises InvalidTransition for a backwards move."""
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT status FROM prospections WHERE contact_id = ?", (contact_id,)
        ).fetchone()
        if row is None:
            return False

        current = row["status"]
        check_prospection_status(current, status)
        cursor = conn.execute(
            "UPDATE prospections SET status = ?, updated_at = ? WHERE contact_id = ? AND status = ?",
            (status, _now(), contact_id, current)
        )
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


def get_contacts_to_start(db_path: Path, require_icebreaker: bool, limit: int) -> list[sqlite3.Row]:
    """Validated contacts that have never been emailed."""
    conn = get_connection(db_path)
    query = (
        CONTACT_SELECT
        + """
        LEFT JOIN prospections p ON p.contact_id = c.id
        WHERE c.email_status = ?
        AND c.email IS NOT NULL
        AND (p.id IS NULL OR (p.status = ? AND p.sequence_step = 0))
        """
    )
    if require_icebreaker:
        query += " AND c.icebreaker IS NOT NULL"
    query += " ORDER BY c.id LIMIT ?"
    cursor = conn.execute(query, (VALIDE, A_PROSPECTER, limit))
    rows = cursor.fetchall()
    conn.close()
    return rows


def get_prospections_due(db_path: Path, max_step: int, limit: int) -> list[sqlite3.Row]:
    """Running sequences whose next email is due, with contact data."""
    conn = get_connection(db_path)
    cursor = conn.execute(
        """
        SELECT c.*,
               e.name AS establishment_name,
               e.category AS establishment_category,
               e.city AS establishment_city,
               e.department AS establishment_department,
               e.website AS establishment_website,
               p.id AS prospection_id,
               p.sequence_step,
               p.sequence_started_at
        FROM contacts c
        JOIN establishments e ON e.id = c.establishment_id
        JOIN prospections p ON p.contact_id = c.id
        WHERE p.status = ?
        AND p.sequence_step BETWEEN 1 AND ?
        AND p.sequence_completed_at IS NULL
        AND p.next_contact_at IS NOT NULL
        AND p.next_contact_at <= ?
        AND c.email_status = ?
        ORDER BY p.next_contact_at
        LIMIT ?
        """,
        (EN_COURS, max_step, _now(), VALIDE, limit)
    )
    rows = cursor.fetchall()
    conn.close()
    return rows


def record_sequence_step(
    db_path: Path,
    contact_id: int,
    step: int,
    next_contact_at: Optional[datetime],
    completed: bool,
) -> int:
    """Advance the contact's prospection after sending `step`. Returns its id."""
    prospection_id = ensure_prospection(db_path, contact_id)
    prospection = get_prospection(db_path, contact_id)
    if prospection["status"] == A_PROSPECTER:
        set_prospection_status(db_path, contact_id, EN_COURS)

    now = _now()
    conn = get_connection(db_path)
    conn.execute(
        """
        UPDATE prospections
        SET sequence_step = ?,
            sequence_started_at = COALESCE(sequence_started_at, ?),
            sequence_completed_at = ?,
            last_contact_at = ?,
            next_contact_at = ?,
            emails_sent_count = emails_sent_count + 1,
            updated_at = ?
        WHERE id = ?
        """,
        (step, now, now if completed else None, now,
         next_contact_at.isoformat() if next_contact_at else None, now, prospection_id)
    )
    conn.commit()
    conn.close()
    return prospection_id


def increment_prospection_counters(db_path: Path, contact_id: int, opens: int = 0, clicks: int = 0) -> None:
    conn = get_connection(db_path)
    conn.execute(
        """
        UPDATE prospections
        SET open_count = open_count + ?, click_count = click_count + ?, updated_at = ?
        WHERE contact_id = ?
        """,
        (opens, clicks, _now(), contact_id)
    )
    conn.commit()
    conn.close()


def get_hot_leads(db_path: Path, min_opens: int, min_clicks: int, limit: int) -> list[sqlite3.Row]:
    """Engaged contacts that have not answered yet."""
    conn = get_connection(db_path)
    cursor = conn.execute(
        """
        SELECT p.open_count, p.click_count, c.id AS contact_id,
               c.first_name, c.last_name, e.name AS establishment_name
        FROM prospections p
        JOIN contacts c ON c.id = p.contact_id
        JOIN establishments e ON e.id = c.establishment_id
        WHERE (p.open_count >= ? OR p.click_count >= ?)
        AND p.status IN (?, ?)
        ORDER BY (p.open_count * 10 + p.click_count * 25) DESC
        LIMIT ?
        """,
        (min_opens, min_clicks, A_PROSPECTER, EN_COURS, limit)
    )
    rows = cursor.fetchall()
    conn.close()
    return rows


# --- Emails sent ------------------------------------------------------------


def insert_email_sent(
    db_path: Path,
    contact_id: Optional[int],
    to_email: str,
    subject: str,
    message_id: Optional[str],
    step: Optional[int] = None,
    prospection_id: Optional[int] = None,
    template_name: Optional[str] = None,
    is_first_email: bool = False,
    has_icebreaker: bool = False,
) -> int:
    now = _now()
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(
            """
            INSERT INTO emails_sent
            (contact_id, prospection_id, message_id, template_name, subject, to_email, step,
             status, is_first_email, has_icebreaker, sent_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 'sent', ?, ?, ?, ?)
            """,
            (contact_id, prospection_id, message_id, template_name, subject, to_email, step,
             int(is_first_email), int(has_icebreaker), now, now)
        )
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()


def find_email_sent(
    db_path: Path,
    message_id: Optional[str] = None,
    email: Optional[str] = None,
) -> Optional[sqlite3.Row]:
    """Match an outbound email by vendor message id, else latest to the recipient."""
    conn = get_connection(db_path)
    row = None
    if message_id:
        row = conn.execute(
            "SELECT * FROM emails_sent WHERE message_id = ? ORDER BY id DESC LIMIT 1",
            (message_id,)
        ).fetchone()
    if row is None and email:
        row = conn.execute(
            "SELECT * FROM emails_sent WHERE lower(to_email) = lower(?) ORDER BY sent_at DESC, id DESC LIMIT 1",
            (email,)
        ).fetchone()
    conn.close()
    return row


def get_email_sent(db_path: Path, email_id: int) -> Optional[sqlite3.Row]:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM emails_sent WHERE id = ?", (email_id,)).fetchone()
    conn.close()
    return row


def apply_email_event(
    db_path: Path,
    email_id: int,
    status: str,
    opened: bool = False,
    clicked: bool = False,
    link: Optional[str] = None,
) -> str:
    """Record a delivery event on an EmailSent row. Returns the resulting status."""
    conn = get_connection(db_path)
    try:
        row = conn.execute("SELECT status FROM emails_sent WHERE id = ?", (email_id,)).fetchone()
        new_status = next_delivery_status(row["status"], status)
        now = _now()
        conn.execute(
            """
            UPDATE emails_sent
            SET status = ?,
                opened_at = CASE WHEN ? THEN COALESCE(opened_at, ?) ELSE opened_at END,
                open_count = open_count + ?,
                clicked_at = CASE WHEN ? THEN COALESCE(clicked_at, ?) ELSE clicked_at END,
                click_count = click_count + ?,
                clicked_link = COALESCE(?, clicked_link),
                updated_at = ?
            WHERE id = ?
            """,
            (new_status, int(opened), now, int(opened), int(clicked), now, int(clicked),
             link, now, email_id)
        )
        conn.commit()
        return new_status
    finally:
        conn.close()


def get_recent_emails(db_path: Path, days: int, limit: int) -> list[sqlite3.Row]:
    """Emails with a vendor message id sent in the last `days` days."""
    since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
    conn = get_connection(db_path)
    cursor = conn.execute(
        """
        SELECT * FROM emails_sent
        WHERE message_id IS NOT NULL AND sent_at >= ?
        ORDER BY sent_at DESC
        LIMIT ?
        """,
        (since, limit)
    )
    rows = cursor.fetchall()
    conn.close()
    return rows


def count_sent_today(db_path: Path) -> int:
    """Count emails sent today."""
    conn = get_connection(db_path)
    today = datetime.now(timezone.utc).date().isoformat()
    cursor = conn.execute(
        "SELECT COUNT(*) FROM emails_sent WHERE date(sent_at) = ?",
        (today,)
    )
    count = cursor.fetchone()[0]
    conn.close()
    return count


# --- Templates --------------------------------------------------------------


def upsert_template(
    db_path: Path,
    step: int,
    name: str,
    subject: str,
    body_html: str,
    delay_days: int,
) -> None:
    conn = get_connection(db_path)
    conn.execute(
        """
        INSERT INTO email_templates (step, name, subject, body_html, delay_days)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(step) DO UPDATE SET
            name = excluded.name, subject = excluded.subject,
            body_html = excluded.body_html, delay_days = excluded.delay_days
        """,
        (step, name, subject, body_html, delay_days)
    )
    conn.commit()
    conn.close()


def get_templates(db_path: Path) -> list[sqlite3.Row]:
    conn = get_connection(db_path)
    cursor = conn.execute("SELECT * FROM email_templates ORDER BY step")
    rows = cursor.fetchall()
    conn.close()
    return rows


# --- Stats ------------------------------------------------------------------


def get_pipeline_stats(db_path: Path) -> dict:
    """Get pipeline statistics."""
    conn = get_connection(db_path)

    stats = {
        "establishments": conn.execute("SELECT COUNT(*) FROM establishments").fetchone()[0],
        "email_status": {},
        "prospection": {},
    }

    for row in conn.execute("SELECT email_status, COUNT(*) AS count FROM contacts GROUP BY email_status"):
        stats["email_status"][row["email_status"]] = row["count"]

    for row in conn.execute("SELECT status, COUNT(*) AS count FROM prospections GROUP BY status"):
        stats["prospection"][row["status"]] = row["count"]

    stats["due_for_followup"] = conn.execute(
        """
        SELECT COUNT(*) FROM prospections
        WHERE status = ? AND next_contact_at <= ? AND sequence_completed_at IS NULL
        """,
        (EN_COURS, _now())
    ).fetchone()[0]

    conn.close()

    stats["sent_today"] = count_sent_today(db_path)
    return stats
