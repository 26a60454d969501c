"""Tests for the SQLite store."""

from datetime import datetime, timedelta, timezone

import pytest

from leadcrm.core import db
from leadcrm.core.models import (
    A_PROSPECTER,
    A_TROUVER,
    A_VERIFIER,
    BOUNCED,
    CLICKED,
    DELIVERED,
    EN_COURS,
    INTERESSE,
    INVALIDE,
    TROUVE,
    VALIDE,
    InvalidTransition,
)


def _establishment(db_path, name="EHPAD Les Tilleuls", city="Amiens"):
    return db.insert_establishment(db_path, name, "EHPAD", city, postal_code="80000", department="Somme")


def test_insert_establishment_dedupes_case_insensitively(db_path):
    first = _establishment(db_path)
    duplicate = _establishment(db_path, name="ehpad les tilleuls", city="AMIENS")
    other_city = _establishment(db_path, city="Abbeville")

    assert first is not None
    assert duplicate is None
    assert other_city is not None
    assert db.establishment_key("EHPAD Les Tilleuls", "Amiens") in db.get_establishment_keys(db_path)


def test_contact_requires_existing_establishment(db_path):
    import sqlite3

    with pytest.raises(sqlite3.IntegrityError):
        db.insert_contact(db_path, 999, "Directeur", "manual")


def test_get_contact_joins_establishment(db_path):
    est_id = _establishment(db_path)
    contact_id = db.insert_contact(db_path, est_id, "Directeur", "import_auto")

    contact = db.get_contact(db_path, contact_id)

    assert contact["establishment_name"] == "EHPAD Les Tilleuls"
    assert contact["establishment_city"] == "Amiens"
    assert contact["email_status"] == A_TROUVER


def test_establishments_without_contacts(db_path):
    with_contact = _establishment(db_path)
    without = _establishment(db_path, name="IME Le Phare")
    db.insert_contact(db_path, with_contact, "Directeur", "import_auto")

    rows = db.get_establishments_without_contacts(db_path, limit=10)

    assert [r["id"] for r in rows] == [without]


def test_update_contact_email_guarded_by_expected_status(db_path):
    est_id = _establishment(db_path)
    contact_id = db.insert_contact(db_path, est_id, "Directeur", "import_auto")

    assert db.update_contact_email(db_path, contact_id, "a@tilleuls.fr", TROUVE, "hunter", first_name="Anne")
    # Second writer sees the status already moved
    assert not db.update_contact_email(db_path, contact_id, "b@tilleuls.fr", TROUVE, "hunter")

    contact = db.get_contact(db_path, contact_id)
    assert contact["email"] == "a@tilleuls.fr"
    assert contact["first_name"] == "Anne"
    assert contact["source"] == "hunter"


def test_set_contact_email_status_rejects_backwards(db_path):
    est_id = _establishment(db_path)
    contact_id = db.insert_contact(db_path, est_id, "Directeur", "manual", email_status=VALIDE, email="a@b.fr")

    with pytest.raises(InvalidTransition):
        db.set_contact_email_status(db_path, contact_id, A_TROUVER)

    assert db.set_contact_email_status(db_path, contact_id, INVALIDE, validation_result="brevo:hard_bounce")
    contact = db.get_contact(db_path, contact_id)
    assert contact["email_status"] == INVALIDE
    assert contact["email_validation_result"] == "brevo:hard_bounce"
    assert contact["email_validated_at"] is not None


def test_set_contact_email_status_missing_contact(db_path):
    assert db.set_contact_email_status(db_path, 42, VALIDE) is False


def test_contacts_to_validate_skips_already_checked(db_path):
    est_id = _establishment(db_path)
    fresh = db.insert_contact(db_path, est_id, "Directeur", "hunter", email_status=TROUVE, email="a@b.fr")
    risky = db.insert_contact(db_path, est_id, "IDEC", "hunter", email_status=TROUVE, email="c@b.fr")
    db.set_contact_email_status(db_path, risky, A_VERIFIER, validation_result="zerobounce:catch-all")

    rows = db.get_contacts_to_validate(db_path, limit=10)

    assert [r["id"] for r in rows] == [fresh]


def test_ensure_prospection_is_idempotent(db_path):
    est_id = _establishment(db_path)
    contact_id = db.insert_contact(db_path, est_id, "Directeur", "import_auto")

    first = db.ensure_prospection(db_path, contact_id)
    second = db.ensure_prospection(db_path, contact_id)

    assert first == second
    assert db.get_prospection(db_path, contact_id)["status"] == A_PROSPECTER


def test_set_prospection_status(db_path):
    est_id = _establishment(db_path)
    contact_id = db.insert_contact(db_path, est_id, "Directeur", "import_auto")
    db.ensure_prospection(db_path, contact_id)

    assert db.set_prospection_status(db_path, contact_id, INTERESSE)
    with pytest.raises(InvalidTransition):
        db.set_prospection_status(db_path, contact_id, EN_COURS)
    assert db.set_prospection_status(db_path, 999, INTERESSE) is False


def test_record_sequence_step_starts_and_completes(db_path):
    est_id = _establishment(db_path)
    contact_id = db.insert_contact(db_path, est_id, "Directeur", "hunter", email_status=VALIDE, email="a@b.fr")

    next_at = datetime.now(timezone.utc) + timedelta(days=3)
    db.record_sequence_step(db_path, contact_id, 1, next_at, completed=False)

    prospection = db.get_prospection(db_path, contact_id)
    assert prospection["status"] == EN_COURS
    assert prospection["sequence_step"] == 1
    assert prospection["emails_sent_count"] == 1
    assert prospection["next_contact_at"] == next_at.isoformat()
    started_at = prospection["sequence_started_at"]

    db.record_sequence_step(db_path, contact_id, 4, None, completed=True)

    prospection = db.get_prospection(db_path, contact_id)
    assert prospection["sequence_started_at"] == started_at
    assert prospection["sequence_completed_at"] is not None
    assert prospection["next_contact_at"] is None
    assert prospection["status"] == EN_COURS


def test_contacts_to_start_and_due(db_path):
    est_id = _establishment(db_path)
    ready = db.insert_contact(db_path, est_id, "Directeur", "hunter", email_status=VALIDE, email="a@b.fr")
    no_icebreaker = db.insert_contact(db_path, est_id, "IDEC", "hunter", email_status=VALIDE, email="b@b.fr")
    db.update_contact_icebreaker(db_path, ready, "Félicitations pour le nouveau jardin.", "ctx")

    assert [r["id"] for r in db.get_contacts_to_start(db_path, True, 10)] == [ready]
    assert {r["id"] for r in db.get_contacts_to_start(db_path, False, 10)} == {ready, no_icebreaker}

    db.record_sequence_step(db_path, ready, 1, datetime.now(timezone.utc) - timedelta(minutes=1), completed=False)

    assert [r["id"] for r in db.get_contacts_to_start(db_path, False, 10)] == [no_icebreaker]
    due = db.get_prospections_due(db_path, max_step=3, limit=10)
    assert [r["id"] for r in due] == [ready]
    assert due[0]["sequence_step"] == 1
    assert due[0]["establishment_name"] == "EHPAD Les Tilleuls"


def test_prospections_due_skips_future_and_invalid(db_path):
    est_id = _establishment(db_path)
    future = db.insert_contact(db_path, est_id, "Directeur", "hunter", email_status=VALIDE, email="a@b.fr")
    bounced = db.insert_contact(db_path, est_id, "IDEC", "hunter", email_status=VALIDE, email="b@b.fr")
    db.record_sequence_step(db_path, future, 1, datetime.now(timezone.utc) + timedelta(days=1), completed=False)
    db.record_sequence_step(db_path, bounced, 1, datetime.now(timezone.utc) - timedelta(days=1), completed=False)
    db.set_contact_email_status(db_path, bounced, INVALIDE)

    assert db.get_prospections_due(db_path, max_step=3, limit=10) == []


def test_apply_email_event_counts_and_never_downgrades(db_path):
    email_id = db.insert_email_sent(db_path, None, "a@b.fr", "Sujet", "<msg-1>", step=1)

    assert db.apply_email_event(db_path, email_id, CLICKED, clicked=True, link="https://x.fr") == CLICKED
    assert db.apply_email_event(db_path, email_id, DELIVERED) == CLICKED
    assert db.apply_email_event(db_path, email_id, BOUNCED) == BOUNCED

    row = db.get_email_sent(db_path, email_id)
    assert row["click_count"] == 1
    assert row["clicked_link"] == "https://x.fr"
    assert row["clicked_at"] is not None
    assert row["opened_at"] is None


def test_find_email_sent_by_message_id_then_address(db_path):
    first = db.insert_email_sent(db_path, None, "Anne@B.fr", "Sujet", "<msg-1>")
    second = db.insert_email_sent(db_path, None, "anne@b.fr", "Relance", "<msg-2>")

    assert db.find_email_sent(db_path, message_id="<msg-1>")["id"] == first
    assert db.find_email_sent(db_path, message_id="<unknown>", email="ANNE@b.fr")["id"] == second
    assert db.find_email_sent(db_path, email="nobody@b.fr") is None


def test_hot_leads_ordered_by_score(db_path):
    est_id = _establishment(db_path)
    opener = db.insert_contact(db_path, est_id, "Directeur", "hunter", email_status=VALIDE, email="a@b.fr")
    clicker = db.insert_contact(db_path, est_id, "IDEC", "hunter", email_status=VALIDE, email="b@b.fr")
    cold = db.insert_contact(db_path, est_id, "RH", "hunter", email_status=VALIDE, email="c@b.fr")
    for contact_id in (opener, clicker, cold):
        db.ensure_prospection(db_path, contact_id)
    db.increment_prospection_counters(db_path, opener, opens=3)
    db.increment_prospection_counters(db_path, clicker, opens=1, clicks=2)
    db.increment_prospection_counters(db_path, cold, opens=1)

    leads = db.get_hot_leads(db_path, min_opens=3, min_clicks=1, limit=10)

    assert [r["contact_id"] for r in leads] == [clicker, opener]


def test_upsert_template_replaces_step(db_path):
    db.upsert_template(db_path, 1, "premier", "Sujet A", "<p>A</p>", 0)
    db.upsert_template(db_path, 1, "premier_v2", "Sujet B", "<p>B</p>", 0)

    templates = db.get_templates(db_path)
    assert len(templates) == 1
    assert templates[0]["name"] == "premier_v2"


def test_pipeline_stats(db_path):
    est_id = _establishment(db_path)
    contact_id = db.insert_contact(db_path, est_id, "Directeur", "hunter", email_status=VALIDE, email="a@b.fr")
    db.insert_contact(db_path, est_id, "IDEC", "cron_auto")
    db.ensure_prospection(db_path, contact_id)
    db.insert_email_sent(db_path, contact_id, "a@b.fr", "Sujet", "<m>")

    stats = db.get_pipeline_stats(db_path)

    assert stats["establishments"] == 1
    assert stats["email_status"] == {VALIDE: 1, A_TROUVER: 1}
    assert stats["prospection"] == {A_PROSPECTER: 1}
    assert stats["sent_today"] == 1


def test_resolve_db_path(monkeypatch):
    monkeypatch.delenv("LEADCRM_DB_PATH", raising=False)
    assert db.resolve_db_path() == db.DEFAULT_DB_PATH

    monkeypatch.setenv("LEADCRM_DB_PATH", "/tmp/other.db")
    assert str(db.resolve_db_path()) == "/tmp/other.db"
    assert str(db.resolve_db_path("x.db")) == "x.db"


def test_timestamps_are_utc_aware(db_path):
    est_id = _establishment(db_path)
    contact_id = db.insert_contact(db_path, est_id, "Directeur", "hunter")

    created_at = datetime.fromisoformat(db.get_contact(db_path, contact_id)["created_at"])

    assert created_at.utcoffset() == timedelta(0)
    assert abs(datetime.now(timezone.utc) - created_at) < timedelta(minutes=1)
