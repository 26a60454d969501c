"""Prospection pipeline: import, contacts, enrich, validate, ice breakers, send, track."""

from leadcrm.outreach.importer import import_establishments, load_dataset
from leadcrm.outreach.enricher import run_enrichment
from leadcrm.outreach.validator import run_validation
from leadcrm.outreach.icebreaker import run_icebreakers
from leadcrm.outreach.scheduler import run_send_cycle
from leadcrm.outreach.webhook import handle_brevo_event
from leadcrm.outreach.master import run_daily
