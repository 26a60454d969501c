"""Core infrastructure: CLI, config, database, status model, rate limiting."""

from leadcrm.core.config import (
    Settings,
    SequenceConfig,
    SendingConfig,
    LimitsConfig,
    EmailTemplate,
    load_settings,
    load_templates,
    render_template,
)
from leadcrm.core.db import (
    init_db,
    insert_establishment,
    insert_contact,
    get_contact,
    ensure_prospection,
    count_sent_today,
    get_pipeline_stats,
)
from leadcrm.core.models import InvalidTransition
