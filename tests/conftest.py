import tempfile
from pathlib import Path

import pytest

from leadcrm.core.db import init_db
from leadcrm.core.ratelimit import reset_limiters


@pytest.fixture(autouse=True)
def no_rate_limit_delays():
    reset_limiters(0)
    yield
    reset_limiters(0)


@pytest.fixture
def db_path():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "test.db"
        init_db(path)
        yield path
