import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from leadcrm.core import db
from leadcrm.core.cli import cli

CONFIG_DIR = str(Path(__file__).resolve().parents[2] / "config")


def test_cli_status_empty():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        db.init_db(db_path)

        runner = CliRunner()
        result = runner.invoke(cli, ["status", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "Pipeline Status" in result.output


def test_cli_status_single_contact():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        db.init_db(db_path)
        est_id = db.insert_establishment(db_path, "EHPAD Les Tilleuls", "EHPAD", "Amiens")
        contact_id = db.insert_contact(db_path, est_id, "Directeur", "finess_import", first_name="Marie")

        runner = CliRunner()
        result = runner.invoke(cli, ["status", "--db", str(db_path), "--contact", str(contact_id)])

        assert result.exit_code == 0
        assert "EHPAD Les Tilleuls (Amiens)" in result.output
        assert "[a_trouver]" in result.output

        missing = runner.invoke(cli, ["status", "--db", str(db_path), "--contact", "999"])
        assert "Contact not found: 999" in missing.output


def test_cli_init_installs_templates():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"

        runner = CliRunner()
        result = runner.invoke(cli, ["init", "--db", str(db_path), "--config", CONFIG_DIR])

        assert result.exit_code == 0
        assert "Templates installed: 4" in result.output
        assert len(db.get_templates(db_path)) == 4


def test_cli_import_example_then_excel():
    with tempfile.TemporaryDirectory() as tmpdir:
        tmpdir = Path(tmpdir)
        db_path = tmpdir / "test.db"
        excel = tmpdir / "etablissements.xlsx"

        runner = CliRunner()
        example = runner.invoke(cli, ["import", "--example", str(excel)])
        assert example.exit_code == 0
        assert excel.exists()

        result = runner.invoke(cli, [
            "import", "--db", str(db_path), "--config", CONFIG_DIR, "--excel", str(excel),
        ])

        assert result.exit_code == 0
        assert "New establishments:      2" in result.output
        assert db.get_pipeline_stats(db_path)["establishments"] == 2


def test_cli_send_prints_details():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        summary = {
            "checked": 1,
            "emails_sent": 1,
            "errors": [],
            "details": [{"contact_id": 1, "email": "dir@ehpad.fr", "step": 2, "message_id": "<m>"}],
            "daily_limit_reached": True,
        }

        with patch("leadcrm.core.cli.run_send_cycle", new_callable=AsyncMock, return_value=summary):
            runner = CliRunner()
            result = runner.invoke(cli, ["send", "--db", str(db_path), "--config", CONFIG_DIR])

        assert result.exit_code == 0
        assert "dir@ehpad.fr (step 2)" in result.output
        assert "Run limit reached" in result.output


def test_cli_credits_without_keys():
    with patch("leadcrm.core.cli.hunter.HUNTER_API_KEY", ""), \
            patch("leadcrm.core.cli.zerobounce.ZEROBOUNCE_API_KEY", ""), \
            patch("leadcrm.core.cli.hunter.get_account", new_callable=AsyncMock, return_value=None), \
            patch("leadcrm.core.cli.zerobounce.get_credits", new_callable=AsyncMock, return_value=0):
        runner = CliRunner()
        result = runner.invoke(cli, ["credits"])

    assert result.exit_code == 0
    assert "HUNTER_API_KEY not set" in result.output
    assert "ZEROBOUNCE_API_KEY not set" in result.output
