"""
Test suite for manage.py CLI commands.

Run all tests:
    pytest tests/test_manage.py -v
"""

from unittest.mock import AsyncMock, patch

from typer.testing import CliRunner

from manage import app

runner = CliRunner()


class TestPurgeChallengesCommand:

    def test_help(self):
        result = runner.invoke(app, ["purge-challenges", "--help"])

        assert result.exit_code == 0
        assert "--retention-days" in result.stdout

    def test_runs_purge_with_retention(self):
        with patch(
            "manage.purge_challenges_task", new_callable=AsyncMock, return_value=4
        ) as mock_task:
            result = runner.invoke(app, ["purge-challenges", "--retention-days", "0"])

        assert result.exit_code == 0
        mock_task.assert_awaited_once_with(0)
        assert "Purged 4 expired challenge(s)" in result.stdout

    def test_rejects_negative_retention(self):
        result = runner.invoke(app, ["purge-challenges", "--retention-days", "-1"])

        assert result.exit_code != 0


class TestInitDbCommand:

    def test_runs_init_task(self):
        with patch("manage.init_db_task", new_callable=AsyncMock) as mock_task:
            result = runner.invoke(app, ["init-db"])

        assert result.exit_code == 0
        mock_task.assert_awaited_once()


class TestMigrationCommands:

    def test_migrate_runs_alembic_upgrade(self):
        with patch("manage.subprocess.run") as mock_run:
            result = runner.invoke(app, ["migrate"])

        assert result.exit_code == 0
        assert mock_run.call_args.args[0] == "alembic upgrade head"

    def test_makemigrations_passes_message(self):
        with patch("manage.subprocess.run") as mock_run:
            result = runner.invoke(app, ["makemigrations", "add index"])

        assert result.exit_code == 0
        assert mock_run.call_args.args[0] == (
            'alembic revision --autogenerate -m "add index"'
        )
