"""Tests for CLI commands"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from cli.main import app
from summaryq.core.exceptions import StoreUnavailableError
from summaryq.jobs.models import ContentKind
from summaryq.jobs.schemas import JobResponse, JobStatsResponse


def make_job(**overrides) -> JobResponse:
    now = datetime(2026, 10, 18, 9, 0, tzinfo=UTC)
    values = {
        "id": 7,
        "kind": "github",
        "target_id": "octo/repo",
        "request_key": "abc123",
        "status": "dead",
        "attempt_count": 5,
        "max_attempts": 5,
        "next_run_at": now,
        "error_code": "http_503",
        "error_message": "Service unavailable",
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return JobResponse(**values)


# Test fixtures
@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


@pytest.fixture
def mock_store():
    """Mock job store wired into the CLI's store runner"""
    store = MagicMock()
    for method in ("get_latest_by_target", "get_job", "retry_job", "recover_stale", "get_stats"):
        setattr(store, method, AsyncMock())

    database = MagicMock()
    database.close = AsyncMock()

    with patch("cli.commands.jobs.Database", return_value=database), patch(
        "cli.commands.jobs.JobStore", return_value=store
    ):
        yield store


class TestMainCommands:
    """Test main CLI commands"""

    def test_version_flag(self, runner):
        """Test --version option"""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "summaryq v0.1.0" in result.stdout

    def test_version_short_flag_skips_subcommand(self, runner, mock_store):
        """-v exits before a subcommand touches the store"""
        result = runner.invoke(app, ["-v", "jobs", "stats"])
        assert result.exit_code == 0
        assert "summaryq v0.1.0" in result.stdout
        mock_store.get_stats.assert_not_awaited()

    def test_version_command(self, runner):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Version Info" in result.stdout

    def test_status_success(self, runner, mock_store):
        """Test status command with a reachable store"""
        mock_store.get_stats.return_value = JobStatsResponse(
            total_jobs=3, by_status={"queued": 2, "succeeded": 1}, queue_depth=2, stale_running=0
        )

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Connected Successfully" in result.stdout

    def test_status_failure(self, runner, mock_store):
        """Test status command with connection failure"""
        mock_store.get_stats.side_effect = StoreUnavailableError("Job store unavailable during get_stats")

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 1
        assert "Job store unreachable" in result.stdout


class TestJobCommands:
    """Test job inspection and repair commands"""

    def test_status_shows_job(self, runner, mock_store):
        mock_store.get_latest_by_target.return_value = make_job()

        result = runner.invoke(app, ["jobs", "status", "github", "octo/repo"])

        assert result.exit_code == 0
        assert "Summary Job" in result.stdout
        assert "http_503" in result.stdout
        mock_store.get_latest_by_target.assert_awaited_once_with(ContentKind.GITHUB, "octo/repo")

    def test_status_no_job(self, runner, mock_store):
        mock_store.get_latest_by_target.return_value = None

        result = runner.invoke(app, ["jobs", "status", "bookmark", "missing"])

        assert result.exit_code == 1
        assert "No summary job found" in result.stdout

    def test_status_rejects_unknown_kind(self, runner, mock_store):
        result = runner.invoke(app, ["jobs", "status", "podcast", "x"])
        assert result.exit_code != 0

    def test_retry_success(self, runner, mock_store):
        mock_store.retry_job.return_value = make_job(status="queued", attempt_count=0)
        mock_store.get_job.return_value = make_job(status="queued", attempt_count=0)

        result = runner.invoke(app, ["jobs", "retry", "7"])

        assert result.exit_code == 0
        assert "re-queued" in result.stdout
        mock_store.retry_job.assert_awaited_once_with(7)

    def test_retry_not_found(self, runner, mock_store):
        mock_store.retry_job.return_value = None
        mock_store.get_job.return_value = None

        result = runner.invoke(app, ["jobs", "retry", "99"])

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_retry_active_job_refused(self, runner, mock_store):
        mock_store.retry_job.return_value = None
        mock_store.get_job.return_value = make_job(status="running")

        result = runner.invoke(app, ["jobs", "retry", "7"])

        assert result.exit_code == 1
        assert "only failed or dead" in result.stdout

    def test_recover_reports_count(self, runner, mock_store):
        mock_store.recover_stale.return_value = 2

        result = runner.invoke(app, ["jobs", "recover", "github", "--stale-ms", "60000"])

        assert result.exit_code == 0
        assert "Recovered 2 stale job(s)" in result.stdout
        mock_store.recover_stale.assert_awaited_once_with(60000, kind=ContentKind.GITHUB)

    def test_recover_nothing_stale(self, runner, mock_store):
        mock_store.recover_stale.return_value = 0

        result = runner.invoke(app, ["jobs", "recover"])

        assert result.exit_code == 0
        assert "No stale jobs found" in result.stdout
        mock_store.recover_stale.assert_awaited_once_with(None, kind=None)

    def test_stats_table(self, runner, mock_store):
        mock_store.get_stats.return_value = JobStatsResponse(
            kind="github",
            total_jobs=4,
            by_status={"queued": 1, "running": 1, "dead": 2},
            queue_depth=2,
            stale_running=1,
        )

        result = runner.invoke(app, ["jobs", "stats", "github"])

        assert result.exit_code == 0
        assert "Summary Jobs (github)" in result.stdout
        assert "Stale running" in result.stdout

    def test_store_outage_exits_nonzero(self, runner, mock_store):
        mock_store.get_stats.side_effect = StoreUnavailableError("Job store unavailable during get_stats")

        result = runner.invoke(app, ["jobs", "stats"])

        assert result.exit_code == 1
        assert "Job store unavailable" in result.stdout
