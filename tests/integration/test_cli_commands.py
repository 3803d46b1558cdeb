"""Integration tests for CLI commands.

The dispatcher graph is replaced with a stub so no database or network is needed.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from campaign_resilience.cli import app
from campaign_resilience.types import DispatchSummary


@pytest.fixture
def runner():
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def isolated_cwd(tmp_path, monkeypatch):
    """Run from an empty directory so no config/defaults file is picked up."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def no_logging_setup():
    with patch("campaign_resilience.logging_config.configure_from_config"):
        yield


class TestDispatchCommand:

    def test_dispatch_json_summary(self, runner, isolated_cwd, no_logging_setup):
        summary = DispatchSummary(processed=3, sent=2, expired=0, failed=1, errors=["Partition P2: down"])
        with patch("campaign_resilience.cli.run_dispatch", AsyncMock(return_value=summary)) as run:
            result = runner.invoke(app, ["dispatch", "--json", "--override", "dispatch.batch_limit=50"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == summary.model_dump()
        config = run.await_args.args[0]
        assert config.dispatch.batch_limit == 50

    def test_dispatch_table_exit_zero_with_failures(self, runner, isolated_cwd, no_logging_setup):
        summary = DispatchSummary(processed=1, failed=1, errors=["Credential not found: P9"])
        with patch("campaign_resilience.cli.run_dispatch", AsyncMock(return_value=summary)):
            result = runner.invoke(app, ["dispatch"])

        assert result.exit_code == 0
        assert "Dispatch summary" in result.stdout
        assert "Credential not found: P9" in result.stdout

    def test_dispatch_fatal_error_exits_one(self, runner, isolated_cwd, no_logging_setup):
        failing = AsyncMock(side_effect=ConnectionError("database unreachable"))
        with patch("campaign_resilience.cli.run_dispatch", failing):
            result = runner.invoke(app, ["dispatch"])

        assert result.exit_code == 1

    def test_dispatch_invalid_override_exits_one(self, runner, isolated_cwd, no_logging_setup):
        result = runner.invoke(app, ["dispatch", "--override", "dispatch.batch_limit=0"])
        assert result.exit_code == 1


class TestConfigCommand:

    def test_config_json(self, runner, isolated_cwd):
        result = runner.invoke(app, ["config", "--output", "json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["project"] == "campaign-resilience"
        assert data["dispatch"]["batch_limit"] == 1000

    def test_config_tree(self, runner, isolated_cwd):
        result = runner.invoke(app, ["config", "--output", "tree"])

        assert result.exit_code == 0
        assert "Dispatch" in result.stdout

    def test_config_missing_profile(self, runner, isolated_cwd):
        result = runner.invoke(app, ["config", "--profile", "does-not-exist"])
        assert result.exit_code == 1


def test_version(runner):
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.stdout
