"""
Tests for the command line entry points.
"""

import sys
from unittest.mock import MagicMock

import pytest

from app.rebalancer import cli
from app.rebalancer.exceptions import ConfigError
from app.rebalancer.models import CycleReport

from conftest import ENV_EXAMPLE_PATH


@pytest.fixture(autouse=True)
def keep_excepthook(monkeypatch):
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)


def test_once_runs_single_cycle(monkeypatch):
    monitor = MagicMock()
    monitor.run_monitoring_cycle.return_value = CycleReport(started_at=0.0, vaults_checked=2)
    monkeypatch.setattr(cli.VaultMonitor, "from_config", MagicMock(return_value=monitor))

    assert cli.main(["--once", "--env-file", ENV_EXAMPLE_PATH]) == 0

    monitor.run_monitoring_cycle.assert_called_once()
    monitor.start.assert_not_called()


def test_config_error_exits_with_one(monkeypatch):
    def broken_config(config_path=None):
        raise ConfigError("Missing required environment variables: RPC_URL")

    monkeypatch.setattr(cli, "load_agent_config", broken_config)

    assert cli.main(["--once"]) == 1


def test_monitor_build_failure_exits_with_one(monkeypatch):
    def broken_monitor(config):
        raise ConfigError("AGENT_PRIVATE_KEY is not a valid private key")

    monkeypatch.setattr(cli.VaultMonitor, "from_config", broken_monitor)

    assert cli.main(["--once", "--env-file", ENV_EXAMPLE_PATH]) == 1
