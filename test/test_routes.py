"""
Tests for the Flask status API.
"""

import os

import pytest

from app import create_app
from app.rebalancer.analyzer import AnalyzerAgent
from app.rebalancer.config_loader import PROJECT_ROOT
from app.rebalancer.executor import ExecutorAgent
from app.rebalancer.rate_limiter import RateLimiter, VaultCooldown
from app.rebalancer.routes import start_monitor
from app.rebalancer.strategy_loader import StrategyLoader
from app.rebalancer.vault_monitor import VaultMonitor

from conftest import DEFAULT_PROFILE, vault_id


@pytest.fixture()
def client():
    app = create_app(start_monitoring=False)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture()
def running_monitor(config, chain, monkeypatch):
    chain.add_vault(vault_id(1), 6200, reward_reserve=1)
    chain.add_vault(vault_id(2), 8500)
    strategy_loader = StrategyLoader(DEFAULT_PROFILE, os.path.join(PROJECT_ROOT, "app", "strategies"))
    monitor = VaultMonitor(
        config,
        chain,
        AnalyzerAgent(strategy_loader, RateLimiter("Analyzer", 10)),
        ExecutorAgent(chain, RateLimiter("Executor", 5), VaultCooldown(0)),
        strategy_loader,
    )
    monitor.run_monitoring_cycle()
    monkeypatch.setattr(start_monitor, "_vault_monitor", monitor, raising=False)
    return monitor


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json() == {"status": "healthy"}


def test_status_without_monitor(client, monkeypatch):
    monkeypatch.delattr(start_monitor, "_vault_monitor", raising=False)

    assert client.get("/monitor/status").status_code == 500


def test_status(client, running_monitor):
    data = client.get("/monitor/status").get_json()

    assert data["vault_count"] == 2
    assert data["last_cycle"]["vaults_checked"] == 2


def test_vaults_sorted_by_ltv(client, running_monitor):
    data = client.get("/monitor/vaults").get_json()

    assert [entry["vault_id"] for entry in data] == [vault_id(2), vault_id(1)]
    assert data[0]["health_status"] == "LIQUIDATABLE"


def test_strategies(client, running_monitor):
    data = client.get("/monitor/strategies").get_json()

    assert data["default"] == "Conservative"
    assert [strategy["name"] for strategy in data["strategies"]] == ["Balanced", "Conservative", "Degen"]
