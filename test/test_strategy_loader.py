"""
Tests for strategy loading, owner assignment and the strategy cache.
"""

import json
import os

import pytest

from app.rebalancer import strategy_loader as strategy_loader_module
from app.rebalancer.config_loader import PROJECT_ROOT
from app.rebalancer.exceptions import StrategyError
from app.rebalancer.models import ThresholdProfile
from app.rebalancer.strategy_loader import StrategyLoader, parse_strategy

from conftest import DEFAULT_PROFILE, FakeClock, TEST_OWNER

STRATEGIES_PATH = os.path.join(PROJECT_ROOT, "app", "strategies")

DEGEN_DATA = {
    "name": "Degen",
    "description": "remote",
    "thresholds": {"warning": 6900, "rebalance": 7300, "maxBorrow": 7700, "liquidation": 8100},
}


def test_bundled_strategies_are_valid():
    loader = StrategyLoader(DEFAULT_PROFILE, STRATEGIES_PATH)

    strategies = loader.list_strategies()

    assert [strategy.name for strategy in strategies] == ["Balanced", "Conservative", "Degen"]
    assert all(strategy.thresholds.is_monotonic() for strategy in strategies)


def test_owner_assignment_selects_strategy():
    loader = StrategyLoader(DEFAULT_PROFILE, STRATEGIES_PATH, assignments={TEST_OWNER: "Degen"})

    assert loader.strategy_name_for(TEST_OWNER) == "Degen"
    assert loader.resolve_profile(TEST_OWNER) == ThresholdProfile(6800, 7200, 7600, 8000)
    assert loader.resolve_profile("0xsomeoneelse") == ThresholdProfile(5500, 6000, 6500, 8000)


def test_invalid_strategy_file_resolves_to_default(tmp_path):
    data = {"name": "Broken", "thresholds": {"warning": 7000, "rebalance": 6000, "maxBorrow": 7500, "liquidation": 8000}}
    (tmp_path / "broken.json").write_text(json.dumps(data))
    loader = StrategyLoader(DEFAULT_PROFILE, str(tmp_path), default_strategy="Broken")

    assert loader.resolve_profile(TEST_OWNER) == DEFAULT_PROFILE
    assert loader.list_strategies() == []


def test_parse_strategy_rejects_missing_fields():
    with pytest.raises(StrategyError):
        parse_strategy({"name": "NoThresholds"})


def test_remote_strategy_preferred_and_cached(monkeypatch):
    requested = []

    def fake_request(url):
        requested.append(url)
        return DEGEN_DATA

    monkeypatch.setattr(strategy_loader_module, "make_api_request", fake_request)
    clock = FakeClock()
    loader = StrategyLoader(
        DEFAULT_PROFILE,
        STRATEGIES_PATH,
        default_strategy="Degen",
        base_url="https://strategies.example",
        cache_ttl_seconds=60,
        clock=clock,
    )

    assert loader.resolve_profile(TEST_OWNER) == ThresholdProfile(6900, 7300, 7700, 8100)
    clock.advance(59)
    loader.resolve_profile(TEST_OWNER)
    assert requested == ["https://strategies.example/degen.json"]

    clock.advance(1)
    loader.resolve_profile(TEST_OWNER)
    assert len(requested) == 2


def test_unavailable_remote_strategy_falls_back_to_local(monkeypatch):
    monkeypatch.setattr(strategy_loader_module, "make_api_request", lambda url: None)
    loader = StrategyLoader(DEFAULT_PROFILE, STRATEGIES_PATH, default_strategy="Degen", base_url="https://x.example")

    assert loader.resolve_profile(TEST_OWNER) == ThresholdProfile(6800, 7200, 7600, 8000)
