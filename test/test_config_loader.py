"""
Test the config_loader module.
"""

import pytest

from app.rebalancer.config_loader import _parse_assignments, load_agent_config
from app.rebalancer.exceptions import ConfigError


def test_config_loaded_ok(config):
    assert config
    assert config.MONITOR_INTERVAL_SECONDS == 10
    assert config.REFRESH_INTERVAL_SECONDS == 300
    assert config.DEFAULT_THRESHOLDS.is_monotonic()
    assert config.price_scale == 10**9
    assert config.VAULT_MANAGER_ADDRESS == "0x0000000000000000000000000000000000000001"


def test_config_loader_validates(config):
    config.validate()


def test_missing_required_env_var(config, monkeypatch):
    monkeypatch.delenv("AGENT_PRIVATE_KEY")

    with pytest.raises(ConfigError, match="AGENT_PRIVATE_KEY"):
        load_agent_config()


def test_integer_env_override(config, monkeypatch):
    monkeypatch.setenv("ANALYZER_MAX_RPM", "3")

    assert load_agent_config().ANALYZER_MAX_RPM == 3


def test_non_integer_override_rejected(config, monkeypatch):
    monkeypatch.setenv("EXECUTOR_MAX_RPM", "five")

    with pytest.raises(ConfigError):
        load_agent_config()


def test_non_monotonic_thresholds_rejected(config, monkeypatch):
    monkeypatch.setenv("LTV_WARNING_THRESHOLD", "9000")

    with pytest.raises(ConfigError):
        load_agent_config()


def test_missing_config_file():
    with pytest.raises(ConfigError):
        load_agent_config("/nonexistent/config.yaml")


def test_unknown_attribute_raises(config):
    with pytest.raises(AttributeError):
        config.NOT_A_SETTING


def test_parse_assignments():
    assert _parse_assignments("0xabc:Degen, 0xdef:Balanced,") == {"0xabc": "Degen", "0xdef": "Balanced"}

    with pytest.raises(ConfigError):
        _parse_assignments("0xabc")
