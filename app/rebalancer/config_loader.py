"""
Config Loader module - reads app/config.yaml defaults and environment overrides.
"""

import os
from typing import Any, Dict, Optional

import yaml
from web3 import Web3

from app.rebalancer.exceptions import ConfigError
from app.rebalancer.models import ThresholdProfile

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class Web3Singleton:
    """
    Singleton class to manage w3 object creation per RPC URL
    """

    _instances = {}

    @staticmethod
    def get_instance(rpc_url: Optional[str] = None):
        """
        Set up a Web3 instance for the given RPC URL.
        Maintains separate instances per unique RPC URL.
        """

        if rpc_url not in Web3Singleton._instances:
            Web3Singleton._instances[rpc_url] = Web3(Web3.HTTPProvider(rpc_url))

        return Web3Singleton._instances[rpc_url]


def setup_w3(rpc_url: Optional[str] = None) -> Web3:
    """
    Get the Web3 instance from the singleton class

    Args:
        rpc_url (Optional[str]): RPC URL of the node

    Returns:
        Web3: Web3 instance.
    """
    return Web3Singleton.get_instance(rpc_url)


def _parse_assignments(raw: str) -> Dict[str, str]:
    """Parse `owner:Strategy,owner2:Strategy` into a dict."""
    assignments = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        owner, sep, strategy_name = item.rpartition(":")
        if not sep or not owner.strip() or not strategy_name.strip():
            raise ConfigError(f"Invalid STRATEGY_ASSIGNMENTS entry: '{item}'")
        assignments[owner.strip()] = strategy_name.strip()
    return assignments


class AgentConfig:
    """
    Agent Config object to access config variables
    """

    required_env_vars = [
        "RPC_URL",
        "AGENT_PRIVATE_KEY",
        "VAULT_MANAGER_ADDRESS",
        # "OPENAI_API_KEY",  # Optional, rule-based fallback only without it
        # "NOTIFICATION_URL",  # Optional
    ]

    int_overrides = [
        "MONITOR_INTERVAL_SECONDS",
        "REFRESH_INTERVAL_SECONDS",
        "ANALYZER_MAX_RPM",
        "EXECUTOR_MAX_RPM",
        "MIN_REBALANCE_INTERVAL_SECONDS",
        "LTV_WARNING_THRESHOLD",
        "LTV_REBALANCE_THRESHOLD",
        "LTV_MAX_BORROW",
        "LTV_LIQUIDATION",
        "STRATEGY_CACHE_TTL_SECONDS",
        "DEPLOYMENT_BLOCK",
    ]

    def __init__(self, global_config: Dict[str, Any]):
        self._global = dict(global_config)

        # validate env
        self.validate()
        for key in self.int_overrides:
            self._global[key] = self._int_setting(key)

        self.RPC_URL = os.environ["RPC_URL"]
        self.AGENT_PRIVATE_KEY = os.environ["AGENT_PRIVATE_KEY"]
        self.VAULT_MANAGER_ADDRESS = self._checksum("VAULT_MANAGER_ADDRESS", os.environ["VAULT_MANAGER_ADDRESS"])

        oracle_address = os.environ.get("ORACLE_ADDRESS", "")
        self.ORACLE_ADDRESS = self._checksum("ORACLE_ADDRESS", oracle_address) if oracle_address else ""

        self.OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
        self.REASONING_MODEL = os.environ.get("REASONING_MODEL", self._global["REASONING_MODEL"])
        self.NOTIFICATION_URL = os.environ.get("NOTIFICATION_URL", "")
        self.STRATEGY_BASE_URL = os.environ.get("STRATEGY_BASE_URL", "").rstrip("/")
        self.COLLATERAL_PRICE_USD = os.environ.get("COLLATERAL_PRICE_USD", str(self._global["COLLATERAL_PRICE_USD"]))

        # Owner -> strategy name, comma-separated `owner:Strategy` pairs
        self.STRATEGY_ASSIGNMENTS = _parse_assignments(os.environ.get("STRATEGY_ASSIGNMENTS", ""))

        self.SAMPLE_VAULT_ID = os.environ.get("SAMPLE_VAULT_ID", "")
        self.SAMPLE_STAKE_POSITION_ID = os.environ.get("SAMPLE_STAKE_POSITION_ID", "")

        self.DEFAULT_THRESHOLDS = ThresholdProfile(
            warning=self.LTV_WARNING_THRESHOLD,
            rebalance=self.LTV_REBALANCE_THRESHOLD,
            max_borrow=self.LTV_MAX_BORROW,
            liquidation=self.LTV_LIQUIDATION,
        )
        if not self.DEFAULT_THRESHOLDS.is_monotonic():
            raise ConfigError(f"LTV thresholds must be strictly increasing, got {self.DEFAULT_THRESHOLDS}")

        self.w3 = setup_w3(self.RPC_URL)

    def __getattr__(self, name: str) -> Any:
        """Look up config values in the global config."""
        if name.startswith("_"):
            raise AttributeError(name)
        if name in self._global:
            return self._global[name]
        raise AttributeError(f"Config has no attribute '{name}'")

    def _int_setting(self, key: str) -> int:
        raw = os.environ.get(key)
        value = raw if raw not in (None, "") else self._global.get(key)
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Config value {key} must be an integer, got '{value}'") from exc

    @staticmethod
    def _checksum(key: str, address: str) -> str:
        try:
            return Web3.to_checksum_address(address)
        except ValueError as exc:
            raise ConfigError(f"{key} is not a valid address: '{address}'") from exc

    def resolve_path(self, key: str) -> str:
        """Resolve a configured path relative to the project root unless absolute."""
        path = str(self._global[key])
        if os.path.isabs(path):
            return path
        return os.path.join(PROJECT_ROOT, path)

    @property
    def price_scale(self) -> int:
        return 10 ** int(self.TOKEN_DECIMALS)

    @property
    def reasoning_enabled(self) -> bool:
        return bool(self.OPENAI_API_KEY)

    def validate(self) -> None:
        """
        Validates that all required environment variables are set.
        Raises an error if any are missing.
        """
        missing_keys = [key for key in self.required_env_vars if not os.getenv(key)]
        if missing_keys:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing_keys)}")


def load_agent_config(config_path: Optional[str] = None) -> AgentConfig:
    if config_path is None:
        config_path = os.path.join(PROJECT_ROOT, "app", "config.yaml")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found at {config_path}") from exc
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file: {e}") from e

    if not config or "global" not in config:
        raise ConfigError(f"No global configuration found in {config_path}")

    return AgentConfig(global_config=config["global"])
