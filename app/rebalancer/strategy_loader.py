"""
Strategy loader - maps vault owners to named threshold profiles.

Lookup order for a strategy name: in-memory cache, remote strategy store
(STRATEGY_BASE_URL), local JSON file in STRATEGIES_PATH. Anything that fails
resolves to the configured default thresholds.
"""

import json
import os
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.rebalancer.decorators import make_api_request
from app.rebalancer.exceptions import StrategyError
from app.rebalancer.logging_config import setup_logger
from app.rebalancer.models import Strategy, ThresholdProfile

logger = setup_logger()


def parse_strategy(data: Dict[str, Any]) -> Strategy:
    """
    Build a Strategy from its JSON form, rejecting non-monotonic thresholds.

    Raises:
        StrategyError: If required fields are missing or thresholds are invalid.
    """
    try:
        thresholds = ThresholdProfile.from_dict(data["thresholds"])
        strategy = Strategy(
            name=str(data["name"]),
            description=str(data.get("description", "")),
            thresholds=thresholds,
            action_rules=str(data.get("actionRules", "")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise StrategyError(f"Malformed strategy definition: {exc}") from exc

    if not thresholds.is_monotonic():
        raise StrategyError(f"Strategy '{strategy.name}' thresholds are not strictly increasing: {thresholds}")
    return strategy


class StrategyLoader:
    """Resolves threshold profiles per owner, with a TTL cache per strategy name."""

    def __init__(
        self,
        default_profile: ThresholdProfile,
        strategies_path: str,
        default_strategy: str = "Conservative",
        assignments: Optional[Dict[str, str]] = None,
        base_url: str = "",
        cache_ttl_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_profile = default_profile
        self.strategies_path = strategies_path
        self.default_strategy = default_strategy
        self.assignments = dict(assignments or {})
        self.base_url = base_url
        self.cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._cache: Dict[str, Tuple[Strategy, float]] = {}

    @classmethod
    def from_config(cls, config) -> "StrategyLoader":
        return cls(
            default_profile=config.DEFAULT_THRESHOLDS,
            strategies_path=config.resolve_path("STRATEGIES_PATH"),
            default_strategy=config.DEFAULT_STRATEGY,
            assignments=config.STRATEGY_ASSIGNMENTS,
            base_url=config.STRATEGY_BASE_URL,
            cache_ttl_seconds=config.STRATEGY_CACHE_TTL_SECONDS,
        )

    def strategy_name_for(self, owner: str) -> str:
        return self.assignments.get(owner, self.default_strategy)

    def resolve_profile(self, owner: str) -> ThresholdProfile:
        """
        Return the threshold profile for an owner.

        Never raises: any failure yields the default profile.
        """
        strategy_name = self.strategy_name_for(owner)
        try:
            strategy = self.get_strategy(strategy_name)
        except Exception as ex:
            logger.error("StrategyLoader: Error loading strategy %s: %s", strategy_name, ex, exc_info=True)
            strategy = None

        if strategy is None:
            logger.debug("StrategyLoader: Using default thresholds for owner %s", owner)
            return self.default_profile
        return strategy.thresholds

    def get_strategy(self, name: str) -> Optional[Strategy]:
        cached = self._cache.get(name)
        if cached and self._clock() - cached[1] < self.cache_ttl_seconds:
            return cached[0]

        strategy = None
        if self.base_url:
            strategy = self._load_remote_strategy(name)
        if strategy is None:
            strategy = self._load_local_strategy(name)

        if strategy is not None:
            self._cache[name] = (strategy, self._clock())
        return strategy

    def _load_remote_strategy(self, name: str) -> Optional[Strategy]:
        url = f"{self.base_url}/{name.lower()}.json"
        data = make_api_request(url)
        if data is None:
            logger.warning("StrategyLoader: Remote strategy %s unavailable at %s", name, url)
            return None

        try:
            strategy = parse_strategy(data)
        except StrategyError as ex:
            logger.warning("StrategyLoader: Rejected remote strategy %s: %s", name, ex)
            return None

        logger.info("StrategyLoader: Loaded remote strategy %s", name)
        return strategy

    def _load_local_strategy(self, name: str) -> Optional[Strategy]:
        strategy_path = os.path.join(self.strategies_path, f"{name.lower()}.json")
        if not os.path.exists(strategy_path):
            logger.warning("StrategyLoader: Strategy file not found: %s", strategy_path)
            return None

        try:
            with open(strategy_path, "r", encoding="utf-8") as f:
                strategy = parse_strategy(json.load(f))
        except (json.JSONDecodeError, IOError, StrategyError) as ex:
            logger.error("StrategyLoader: Failed to load strategy %s: %s", strategy_path, ex)
            return None

        logger.info("StrategyLoader: Loaded local strategy %s", strategy_path)
        return strategy

    def list_strategies(self) -> List[Strategy]:
        """Return every valid strategy in the local strategies directory."""
        if not os.path.isdir(self.strategies_path):
            logger.warning("StrategyLoader: Strategies directory not found: %s", self.strategies_path)
            return []

        strategies = []
        for file_name in sorted(os.listdir(self.strategies_path)):
            if not file_name.endswith(".json"):
                continue
            strategy = self._load_local_strategy(file_name[: -len(".json")])
            if strategy is not None:
                strategies.append(strategy)
        return strategies
