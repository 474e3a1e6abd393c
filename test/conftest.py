import os
from collections import deque

import pytest
from dotenv import load_dotenv

from app.rebalancer.config_loader import AgentConfig, load_agent_config
from app.rebalancer.health import calculate_vault_health, classify_health
from app.rebalancer.models import (
    ExecutionResult,
    StakePositionData,
    ThresholdProfile,
    VaultData,
    VaultHealthMetrics,
)
from app.rebalancer.reasoning import ReasoningBackend, ReasoningResponse, ToolCall
from app.rebalancer.strategy_loader import StrategyLoader

ENV_EXAMPLE_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env.example")

DEFAULT_PROFILE = ThresholdProfile(warning=6000, rebalance=6500, max_borrow=7000, liquidation=8000)
PRICE_SCALE = 10**9
TEST_OWNER = "0x00000000000000000000000000000000000000aa"
AGENT_ADDRESS = "0x00000000000000000000000000000000000000A9"


def vault_id(n: int) -> str:
    return "0x" + f"{n:064x}"


def position_id(n: int) -> str:
    return "0x" + f"{n + 1000:064x}"


def make_metrics(
    ltv_bps: int,
    pending_rewards: int = 0,
    reward_reserve: int = 0,
    vault: str = vault_id(1),
    owner: str = TEST_OWNER,
    profile: ThresholdProfile = DEFAULT_PROFILE,
) -> VaultHealthMetrics:
    collateral_value = 10_000 * PRICE_SCALE
    health_status, recommended_action = classify_health(ltv_bps, profile)
    return VaultHealthMetrics(
        vault_id=vault,
        owner=owner,
        collateral_value=collateral_value,
        debt_value=collateral_value * ltv_bps // 10000,
        ltv_bps=ltv_bps,
        health_status=health_status,
        reward_reserve=reward_reserve,
        pending_rewards=pending_rewards,
        recommended_action=recommended_action,
    )


class FakeClock:
    """Manually advanced clock; `sleep` advances time instead of blocking."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeChainClient:
    """In-memory stand-in for ChainClient, recording every write."""

    def __init__(self, price: int = PRICE_SCALE):
        self.price = price
        self.vaults = {}
        self.positions = {}
        self.authorized = []
        self.links = {}
        self.writes = []
        self.fail_writes = False
        self.read_failures = set()
        self.refresh_calls = 0

    def add_vault(self, vault, ltv_bps, pending_rewards=0, reward_reserve=0, owner=TEST_OWNER, position=None):
        collateral = 10_000 * PRICE_SCALE
        self.vaults[vault] = VaultData(
            vault_id=vault,
            owner=owner,
            collateral_amount=collateral,
            debt_amount=collateral * ltv_bps // 10000,
            reward_reserve=reward_reserve,
        )
        self.authorized.append(vault)
        if position:
            self.links[vault] = position
            self.positions[position] = StakePositionData(
                position_id=position,
                owner=owner,
                shares=1,
                pending_rewards=pending_rewards,
                linked_vault_id=vault,
                auto_rebalance_enabled=True,
            )

    def get_agent_address(self):
        return AGENT_ADDRESS

    def get_authorized_vaults(self):
        self.refresh_calls += 1
        return list(self.authorized)

    def get_auto_rebalance_positions(self):
        return dict(self.links)

    def get_vault(self, vault):
        if vault in self.read_failures:
            return None
        return self.vaults.get(vault)

    def get_stake_position(self, position):
        return self.positions.get(position)

    def get_price(self, asset):
        return self.price

    def calculate_vault_health(self, vault, stake_position, collateral_price, profile):
        return calculate_vault_health(vault, stake_position, collateral_price, profile, PRICE_SCALE)

    def execute_claim_and_rebalance(self, stake_position_id, vault):
        self.writes.append(("claim_and_rebalance", vault, stake_position_id))
        if self.fail_writes:
            return ExecutionResult(success=False, action="claim_and_rebalance", vault_id=vault, error="reverted")
        pending = self.positions[stake_position_id].pending_rewards if stake_position_id in self.positions else 0
        return ExecutionResult(
            success=True,
            action="claim_and_rebalance",
            vault_id=vault,
            tx_digest="0xdigest",
            rewards_claimed=pending,
            collateral_added=pending,
        )

    def execute_rebalance_from_reserve(self, vault):
        self.writes.append(("rebalance_from_reserve", vault, None))
        if self.fail_writes:
            return ExecutionResult(success=False, action="rebalance_from_reserve", vault_id=vault, error="reverted")
        return ExecutionResult(success=True, action="rebalance_from_reserve", vault_id=vault, tx_digest="0xdigest")


class ScriptedBackend(ReasoningBackend):
    """Reasoning backend that replays queued responses or raises queued exceptions."""

    def __init__(self, *responses):
        self.responses = deque(responses)
        self.calls = []

    def complete(self, system_instruction, user_prompt, tools=None):
        self.calls.append({"system": system_instruction, "prompt": user_prompt, "tools": tools})
        response = self.responses.popleft()
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return ReasoningResponse(text=response)
        return response


def tool_response(name: str, **args) -> ReasoningResponse:
    return ReasoningResponse(tool_calls=[ToolCall(name=name, args=args)])


@pytest.fixture()
def config() -> AgentConfig:
    load_dotenv(dotenv_path=ENV_EXAMPLE_PATH)
    return load_agent_config()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def chain() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture()
def strategy_loader(tmp_path) -> StrategyLoader:
    # Empty strategies directory, every owner resolves to the default profile
    return StrategyLoader(default_profile=DEFAULT_PROFILE, strategies_path=str(tmp_path), default_strategy="Balanced")
