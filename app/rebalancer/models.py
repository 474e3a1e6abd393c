"""
Data classes for structured returns in the rebalance agent.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class HealthStatus(Enum):
    """Risk bucket derived from a vault's LTV and a threshold profile."""

    HEALTHY = "HEALTHY"
    WARNING = "WARNING"
    AT_RISK = "AT_RISK"
    CRITICAL = "CRITICAL"
    LIQUIDATABLE = "LIQUIDATABLE"

    @property
    def severity(self) -> int:
        return _HEALTH_SEVERITY[self]


_HEALTH_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.WARNING: 1,
    HealthStatus.AT_RISK: 2,
    HealthStatus.CRITICAL: 3,
    HealthStatus.LIQUIDATABLE: 4,
}


class RecommendedAction(Enum):
    """Corrective action, ordered by severity."""

    NONE = "NONE"
    MONITOR = "MONITOR"
    CLAIM_REWARDS = "CLAIM_REWARDS"
    REBALANCE = "REBALANCE"
    URGENT_REBALANCE = "URGENT_REBALANCE"

    @property
    def priority(self) -> int:
        """Dispatch priority, higher is dispatched first."""
        return _ACTION_PRIORITY[self]

    @classmethod
    def parse(cls, value: Any) -> "RecommendedAction":
        """Map a free-form action string to an action, unknown values map to NONE."""
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        return cls.NONE


_ACTION_PRIORITY = {
    RecommendedAction.URGENT_REBALANCE: 3,
    RecommendedAction.REBALANCE: 2,
    RecommendedAction.CLAIM_REWARDS: 1,
    RecommendedAction.MONITOR: 0,
    RecommendedAction.NONE: 0,
}


@dataclass(frozen=True)
class ThresholdProfile:
    """LTV boundaries in basis points (6000 = 60%)."""

    warning: int
    rebalance: int
    max_borrow: int
    liquidation: int

    def is_monotonic(self) -> bool:
        return self.warning < self.rebalance < self.max_borrow < self.liquidation

    def to_dict(self) -> Dict[str, int]:
        return {
            "warning": self.warning,
            "rebalance": self.rebalance,
            "maxBorrow": self.max_borrow,
            "liquidation": self.liquidation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThresholdProfile":
        return cls(
            warning=int(data["warning"]),
            rebalance=int(data["rebalance"]),
            max_borrow=int(data.get("maxBorrow", data.get("max_borrow"))),
            liquidation=int(data["liquidation"]),
        )


@dataclass(frozen=True)
class Strategy:
    """A named threshold profile with free-text action rules."""

    name: str
    description: str
    thresholds: ThresholdProfile
    action_rules: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "thresholds": self.thresholds.to_dict(),
            "actionRules": self.action_rules,
        }


@dataclass(frozen=True)
class VaultData:
    """Raw vault state as read from the vault manager contract."""

    vault_id: str
    owner: str
    collateral_amount: int
    debt_amount: int
    reward_reserve: int


@dataclass(frozen=True)
class StakePositionData:
    """Raw stake position state as read from the staking contract."""

    position_id: str
    owner: str
    shares: int
    pending_rewards: int
    linked_vault_id: Optional[str]
    auto_rebalance_enabled: bool


@dataclass(frozen=True)
class VaultHealthMetrics:
    """Health snapshot of one vault, recomputed every cycle."""

    vault_id: str
    owner: str
    collateral_value: int
    debt_value: int
    ltv_bps: int
    health_status: HealthStatus
    reward_reserve: int
    pending_rewards: int
    recommended_action: RecommendedAction

    @property
    def has_funds(self) -> bool:
        return self.pending_rewards > 0 or self.reward_reserve > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vault_id": self.vault_id,
            "owner": self.owner,
            "collateral_value": str(self.collateral_value),
            "debt_value": str(self.debt_value),
            "ltv_bps": self.ltv_bps,
            "health_status": self.health_status.value,
            "reward_reserve": str(self.reward_reserve),
            "pending_rewards": str(self.pending_rewards),
            "recommended_action": self.recommended_action.value,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Recommendation produced for one vault in one cycle."""

    vault_id: str
    should_act: bool
    action: RecommendedAction
    reasoning: str
    confidence: float
    estimated_rewards_needed: int
    available_rewards: int


@dataclass
class ExecutionResult:
    """Outcome of dispatching (or declining to dispatch) one vault action."""

    success: bool
    action: str
    vault_id: str
    tx_digest: Optional[str] = None
    rewards_claimed: Optional[int] = None
    collateral_added: Optional[int] = None
    error: Optional[str] = None
    retry_after: Optional[float] = None


@dataclass
class MonitoringEvent:
    """Event emitted by the monitor for external observers."""

    type: str
    details: Dict[str, Any]
    vault_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class CycleReport:
    """Summary of a single monitoring cycle."""

    started_at: float
    duration_seconds: float = 0.0
    vaults_checked: int = 0
    analyses: List[AnalysisResult] = field(default_factory=list)
    results: List[ExecutionResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def successful(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.success)
