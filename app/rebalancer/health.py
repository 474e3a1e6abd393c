"""
Vault health classification.

LTV is always an integer number of basis points (1bp = 0.01%), compared
against the inclusive lower bounds of a ThresholdProfile.
"""

from typing import Optional, Tuple

from app.rebalancer.models import (
    HealthStatus,
    RecommendedAction,
    StakePositionData,
    ThresholdProfile,
    VaultData,
    VaultHealthMetrics,
)

BPS_SCALE = 10000
TARGET_LTV_BPS = 5500


def calculate_ltv_bps(debt_value: int, collateral_value: int) -> int:
    """Loan-to-value in basis points, 0 for a vault without collateral."""
    if collateral_value <= 0:
        return 0
    return debt_value * BPS_SCALE // collateral_value


def classify_health(ltv_bps: int, profile: ThresholdProfile) -> Tuple[HealthStatus, RecommendedAction]:
    """
    Map an LTV to a health tier and its default recommended action.

    Boundaries are inclusive and checked from the most severe down, so a
    value exactly on a boundary lands in the higher tier.

    Args:
        ltv_bps: Current loan-to-value in basis points.
        profile: Threshold profile to classify against.

    Returns:
        Tuple of (health status, recommended action).
    """
    if ltv_bps >= profile.liquidation:
        return HealthStatus.LIQUIDATABLE, RecommendedAction.URGENT_REBALANCE
    if ltv_bps >= profile.max_borrow:
        return HealthStatus.CRITICAL, RecommendedAction.URGENT_REBALANCE
    if ltv_bps >= profile.rebalance:
        return HealthStatus.AT_RISK, RecommendedAction.REBALANCE
    if ltv_bps >= profile.warning:
        return HealthStatus.WARNING, RecommendedAction.CLAIM_REWARDS
    return HealthStatus.HEALTHY, RecommendedAction.NONE


def estimate_rewards_needed(debt_value: int, collateral_value: int, target_ltv_bps: int = TARGET_LTV_BPS) -> int:
    """Additional collateral needed to bring the vault down to the target LTV."""
    required_collateral = debt_value * BPS_SCALE // target_ltv_bps
    return max(0, required_collateral - collateral_value)


def calculate_vault_health(
    vault: VaultData,
    stake_position: Optional[StakePositionData],
    collateral_price: int,
    profile: ThresholdProfile,
    price_scale: int = 10**9,
) -> VaultHealthMetrics:
    """
    Build a health snapshot from raw chain state.

    Collateral is valued at `collateral_price` (scaled by `price_scale`); debt
    is a stable unit valued 1:1.

    Args:
        vault: Vault state.
        stake_position: Linked stake position, if any; supplies pending rewards.
        collateral_price: Integer-scaled collateral price.
        profile: Threshold profile used for classification.
        price_scale: Scale of `collateral_price`.

    Returns:
        VaultHealthMetrics for the vault.
    """
    collateral_value = vault.collateral_amount * collateral_price // price_scale
    debt_value = vault.debt_amount
    ltv_bps = calculate_ltv_bps(debt_value, collateral_value)
    health_status, recommended_action = classify_health(ltv_bps, profile)

    return VaultHealthMetrics(
        vault_id=vault.vault_id,
        owner=vault.owner,
        collateral_value=collateral_value,
        debt_value=debt_value,
        ltv_bps=ltv_bps,
        health_status=health_status,
        reward_reserve=vault.reward_reserve,
        pending_rewards=stake_position.pending_rewards if stake_position else 0,
        recommended_action=recommended_action,
    )


def format_token_amount(amount: int, decimals: int = 9) -> str:
    return f"{amount / 10**decimals:.4f}"


def format_bps(value: int) -> str:
    return f"{value / 100:.2f}%"
