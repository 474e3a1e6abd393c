"""
Tests for LTV calculation and health classification.
"""

import pytest

from app.rebalancer.health import (
    calculate_ltv_bps,
    calculate_vault_health,
    classify_health,
    estimate_rewards_needed,
    format_bps,
    format_token_amount,
)
from app.rebalancer.models import HealthStatus, RecommendedAction, StakePositionData, VaultData

from conftest import DEFAULT_PROFILE, PRICE_SCALE, TEST_OWNER, vault_id


@pytest.mark.parametrize(
    "ltv_bps, expected_status, expected_action",
    [
        (0, HealthStatus.HEALTHY, RecommendedAction.NONE),
        (5999, HealthStatus.HEALTHY, RecommendedAction.NONE),
        (6000, HealthStatus.WARNING, RecommendedAction.CLAIM_REWARDS),
        (6499, HealthStatus.WARNING, RecommendedAction.CLAIM_REWARDS),
        (6500, HealthStatus.AT_RISK, RecommendedAction.REBALANCE),
        (7000, HealthStatus.CRITICAL, RecommendedAction.URGENT_REBALANCE),
        (7999, HealthStatus.CRITICAL, RecommendedAction.URGENT_REBALANCE),
        (8000, HealthStatus.LIQUIDATABLE, RecommendedAction.URGENT_REBALANCE),
        (20000, HealthStatus.LIQUIDATABLE, RecommendedAction.URGENT_REBALANCE),
    ],
)
def test_classify_health_boundaries_are_inclusive(ltv_bps, expected_status, expected_action):
    assert classify_health(ltv_bps, DEFAULT_PROFILE) == (expected_status, expected_action)


def test_classification_is_monotonic_in_ltv():
    previous = -1
    for ltv_bps in range(0, 10001, 25):
        status, _ = classify_health(ltv_bps, DEFAULT_PROFILE)
        assert status.severity >= previous
        previous = status.severity


def test_healthy_scenario_classifies_as_none():
    assert classify_health(4500, DEFAULT_PROFILE) == (HealthStatus.HEALTHY, RecommendedAction.NONE)


def test_ltv_is_zero_without_collateral():
    assert calculate_ltv_bps(1000, 0) == 0
    assert calculate_ltv_bps(6500, 10000) == 6500
    # Integer basis points, rounded down
    assert calculate_ltv_bps(2, 3) == 6666


def test_estimate_rewards_needed():
    # 6000 debt on 10000 collateral needs ~10909 collateral for a 55% LTV
    assert estimate_rewards_needed(6000, 10000) == 909
    assert estimate_rewards_needed(1000, 10000) == 0


def test_calculate_vault_health_uses_price_and_position():
    vault = VaultData(
        vault_id=vault_id(1),
        owner=TEST_OWNER,
        collateral_amount=1000 * PRICE_SCALE,
        debt_amount=2450 * PRICE_SCALE,
        reward_reserve=7,
    )
    position = StakePositionData(
        position_id=vault_id(2),
        owner=TEST_OWNER,
        shares=10,
        pending_rewards=42,
        linked_vault_id=vault_id(1),
        auto_rebalance_enabled=True,
    )

    metrics = calculate_vault_health(vault, position, 3_500_000_000, DEFAULT_PROFILE, PRICE_SCALE)

    assert metrics.collateral_value == 3500 * PRICE_SCALE
    assert metrics.ltv_bps == 7000
    assert metrics.health_status == HealthStatus.CRITICAL
    assert metrics.recommended_action == RecommendedAction.URGENT_REBALANCE
    assert metrics.pending_rewards == 42
    assert metrics.reward_reserve == 7
    assert metrics.has_funds


def test_calculate_vault_health_without_position_has_no_pending_rewards():
    vault = VaultData(vault_id=vault_id(1), owner=TEST_OWNER, collateral_amount=0, debt_amount=0, reward_reserve=0)

    metrics = calculate_vault_health(vault, None, PRICE_SCALE, DEFAULT_PROFILE, PRICE_SCALE)

    assert metrics.ltv_bps == 0
    assert metrics.pending_rewards == 0
    assert not metrics.has_funds


def test_formatting_helpers():
    assert format_bps(6550) == "65.50%"
    assert format_token_amount(5_000_000_000) == "5.0000"
