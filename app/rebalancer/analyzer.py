"""
Analyzer agent - read-only vault analysis.

Every vault is sent to the reasoning backend when one is configured; the
deterministic rule set decides whenever the backend is absent, fails, or
returns no usable JSON.
"""

import json
import math
from typing import Any, Dict, List, Optional

from app.rebalancer.exceptions import AnalysisParseError
from app.rebalancer.health import estimate_rewards_needed, format_bps, format_token_amount
from app.rebalancer.logging_config import setup_logger
from app.rebalancer.models import AnalysisResult, RecommendedAction, ThresholdProfile, VaultHealthMetrics
from app.rebalancer.rate_limiter import RateLimiter
from app.rebalancer.reasoning import ReasoningBackend
from app.rebalancer.strategy_loader import StrategyLoader

logger = setup_logger()

FALLBACK_CONFIDENCE = 0.9
DEFAULT_CONFIDENCE = 0.5

ANALYZER_SYSTEM_PROMPT = """You are a risk analyst for a liquid staking CDP protocol.

Your job is to analyze vault health metrics and decide whether action is needed.

The user message gives the vault's threshold profile. Tiers, from safest:
- below warning: HEALTHY - still claim rewards if available to compound yield.
- warning to rebalance: WARNING - claim rewards as a precaution.
- rebalance to max borrow: AT_RISK - rebalance recommended.
- max borrow to liquidation: CRITICAL - urgent rebalance needed.
- at or above liquidation: LIQUIDATABLE - emergency action required.

DECISION FACTORS:
1. Current LTV vs thresholds.
2. Available pending rewards (can be claimed to add collateral).
3. Existing reward reserve in the vault.
4. Yield compounding: even healthy vaults benefit from claiming rewards.

If pending rewards > 0 OR reward reserve > 0, set shouldAct to true and recommend
at least CLAIM_REWARDS. Only set shouldAct to false when both are exactly 0.

RESPOND IN JSON FORMAT ONLY (no markdown, no extra text):
{
  "shouldAct": boolean,
  "action": "NONE" | "MONITOR" | "CLAIM_REWARDS" | "REBALANCE" | "URGENT_REBALANCE",
  "reasoning": "brief explanation",
  "confidence": 0.0-1.0
}"""


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Return the first well-formed JSON object embedded in free text.

    Raises:
        AnalysisParseError: If no JSON object can be decoded.
    """
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            parsed, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)
    raise AnalysisParseError("No JSON object found in reasoning response")


def _parse_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, float(value)))


class AnalyzerAgent:
    """Produces one AnalysisResult per vault per cycle."""

    def __init__(
        self,
        strategy_loader: StrategyLoader,
        rate_limiter: RateLimiter,
        backend: Optional[ReasoningBackend] = None,
        token_decimals: int = 9,
    ):
        self.strategy_loader = strategy_loader
        self.rate_limiter = rate_limiter
        self.backend = backend
        self.token_decimals = token_decimals

    def analyze_vault(self, metrics: VaultHealthMetrics) -> AnalysisResult:
        strategy_name = self.strategy_loader.strategy_name_for(metrics.owner)
        thresholds = self.strategy_loader.resolve_profile(metrics.owner)

        if self.backend is None:
            return self.fallback_analysis(metrics, thresholds)

        self.rate_limiter.wait_for_slot()

        try:
            prompt = self.build_analysis_prompt(metrics, thresholds, strategy_name)
            logger.info("Analyzer: Requesting analysis for vault %s [strategy: %s]", metrics.vault_id, strategy_name)
            response = self.backend.complete(ANALYZER_SYSTEM_PROMPT, prompt)
            logger.debug("Analyzer: Raw response for %s: %s", metrics.vault_id, response.text)
        except Exception as ex:
            logger.error("Analyzer: Reasoning call failed for %s, using rule-based fallback: %s",
                         metrics.vault_id, ex, exc_info=True)
            return self.fallback_analysis(metrics, thresholds)

        try:
            return self.parse_analysis_response(response.text, metrics)
        except AnalysisParseError as ex:
            logger.warning("Analyzer: Failed to parse response for %s, using fallback: %s", metrics.vault_id, ex)
            return self.fallback_analysis(metrics, thresholds)

    def analyze_vaults(self, metrics_list: List[VaultHealthMetrics]) -> List[AnalysisResult]:
        """Analyze vaults one at a time, highest LTV first."""
        ordered = sorted(metrics_list, key=lambda metrics: metrics.ltv_bps, reverse=True)
        return [self.analyze_vault(metrics) for metrics in ordered]

    def build_analysis_prompt(self, metrics: VaultHealthMetrics, thresholds: ThresholdProfile, strategy_name: str) -> str:
        return (
            f"Analyze this vault using the {strategy_name} strategy:\n\n"
            "Strategy thresholds:\n"
            f"- Warning >= {format_bps(thresholds.warning)}\n"
            f"- Rebalance >= {format_bps(thresholds.rebalance)}\n"
            f"- Max Borrow >= {format_bps(thresholds.max_borrow)}\n"
            f"- Liquidation >= {format_bps(thresholds.liquidation)}\n\n"
            f"Vault ID: {metrics.vault_id}\n"
            f"Owner: {metrics.owner}\n"
            f"Current LTV: {format_bps(metrics.ltv_bps)}\n"
            f"Health Status: {metrics.health_status.value}\n"
            f"Collateral Value: ${format_token_amount(metrics.collateral_value, self.token_decimals)}\n"
            f"Debt Value: ${format_token_amount(metrics.debt_value, self.token_decimals)}\n"
            f"Pending Staking Rewards: {format_token_amount(metrics.pending_rewards, self.token_decimals)}\n"
            f"Existing Reward Reserve: {format_token_amount(metrics.reward_reserve, self.token_decimals)}\n\n"
            "Should we take action?"
        )

    def parse_analysis_response(self, text: str, metrics: VaultHealthMetrics) -> AnalysisResult:
        parsed = extract_json_object(text or "")
        reasoning = parsed.get("reasoning")

        return AnalysisResult(
            vault_id=metrics.vault_id,
            should_act=parsed.get("shouldAct") is True,
            action=RecommendedAction.parse(parsed.get("action")),
            reasoning=str(reasoning) if reasoning else "No reasoning provided",
            confidence=_parse_confidence(parsed.get("confidence", DEFAULT_CONFIDENCE)),
            estimated_rewards_needed=estimate_rewards_needed(metrics.debt_value, metrics.collateral_value),
            available_rewards=metrics.pending_rewards + metrics.reward_reserve,
        )

    @staticmethod
    def fallback_analysis(metrics: VaultHealthMetrics, thresholds: ThresholdProfile) -> AnalysisResult:
        """Deterministic rule set used whenever the reasoning backend cannot decide."""
        should_act = False
        action = RecommendedAction.NONE
        reasoning = "Vault is healthy and no funds available"

        if metrics.ltv_bps >= thresholds.liquidation:
            should_act = True
            action = RecommendedAction.URGENT_REBALANCE
            reasoning = "CRITICAL: Vault at liquidation risk"
        elif metrics.ltv_bps >= thresholds.max_borrow:
            should_act = True
            action = RecommendedAction.URGENT_REBALANCE
            reasoning = "Vault LTV exceeds max borrow threshold"
        elif metrics.ltv_bps >= thresholds.rebalance:
            should_act = metrics.has_funds
            action = RecommendedAction.REBALANCE
            reasoning = "Vault LTV in rebalance zone"
        elif metrics.ltv_bps >= thresholds.warning:
            should_act = metrics.has_funds
            action = RecommendedAction.CLAIM_REWARDS
            reasoning = "Vault LTV in warning zone, claiming rewards as precaution"
        elif metrics.has_funds:
            should_act = True
            action = RecommendedAction.CLAIM_REWARDS
            reasoning = "Vault healthy but rewards available, compounding yield"

        return AnalysisResult(
            vault_id=metrics.vault_id,
            should_act=should_act,
            action=action,
            reasoning=reasoning,
            confidence=FALLBACK_CONFIDENCE,
            estimated_rewards_needed=estimate_rewards_needed(metrics.debt_value, metrics.collateral_value),
            available_rewards=metrics.pending_rewards + metrics.reward_reserve,
        )
