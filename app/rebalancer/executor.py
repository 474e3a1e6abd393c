"""
Executor agent - turns analyses into at most one on-chain action per vault.

The reasoning backend is asked to select exactly one tool; when it cannot be
used the same priority policy is applied locally.
"""

from typing import Dict, List, Optional

from app.rebalancer.health import format_bps, format_token_amount
from app.rebalancer.logging_config import setup_logger
from app.rebalancer.models import AnalysisResult, ExecutionResult, RecommendedAction, VaultHealthMetrics
from app.rebalancer.rate_limiter import RateLimiter, VaultCooldown
from app.rebalancer.reasoning import ReasoningBackend
from app.rebalancer.tools import (
    CLAIM_AND_REBALANCE,
    EXECUTOR_TOOLS,
    REBALANCE_FROM_RESERVE,
    SKIP_ACTION,
    WRITE_TOOLS,
    ToolExecutor,
)

logger = setup_logger()

EXECUTOR_SYSTEM_PROMPT = """You are an executor authorized to protect and optimise collateral vaults.

You MUST call exactly one tool every time.

AVAILABLE ACTIONS:
1. claim_and_rebalance    - Claim staking rewards and add them as collateral.
2. rebalance_from_reserve - Use existing reserve funds as collateral.
3. skip_action            - Decline to act (only when truly no funds exist).

DECISION RULES (in priority order):
1. If pending rewards > 0 -> use claim_and_rebalance.
2. Else if reserve > 0    -> use rebalance_from_reserve.
3. Else                   -> use skip_action and explain why.

Never respond with plain text alone."""


class ExecutorAgent:
    """Dispatches corrective actions, gated by cooldown and rate limit."""

    def __init__(
        self,
        chain_client,
        rate_limiter: RateLimiter,
        cooldown: VaultCooldown,
        backend: Optional[ReasoningBackend] = None,
        token_decimals: int = 9,
    ):
        self.rate_limiter = rate_limiter
        self.cooldown = cooldown
        self.backend = backend
        self.tool_executor = ToolExecutor(chain_client)
        self.token_decimals = token_decimals

    def execute_action(
        self, analysis: AnalysisResult, metrics: VaultHealthMetrics, stake_position_id: Optional[str]
    ) -> ExecutionResult:
        vault_id = analysis.vault_id

        if not self.cooldown.can_act(vault_id):
            wait_time = self.cooldown.get_time_until_ready(vault_id)
            logger.info("Executor: Vault %s on cooldown, %.0fs remaining", vault_id, wait_time)
            return ExecutionResult(
                success=False,
                action="cooldown",
                vault_id=vault_id,
                error=f"Vault on cooldown for {wait_time:.0f}s",
                retry_after=wait_time,
            )

        if self.backend is None:
            result = self.fallback_execution(analysis, metrics, stake_position_id)
            tool_name = result.action
        else:
            self.rate_limiter.wait_for_slot()
            try:
                prompt = self.build_execution_prompt(analysis, metrics, stake_position_id)
                logger.info("Executor: Requesting tool selection for vault %s", vault_id)
                response = self.backend.complete(EXECUTOR_SYSTEM_PROMPT, prompt, tools=EXECUTOR_TOOLS)

                if not response.tool_calls:
                    logger.warning("Executor: No tool call returned for vault %s", vault_id)
                    return ExecutionResult(
                        success=False, action="no_action", vault_id=vault_id, error="Backend did not select a tool"
                    )

                tool_call = response.tool_calls[0]
                logger.info("Executor: Backend chose %s for vault %s, args=%s", tool_call.name, vault_id, tool_call.args)
                reason = str(tool_call.args.get("reasoning") or tool_call.args.get("reason") or "")
                result = self.tool_executor.execute(tool_call.name, vault_id, stake_position_id, reason)
                tool_name = tool_call.name
            except Exception as ex:
                logger.error("Executor: Tool selection failed for %s, using fallback: %s", vault_id, ex, exc_info=True)
                result = self.fallback_execution(analysis, metrics, stake_position_id)
                tool_name = result.action

        if result.success and tool_name in WRITE_TOOLS:
            self.cooldown.record_action(vault_id)

        return result

    def execute_actions(
        self,
        analyses: List[AnalysisResult],
        metrics_map: Dict[str, VaultHealthMetrics],
        positions_map: Dict[str, str],
    ) -> List[ExecutionResult]:
        """Dispatch actionable analyses one at a time, most severe action first."""
        actionable = [a for a in analyses if a.should_act and a.action != RecommendedAction.NONE]
        actionable.sort(key=lambda analysis: analysis.action.priority, reverse=True)

        results = []
        for analysis in actionable:
            metrics = metrics_map.get(analysis.vault_id)
            if metrics is None:
                logger.warning("Executor: No metrics for vault %s, skipping", analysis.vault_id)
                continue

            result = self.execute_action(analysis, metrics, positions_map.get(analysis.vault_id))
            results.append(result)

            if result.success:
                logger.info(
                    "Executor: %s on vault %s (tx=%s, rewards_claimed=%s, collateral_added=%s)",
                    result.action, result.vault_id, result.tx_digest, result.rewards_claimed, result.collateral_added,
                )
            else:
                logger.warning("Executor: %s failed on vault %s: %s", result.action, result.vault_id, result.error)

        return results

    def build_execution_prompt(
        self, analysis: AnalysisResult, metrics: VaultHealthMetrics, stake_position_id: Optional[str]
    ) -> str:
        return (
            "Execute vault protection action:\n\n"
            f"Vault ID: {analysis.vault_id}\n"
            f"Stake Position ID: {stake_position_id or 'NOT LINKED'}\n"
            f"Current LTV: {format_bps(metrics.ltv_bps)}\n"
            f"Health Status: {metrics.health_status.value}\n"
            f"Pending Rewards: {format_token_amount(metrics.pending_rewards, self.token_decimals)}\n"
            f"Reward Reserve: {format_token_amount(metrics.reward_reserve, self.token_decimals)}\n"
            f"Recommended Action: {analysis.action.value}\n"
            f"Analysis Reasoning: {analysis.reasoning}\n\n"
            "Based on this data, call the appropriate tool now."
        )

    def fallback_execution(
        self, analysis: AnalysisResult, metrics: VaultHealthMetrics, stake_position_id: Optional[str]
    ) -> ExecutionResult:
        """Rule-based tool selection, no backend call."""
        logger.info("Executor: Using rule-based selection for vault %s", analysis.vault_id)

        if stake_position_id and metrics.pending_rewards > 0:
            return self.tool_executor.execute(
                CLAIM_AND_REBALANCE, analysis.vault_id, stake_position_id,
                "Fallback: claiming available rewards to strengthen collateral",
            )

        if metrics.reward_reserve > 0:
            return self.tool_executor.execute(
                REBALANCE_FROM_RESERVE, analysis.vault_id, stake_position_id,
                "Fallback: using reserve to strengthen collateral",
            )

        return self.tool_executor.execute(
            SKIP_ACTION, analysis.vault_id, stake_position_id, "No rewards or reserve available for rebalancing"
        )

    def cleanup_cooldowns(self) -> int:
        return self.cooldown.cleanup()
