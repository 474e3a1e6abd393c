"""
Executor tool declarations and their translation into chain writes.
"""

from typing import Any, Dict, List, Optional

from app.rebalancer.exceptions import ToolArgumentError
from app.rebalancer.logging_config import setup_logger
from app.rebalancer.models import ExecutionResult

logger = setup_logger()

CLAIM_AND_REBALANCE = "claim_and_rebalance"
REBALANCE_FROM_RESERVE = "rebalance_from_reserve"
SKIP_ACTION = "skip_action"

# Tools that submit a transaction and therefore start a cooldown
WRITE_TOOLS = frozenset({CLAIM_AND_REBALANCE, REBALANCE_FROM_RESERVE})


def _function_tool(name: str, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {"type": "object", "properties": properties, "required": required},
        },
    }


EXECUTOR_TOOLS = [
    _function_tool(
        CLAIM_AND_REBALANCE,
        "Claims pending staking rewards from the stake position linked to a vault and adds them to the vault "
        "as collateral, reducing its LTV. Use this whenever the vault has pending rewards and a linked stake position.",
        {
            "vault_id": {"type": "string", "description": "The id of the vault to rebalance."},
            "stake_position_id": {"type": "string", "description": "The id of the stake position linked to the vault."},
            "reasoning": {"type": "string", "description": "Brief explanation of why this rebalance is needed."},
        },
        ["vault_id", "stake_position_id", "reasoning"],
    ),
    _function_tool(
        REBALANCE_FROM_RESERVE,
        "Moves funds from the vault's reward reserve into active collateral, reducing LTV. "
        "Use this when there are no pending rewards but the reserve holds funds.",
        {
            "vault_id": {"type": "string", "description": "The id of the vault to rebalance."},
            "reasoning": {"type": "string", "description": "Brief explanation of why this rebalance is needed."},
        },
        ["vault_id", "reasoning"],
    ),
    _function_tool(
        SKIP_ACTION,
        "Explicitly skip taking any action on a vault. Use this ONLY when there are no pending rewards "
        "AND no reserve available.",
        {
            "vault_id": {"type": "string", "description": "The id of the vault being evaluated."},
            "reason": {"type": "string", "description": "Explanation of why no action is being taken."},
        },
        ["vault_id", "reason"],
    ),
]


class ToolExecutor:
    """Runs a selected executor tool against the chain client."""

    def __init__(self, chain_client):
        self.chain_client = chain_client

    def execute(
        self, tool_name: str, vault_id: str, stake_position_id: Optional[str] = None, reason: str = ""
    ) -> ExecutionResult:
        """
        Execute one tool for one vault.

        Vault and stake position ids are supplied by the caller from monitor
        state, not taken from backend arguments.

        Raises:
            ToolArgumentError: If claim_and_rebalance is selected without a linked stake position.
        """
        logger.info("ToolExecutor: Executing %s on vault %s (%s)", tool_name, vault_id, reason or "no reason given")

        if tool_name == CLAIM_AND_REBALANCE:
            if not stake_position_id:
                raise ToolArgumentError(f"Vault {vault_id} has no linked stake position to claim from")
            return self.chain_client.execute_claim_and_rebalance(stake_position_id, vault_id)

        if tool_name == REBALANCE_FROM_RESERVE:
            return self.chain_client.execute_rebalance_from_reserve(vault_id)

        if tool_name == SKIP_ACTION:
            logger.info("ToolExecutor: Skipping action on vault %s: %s", vault_id, reason)
            return ExecutionResult(success=True, action="skip", vault_id=vault_id)

        logger.error("ToolExecutor: Unknown tool: %s", tool_name)
        return ExecutionResult(success=False, action=tool_name, vault_id=vault_id, error=f"Unknown tool: {tool_name}")
