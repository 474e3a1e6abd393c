"""
Chain reader/writer for the vault manager contract.

Reads fail closed (None or empty collections, logged); writes never raise and
report failures as unsuccessful ExecutionResults.
"""

import time
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from web3 import Web3
from web3.logs import DISCARD

from app.rebalancer.contracts import create_contract_instance
from app.rebalancer.exceptions import ChainReadError, ChainWriteError, ConfigError
from app.rebalancer.health import calculate_vault_health
from app.rebalancer.logging_config import setup_logger
from app.rebalancer.models import (
    ExecutionResult,
    StakePositionData,
    ThresholdProfile,
    VaultData,
    VaultHealthMetrics,
)

logger = setup_logger()

ZERO_ID = "0x" + "00" * 32
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def to_id_bytes(object_id: str) -> bytes:
    return Web3.to_bytes(hexstr=object_id).rjust(32, b"\0")


def to_id_hex(raw: bytes) -> str:
    return Web3.to_hex(raw).lower()


class ChainClient:
    """Reads vault state and submits agent transactions through web3."""

    def __init__(self, config, vault_manager=None, oracle=None):
        self.config = config
        self.w3 = config.w3
        try:
            self.account = self.w3.eth.account.from_key(config.AGENT_PRIVATE_KEY)
        except (ValueError, TypeError) as exc:
            raise ConfigError(f"AGENT_PRIVATE_KEY is not a valid private key: {exc}") from exc
        self.vault_manager = vault_manager or create_contract_instance(
            config.VAULT_MANAGER_ADDRESS, config.resolve_path("VAULT_MANAGER_ABI_PATH"), config
        )
        self.oracle = oracle
        if self.oracle is None and config.ORACLE_ADDRESS:
            self.oracle = create_contract_instance(config.ORACLE_ADDRESS, config.resolve_path("ORACLE_ABI_PATH"), config)

        logger.info("ChainClient: Agent initialized with address %s", self.get_agent_address())

    def get_agent_address(self) -> str:
        return self.account.address

    # Reads

    def get_vault(self, vault_id: str) -> Optional[VaultData]:
        try:
            owner, collateral, debt, reward_reserve = self._read(
                f"vault {vault_id}", self.vault_manager.functions.getVault(to_id_bytes(vault_id))
            )
        except ChainReadError as ex:
            logger.error("ChainClient: %s", ex, exc_info=True)
            return None

        if owner == ZERO_ADDRESS:
            logger.warning("ChainClient: Vault %s does not exist", vault_id)
            return None

        return VaultData(
            vault_id=vault_id,
            owner=owner,
            collateral_amount=int(collateral),
            debt_amount=int(debt),
            reward_reserve=int(reward_reserve),
        )

    def get_stake_position(self, position_id: str) -> Optional[StakePositionData]:
        try:
            owner, shares, pending_rewards, linked_vault_id, auto_rebalance = self._read(
                f"stake position {position_id}", self.vault_manager.functions.getStakePosition(to_id_bytes(position_id))
            )
        except ChainReadError as ex:
            logger.error("ChainClient: %s", ex, exc_info=True)
            return None

        linked = to_id_hex(linked_vault_id)
        return StakePositionData(
            position_id=position_id,
            owner=owner,
            shares=int(shares),
            pending_rewards=int(pending_rewards),
            linked_vault_id=None if linked == ZERO_ID else linked,
            auto_rebalance_enabled=bool(auto_rebalance),
        )

    def get_authorized_vaults(self) -> List[str]:
        """Vault ids whose owners authorized this agent."""
        try:
            logs = self.vault_manager.events.AIAuthorized().get_logs(
                from_block=self.config.DEPLOYMENT_BLOCK, to_block=self.w3.eth.block_number
            )
        except Exception as ex:
            logger.error("ChainClient: Failed to get authorized vaults: %s", ex, exc_info=True)
            return []

        agent_address = self.get_agent_address().lower()
        vault_ids = []
        for log in logs:
            if str(log["args"]["aiAddress"]).lower() != agent_address:
                continue
            vault_id = to_id_hex(log["args"]["vaultId"])
            if vault_id not in vault_ids:
                vault_ids.append(vault_id)
        return vault_ids

    def get_auto_rebalance_positions(self) -> Dict[str, str]:
        """Map of vault id to the stake position linked to it for auto-rebalance."""
        try:
            logs = self.vault_manager.events.AutoRebalanceEnabled().get_logs(
                from_block=self.config.DEPLOYMENT_BLOCK, to_block=self.w3.eth.block_number
            )
        except Exception as ex:
            logger.error("ChainClient: Failed to get auto-rebalance positions: %s", ex, exc_info=True)
            return {}

        return {to_id_hex(log["args"]["vaultId"]): to_id_hex(log["args"]["positionId"]) for log in logs}

    def get_price(self, asset: str) -> int:
        """
        Collateral price scaled by 10**TOKEN_DECIMALS.

        Uses the price oracle when one is configured, else COLLATERAL_PRICE_USD.
        Returns 0 when no price is available.
        """
        if self.oracle is not None:
            try:
                return int(self._read(f"oracle price for {asset}", self.oracle.functions.getPrice(asset)))
            except ChainReadError as ex:
                logger.error("ChainClient: %s", ex, exc_info=True)
                return 0

        try:
            return int(Decimal(str(self.config.COLLATERAL_PRICE_USD)) * self.config.price_scale)
        except InvalidOperation:
            logger.error("ChainClient: Invalid COLLATERAL_PRICE_USD '%s'", self.config.COLLATERAL_PRICE_USD)
            return 0

    def calculate_vault_health(
        self,
        vault: VaultData,
        stake_position: Optional[StakePositionData],
        collateral_price: int,
        profile: ThresholdProfile,
    ) -> VaultHealthMetrics:
        return calculate_vault_health(vault, stake_position, collateral_price, profile, self.config.price_scale)

    @staticmethod
    def _read(description: str, contract_call):
        try:
            return contract_call.call()
        except Exception as exc:
            raise ChainReadError(f"Failed to read {description}: {exc}") from exc

    # Writes

    def execute_claim_and_rebalance(self, stake_position_id: str, vault_id: str) -> ExecutionResult:
        action = "claim_and_rebalance"
        try:
            logger.info("ChainClient: Claim and rebalance vault=%s position=%s", vault_id, stake_position_id)
            function_call = self.vault_manager.functions.aiClaimAndRebalance(
                to_id_bytes(stake_position_id), to_id_bytes(vault_id)
            )
            tx_hash, receipt = self._send_transaction(function_call)
        except Exception as ex:
            logger.error("ChainClient: Failed to execute claim and rebalance for %s: %s", vault_id, ex, exc_info=True)
            return ExecutionResult(success=False, action=action, vault_id=vault_id, error=str(ex))

        rewards_claimed, collateral_added = self._parse_action_event(receipt)
        logger.info("ChainClient: Claim and rebalance executed: %s", tx_hash)
        return ExecutionResult(
            success=True,
            action=action,
            vault_id=vault_id,
            tx_digest=tx_hash,
            rewards_claimed=rewards_claimed,
            collateral_added=collateral_added,
        )

    def execute_rebalance_from_reserve(self, vault_id: str) -> ExecutionResult:
        action = "rebalance_from_reserve"
        try:
            logger.info("ChainClient: Rebalance from reserve vault=%s", vault_id)
            function_call = self.vault_manager.functions.aiRebalance(to_id_bytes(vault_id))
            tx_hash, receipt = self._send_transaction(function_call)
        except Exception as ex:
            logger.error("ChainClient: Failed to execute rebalance for %s: %s", vault_id, ex, exc_info=True)
            return ExecutionResult(success=False, action=action, vault_id=vault_id, error=str(ex))

        _, collateral_added = self._parse_action_event(receipt)
        logger.info("ChainClient: Rebalance from reserve executed: %s", tx_hash)
        return ExecutionResult(
            success=True, action=action, vault_id=vault_id, tx_digest=tx_hash, collateral_added=collateral_added
        )

    def _send_transaction(self, function_call):
        agent_address = self.get_agent_address()
        tx = function_call.build_transaction(
            {
                "chainId": self.w3.eth.chain_id,
                "from": agent_address,
                "gasPrice": self.w3.eth.gas_price,
                "nonce": self.w3.eth.get_transaction_count(agent_address, "pending"),
            }
        )
        signed_tx = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        tx_hex = Web3.to_hex(tx_hash)
        logger.info("ChainClient: Transaction sent, hash: %s", tx_hex)
        time.sleep(1)
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.config.TX_RECEIPT_TIMEOUT)
        if receipt["status"] != 1:
            raise ChainWriteError(f"Transaction {tx_hex} reverted")
        return tx_hex, receipt

    def _parse_action_event(self, receipt):
        rewards_claimed = 0
        collateral_added = 0
        try:
            for event in self.vault_manager.events.AIAction().process_receipt(receipt, errors=DISCARD):
                rewards_claimed = int(event["args"]["rewardsClaimed"])
                collateral_added = int(event["args"]["collateralAdded"])
        except Exception as ex:
            logger.warning("ChainClient: Could not decode AIAction event: %s", ex)
        return rewards_claimed, collateral_added
