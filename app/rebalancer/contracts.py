"""
Contract instance creation utilities.
"""

import json

from web3.contract import Contract

from app.rebalancer.exceptions import ConfigError


def load_abi(abi_path: str) -> list:
    """
    Read the "abi" list from a JSON contract artifact.

    Raises:
        ConfigError: If the artifact is missing or malformed.
    """
    try:
        with open(abi_path, "r", encoding="utf-8") as file:
            interface = json.load(file)
        return interface["abi"]
    except (OSError, json.JSONDecodeError, KeyError, TypeError) as exc:
        raise ConfigError(f"Could not load ABI from {abi_path}: {exc}") from exc


def create_contract_instance(address: str, abi_path: str, config) -> Contract:
    """
    Create and return a Web3 contract instance.

    Args:
        address: The address of the contract.
        abi_path: Path to a JSON artifact with an "abi" key.
        config: Agent configuration containing the Web3 instance.

    Returns:
        Web3 contract instance.
    """
    return config.w3.eth.contract(address=address, abi=load_abi(abi_path))
