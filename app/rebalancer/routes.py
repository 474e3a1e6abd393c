"""Module for handling API routes"""

from flask import Blueprint, jsonify, make_response

from .config_loader import load_agent_config
from .logging_config import setup_logger
from .vault_monitor import VaultMonitor

logger = setup_logger()

monitor = Blueprint("monitor", __name__)


def start_monitor(config=None, notify=None):
    """Build the vault monitor from config and start it"""
    if config is None:
        config = load_agent_config()

    vault_monitor = VaultMonitor.from_config(config, notify=notify)

    # Store on module level for route access before app context is available
    start_monitor._vault_monitor = vault_monitor

    vault_monitor.start()

    return vault_monitor


def _get_vault_monitor():
    """Get the vault monitor instance."""
    return getattr(start_monitor, "_vault_monitor", None)


@monitor.route("/status", methods=["GET"])
def get_status():
    vault_monitor = _get_vault_monitor()
    if not vault_monitor:
        return jsonify({"error": "Monitor not initialized"}), 500

    return make_response(jsonify(vault_monitor.get_status()))


@monitor.route("/vaults", methods=["GET"])
def get_vaults():
    vault_monitor = _get_vault_monitor()
    if not vault_monitor:
        return jsonify({"error": "Monitor not initialized"}), 500

    logger.info("API: Getting latest vault metrics")
    response = []
    for metrics in sorted(vault_monitor.latest_metrics.values(), key=lambda m: m.ltv_bps, reverse=True):
        entry = metrics.to_dict()
        entry["stake_position_id"] = vault_monitor.auto_rebalance_positions.get(metrics.vault_id)
        response.append(entry)

    return make_response(jsonify(response))


@monitor.route("/strategies", methods=["GET"])
def get_strategies():
    vault_monitor = _get_vault_monitor()
    if not vault_monitor:
        return jsonify({"error": "Monitor not initialized"}), 500

    strategy_loader = vault_monitor.strategy_loader
    return make_response(
        jsonify(
            {
                "default": strategy_loader.default_strategy,
                "assignments": strategy_loader.assignments,
                "strategies": [strategy.to_dict() for strategy in strategy_loader.list_strategies()],
            }
        )
    )
