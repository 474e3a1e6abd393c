"""
Command line entry points for the rebalance agent.
"""

import argparse
import signal
import sys
import threading
from typing import List, Optional

from dotenv import load_dotenv

from app.rebalancer.config_loader import load_agent_config
from app.rebalancer.exceptions import ConfigError
from app.rebalancer.logging_config import global_exception_handler, setup_logger
from app.rebalancer.vault_monitor import VaultMonitor

logger = setup_logger()


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Vault health monitoring and auto-rebalance agent")
    parser.add_argument("--once", action="store_true", help="run a single monitoring cycle and exit")
    parser.add_argument("--config", default=None, help="path to config.yaml (default: app/config.yaml)")
    parser.add_argument("--env-file", default=None, help="dotenv file to load before reading config")
    return parser.parse_args(argv)


def _build_monitor(config_path: Optional[str], env_file: Optional[str]) -> Optional[VaultMonitor]:
    load_dotenv(dotenv_path=env_file)
    try:
        config = load_agent_config(config_path)
        logger.info("CLI: Starting %s", config.AGENT_NAME)
        logger.info("Config: Reasoning backend %s", "enabled" if config.reasoning_enabled else "disabled, rule-based only")
        return VaultMonitor.from_config(config)
    except ConfigError as ex:
        logger.critical("Config: %s", ex)
        return None


def run_once(vault_monitor: VaultMonitor) -> int:
    report = vault_monitor.run_monitoring_cycle()
    logger.info(
        "CLI: Cycle checked %s vault(s), %s successful, %s failed",
        report.vaults_checked, report.successful, report.failed,
    )
    return 0


def run_forever(vault_monitor: VaultMonitor) -> int:
    shutdown = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info("CLI: Received signal %s, shutting down...", signum)
        vault_monitor.stop()
        shutdown.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    vault_monitor.start()
    logger.info("CLI: Agent is running. Press Ctrl+C to stop.")

    while not shutdown.wait(1):
        pass

    vault_monitor.join(timeout=vault_monitor.monitor_interval)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    sys.excepthook = global_exception_handler
    args = _parse_args(argv)

    vault_monitor = _build_monitor(args.config, args.env_file)
    if vault_monitor is None:
        return 1

    if args.once:
        return run_once(vault_monitor)
    return run_forever(vault_monitor)


def main_once() -> int:
    return main(["--once"] + sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
