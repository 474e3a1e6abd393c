"""
VaultMonitor - runs the refresh -> metrics -> analyze -> execute cycle on a fixed interval.
"""

import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from app.rebalancer.analyzer import AnalyzerAgent
from app.rebalancer.chain_client import ChainClient
from app.rebalancer.executor import ExecutorAgent
from app.rebalancer.health import format_bps
from app.rebalancer.logging_config import setup_logger
from app.rebalancer.models import CycleReport, ExecutionResult, HealthStatus, MonitoringEvent, VaultHealthMetrics
from app.rebalancer.notifications import post_action_result_notification, post_monitoring_event_notification
from app.rebalancer.rate_limiter import RateLimiter, VaultCooldown
from app.rebalancer.reasoning import OpenAIReasoningBackend
from app.rebalancer.strategy_loader import StrategyLoader
from app.rebalancer.tools import WRITE_TOOLS

logger = setup_logger()


class MonitorState(Enum):
    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


class VaultMonitor:
    """
    Primary class of the rebalance agent.
    Owns the vault registry, the cooldown tracker and the agents, and runs
    monitoring cycles sequentially on a single scheduler thread.
    """

    def __init__(
        self,
        config,
        chain_client,
        analyzer: AnalyzerAgent,
        executor: ExecutorAgent,
        strategy_loader: StrategyLoader,
        notify: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.chain_client = chain_client
        self.analyzer = analyzer
        self.executor = executor
        self.strategy_loader = strategy_loader
        self.notify = notify
        self._clock = clock

        self.monitor_interval = float(config.MONITOR_INTERVAL_SECONDS)
        self.refresh_interval = float(config.REFRESH_INTERVAL_SECONDS)

        self.state = MonitorState.STOPPED
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        # Serializes cycles across the caller and the scheduler thread
        self._cycle_lock = threading.Lock()

        # Cached registry
        self.authorized_vaults: List[str] = []
        self.auto_rebalance_positions: Dict[str, str] = {}
        self.last_refresh: Optional[float] = None

        self.latest_metrics: Dict[str, VaultHealthMetrics] = {}
        self.last_report: Optional[CycleReport] = None
        self.recent_events: Deque[MonitoringEvent] = deque(maxlen=int(getattr(config, "RECENT_EVENTS_LIMIT", 100)))

    @classmethod
    def from_config(cls, config, notify: Optional[bool] = None) -> "VaultMonitor":
        """Build a monitor with its chain client, agents, rate limiters and cooldown tracker."""
        chain_client = ChainClient(config)
        strategy_loader = StrategyLoader.from_config(config)
        backend = OpenAIReasoningBackend.from_config(config)
        decimals = int(config.TOKEN_DECIMALS)

        analyzer = AnalyzerAgent(
            strategy_loader=strategy_loader,
            rate_limiter=RateLimiter("Analyzer", config.ANALYZER_MAX_RPM),
            backend=backend,
            token_decimals=decimals,
        )
        executor = ExecutorAgent(
            chain_client=chain_client,
            rate_limiter=RateLimiter("Executor", config.EXECUTOR_MAX_RPM),
            cooldown=VaultCooldown(config.MIN_REBALANCE_INTERVAL_SECONDS),
            backend=backend,
            token_decimals=decimals,
        )

        if notify is None:
            notify = bool(config.NOTIFICATION_URL)

        monitor = cls(config, chain_client, analyzer, executor, strategy_loader, notify=notify)
        if config.SAMPLE_VAULT_ID:
            monitor.add_vault(config.SAMPLE_VAULT_ID, config.SAMPLE_STAKE_POSITION_ID or None)
        return monitor

    @property
    def is_running(self) -> bool:
        return self.state is MonitorState.RUNNING

    def start(self) -> None:
        """Run one cycle now, then keep running cycles every monitor interval until stopped."""
        if self.is_running:
            logger.warning("VaultMonitor: Monitor already running")
            return

        self.state = MonitorState.RUNNING
        # Fresh event per run, so a scheduler thread left over from a previous run stays stopped
        stop_event = threading.Event()
        self._stop_event = stop_event
        logger.info("VaultMonitor: Starting vault monitor, interval %ss", self.monitor_interval)
        logger.info("VaultMonitor: Agent address %s", self.chain_client.get_agent_address())

        self.run_monitoring_cycle()

        if stop_event.is_set():
            return

        self._thread = threading.Thread(
            target=self._run_schedule, args=(stop_event,), name="vault-monitor", daemon=True
        )
        self._thread.start()

    def _run_schedule(self, stop_event: threading.Event) -> None:
        # The next wait only starts once the previous cycle returned
        while not stop_event.wait(self.monitor_interval):
            self.run_monitoring_cycle()

    def stop(self) -> None:
        """Stop scheduling further cycles. An in-flight cycle runs to completion."""
        self._stop_event.set()
        if self.is_running:
            self.state = MonitorState.STOPPED
            logger.info("VaultMonitor: Vault monitor stopped")

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def run_monitoring_cycle(self) -> CycleReport:
        """
        Run a single monitoring cycle.

        Never raises: failures are logged and emitted as an "error" monitoring event.

        Returns:
            CycleReport describing the cycle.
        """
        with self._cycle_lock:
            return self._run_cycle()

    def _run_cycle(self) -> CycleReport:
        report = CycleReport(started_at=self._clock())
        logger.info("VaultMonitor: Starting monitoring cycle...")

        try:
            self.refresh_cached_data()

            metrics_map = self.collect_metrics()
            self.latest_metrics = metrics_map
            report.vaults_checked = len(metrics_map)

            for metrics in metrics_map.values():
                self._log_vault_status(metrics)
            self.emit_event(MonitoringEvent(
                type="health_check",
                details={
                    "vaults_checked": len(metrics_map),
                    "at_risk": [
                        vault_id for vault_id, metrics in metrics_map.items()
                        if metrics.health_status.severity >= HealthStatus.AT_RISK.severity
                    ],
                },
            ))

            analyses = self.analyzer.analyze_vaults(list(metrics_map.values()))
            report.analyses = analyses

            actionable = [analysis for analysis in analyses if analysis.should_act]
            if not actionable:
                logger.info("VaultMonitor: No action needed this cycle")
            else:
                logger.info("VaultMonitor: %s vault(s) need attention", len(actionable))
                for analysis in actionable:
                    logger.info(
                        "VaultMonitor:   -> %s %s | %s | confidence %.2f",
                        analysis.vault_id, analysis.action.value, analysis.reasoning, analysis.confidence,
                    )

                results = self.executor.execute_actions(actionable, metrics_map, self.auto_rebalance_positions)
                report.results = results
                self._log_results_summary(results)
                self._report_results(results, metrics_map)

        except Exception as ex:
            logger.error("VaultMonitor: Monitoring cycle error: %s", ex, exc_info=True)
            report.error = str(ex)
            self.emit_event(MonitoringEvent(type="error", details={"error": str(ex)}))

        report.duration_seconds = self._clock() - report.started_at
        self.last_report = report
        logger.info("VaultMonitor: Monitoring cycle completed in %.2fs", report.duration_seconds)
        return report

    def refresh_cached_data(self) -> bool:
        """
        Refresh the authorized vault registry and linked stake positions.

        Skipped entirely, cooldown cleanup included, if the last refresh is
        more recent than the refresh interval.

        Returns:
            bool: True if a refresh happened.
        """
        now = self._clock()
        if self.last_refresh is not None and now - self.last_refresh < self.refresh_interval:
            return False

        logger.info("VaultMonitor: Refreshing cached data...")

        # Merge, keeping manually added vaults and positions
        for vault_id in self.chain_client.get_authorized_vaults():
            if vault_id not in self.authorized_vaults:
                self.authorized_vaults.append(vault_id)

        for vault_id, position_id in self.chain_client.get_auto_rebalance_positions().items():
            self.auto_rebalance_positions.setdefault(vault_id, position_id)

        self.last_refresh = now

        logger.info("VaultMonitor: Found %s authorized vault(s)", len(self.authorized_vaults))
        logger.info("VaultMonitor: Found %s auto-rebalance position(s)", len(self.auto_rebalance_positions))

        self.executor.cleanup_cooldowns()
        return True

    def collect_metrics(self) -> Dict[str, VaultHealthMetrics]:
        """Health snapshot for every tracked vault that could be read this cycle."""
        if not self.authorized_vaults:
            return {}

        collateral_price = self.chain_client.get_price(self.config.COLLATERAL_ASSET)
        if collateral_price <= 0:
            logger.warning("VaultMonitor: No price for %s, skipping all vaults this cycle", self.config.COLLATERAL_ASSET)
            return {}

        metrics_map = {}
        for vault_id in self.authorized_vaults:
            vault = self.chain_client.get_vault(vault_id)
            if vault is None:
                logger.warning("VaultMonitor: Could not read vault %s, skipping", vault_id)
                continue

            position_id = self.auto_rebalance_positions.get(vault_id)
            stake_position = None
            if position_id:
                stake_position = self.chain_client.get_stake_position(position_id)
                if stake_position is None:
                    logger.warning(
                        "VaultMonitor: Could not read stake position %s of vault %s, skipping", position_id, vault_id
                    )
                    continue

            profile = self.strategy_loader.resolve_profile(vault.owner)
            metrics_map[vault_id] = self.chain_client.calculate_vault_health(
                vault, stake_position, collateral_price, profile
            )

        return metrics_map

    def add_vault(self, vault_id: str, stake_position_id: Optional[str] = None) -> None:
        """Manually add a vault (and optionally its stake position) to monitoring."""
        if vault_id not in self.authorized_vaults:
            self.authorized_vaults.append(vault_id)
        if stake_position_id:
            self.auto_rebalance_positions[vault_id] = stake_position_id
        logger.info("VaultMonitor: Added vault %s to monitoring", vault_id)

    def get_status(self) -> Dict[str, Any]:
        status = {
            "is_running": self.is_running,
            "state": self.state.value,
            "vault_count": len(self.authorized_vaults),
            "position_count": len(self.auto_rebalance_positions),
            "agent_address": self.chain_client.get_agent_address(),
            "last_refresh": self.last_refresh,
            "last_cycle": None,
        }
        if self.last_report is not None:
            status["last_cycle"] = {
                "started_at": self.last_report.started_at,
                "duration_seconds": self.last_report.duration_seconds,
                "vaults_checked": self.last_report.vaults_checked,
                "successful": self.last_report.successful,
                "failed": self.last_report.failed,
                "error": self.last_report.error,
            }
        return status

    def emit_event(self, event: MonitoringEvent) -> None:
        self.recent_events.append(event)
        logger.debug("VaultMonitor: Event %s %s", event.type, event.details)

        if self.notify and event.type == "error":
            try:
                post_monitoring_event_notification(event, self.config)
            except Exception as ex:
                logger.error("VaultMonitor: Failed to post monitoring event notification: %s", ex, exc_info=True)

    def _report_results(self, results: List[ExecutionResult], metrics_map: Dict[str, VaultHealthMetrics]) -> None:
        for result in results:
            if result.action == "cooldown":
                self.emit_event(MonitoringEvent(
                    type="rate_limited", vault_id=result.vault_id, details={"retry_after": result.retry_after},
                ))
                continue

            if not (result.success and result.action in WRITE_TOOLS):
                continue

            self.emit_event(MonitoringEvent(
                type="action_taken",
                vault_id=result.vault_id,
                details={
                    "action": result.action,
                    "tx_digest": result.tx_digest,
                    "rewards_claimed": result.rewards_claimed,
                    "collateral_added": result.collateral_added,
                },
            ))
            if self.notify:
                try:
                    post_action_result_notification(result, metrics_map[result.vault_id], self.config)
                except Exception as ex:
                    logger.error("VaultMonitor: Failed to post action notification for %s: %s",
                                 result.vault_id, ex, exc_info=True)

    @staticmethod
    def _log_vault_status(metrics: VaultHealthMetrics) -> None:
        logger.debug(
            "VaultMonitor: Vault %s | LTV: %s | Status: %s",
            metrics.vault_id, format_bps(metrics.ltv_bps), metrics.health_status.value,
        )

    @staticmethod
    def _log_results_summary(results: List[ExecutionResult]) -> None:
        successful = [result for result in results if result.success]
        failed = [result for result in results if not result.success]

        logger.info("VaultMonitor: Execution summary: %s successful, %s failed", len(successful), len(failed))

        for result in successful:
            if result.tx_digest:
                logger.info("VaultMonitor:   %s on %s | TX: %s", result.action, result.vault_id, result.tx_digest)

        for result in failed:
            logger.warning("VaultMonitor:   %s on %s | Error: %s", result.action, result.vault_id, result.error)
