"""
Apprise notification functions for the rebalance agent.
"""

import time

from apprise import Apprise

from app.rebalancer.health import format_bps, format_token_amount
from app.rebalancer.logging_config import setup_logger
from app.rebalancer.models import ExecutionResult, MonitoringEvent, VaultHealthMetrics

logger = setup_logger()


def setup_apprise_notification_object(config) -> Apprise:
    """Set up the Apprise notification engine."""
    apprise = Apprise()
    if config.NOTIFICATION_URL:
        apprise.add(config.NOTIFICATION_URL)
    return apprise


def post_action_result_notification(result: ExecutionResult, metrics: VaultHealthMetrics, config) -> bool:
    """Post a notification about an on-chain action taken on a vault."""
    message = (
        ":shield: *Vault Action Executed* :shield:\n\n"
        f"*Vault*: `{result.vault_id}`\n"
        f"*Action*: `{result.action}`\n"
        f"*LTV before action*: `{format_bps(metrics.ltv_bps)}` ({metrics.health_status.value})\n"
        f"*Rewards Claimed*: `{format_token_amount(result.rewards_claimed or 0, int(config.TOKEN_DECIMALS))}`\n"
        f"*Collateral Added*: `{format_token_amount(result.collateral_added or 0, int(config.TOKEN_DECIMALS))}`\n"
        f"*Transaction*: `{result.tx_digest}`\n"
        f"Time of action: {time.strftime('%Y-%m-%d %H:%M:%S')}\n"
    )
    logger.info("Action result notification:\n%s", message)

    apprise = setup_apprise_notification_object(config)
    return apprise.notify(body=message, title="Vault Action Executed")


def post_monitoring_event_notification(event: MonitoringEvent, config) -> bool:
    """Post a notification for a monitoring event, e.g. a failed cycle."""
    details = "\n".join(f"• {key}: `{value}`" for key, value in event.details.items())
    message = (
        f":rotating_light: *Monitoring Event: {event.type}* :rotating_light:\n\n"
        f"{details}\n"
        f"Time: {time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(event.timestamp))}\n"
    )
    if event.vault_id:
        message += f"Vault: `{event.vault_id}`\n"

    logger.info("Monitoring event notification:\n%s", message)

    apprise = setup_apprise_notification_object(config)
    return apprise.notify(body=message, title=f"Monitoring Event: {event.type}")
