"""
Tests for the notifications module.
"""

from unittest.mock import MagicMock

import pytest

from app.rebalancer import notifications as notifications_module
from app.rebalancer.models import ExecutionResult, MonitoringEvent
from app.rebalancer.notifications import (
    post_action_result_notification,
    post_monitoring_event_notification,
    setup_apprise_notification_object,
)

from conftest import make_metrics, vault_id


@pytest.fixture()
def apprise_cls(monkeypatch):
    apprise_cls = MagicMock()
    apprise_cls.return_value.notify.return_value = True
    monkeypatch.setattr(notifications_module, "Apprise", apprise_cls)
    return apprise_cls


def test_no_url_adds_no_service(config, apprise_cls):
    config.NOTIFICATION_URL = ""

    setup_apprise_notification_object(config)

    apprise_cls.return_value.add.assert_not_called()


def test_post_action_result_notification(config, apprise_cls):
    config.NOTIFICATION_URL = "json://localhost"
    result = ExecutionResult(
        success=True,
        action="claim_and_rebalance",
        vault_id=vault_id(1),
        tx_digest="0xabc",
        rewards_claimed=5_000_000_000,
        collateral_added=5_000_000_000,
    )

    assert post_action_result_notification(result, make_metrics(7200), config)

    apprise_cls.return_value.add.assert_called_once_with("json://localhost")
    body = apprise_cls.return_value.notify.call_args.kwargs["body"]
    assert vault_id(1) in body
    assert "72.00%" in body
    assert "5.0000" in body


def test_post_monitoring_event_notification(config, apprise_cls):
    event = MonitoringEvent(type="error", details={"error": "rpc down"})

    assert post_monitoring_event_notification(event, config)

    kwargs = apprise_cls.return_value.notify.call_args.kwargs
    assert kwargs["title"] == "Monitoring Event: error"
    assert "rpc down" in kwargs["body"]
