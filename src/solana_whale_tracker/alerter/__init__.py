"""Alerting layer - Formatting and dispatch of matched alerts."""

from solana_whale_tracker.alerter.dispatcher import AlertDispatcher, LoggingSink, NotificationSink
from solana_whale_tracker.alerter.formatter import AlertFormatter
from solana_whale_tracker.alerter.models import DispatchStats, FormattedAlert

__all__ = [
    "AlertDispatcher",
    "AlertFormatter",
    "DispatchStats",
    "FormattedAlert",
    "LoggingSink",
    "NotificationSink",
]
