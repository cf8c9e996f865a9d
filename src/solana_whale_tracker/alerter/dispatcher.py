"""Alert dispatch to the notification channel.

Matched alerts are gated per subscription by premium access where the alert
type requires it, formatted, and handed to a notification sink. Delivery is
fire-and-forget: a failing sink is logged and counted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from solana_whale_tracker.alerter.formatter import AlertFormatter
from solana_whale_tracker.alerter.models import DispatchStats, FormattedAlert
from solana_whale_tracker.detector.models import AlertMatch, AlertSubscription, AlertType
from solana_whale_tracker.premium.gate import PremiumAccessResult, PremiumGate

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """Delivers a rendered alert to a subscription's owner."""

    async def deliver(self, subscription: AlertSubscription, payload: FormattedAlert) -> None: ...


class LoggingSink:
    """Sink that only logs alerts. Used for dry runs."""

    async def deliver(self, subscription: AlertSubscription, payload: FormattedAlert) -> None:
        logger.info(
            "[DRY RUN] %s alert for user %s (subscription=%d): %s",
            subscription.alert_type.value,
            subscription.user_id,
            subscription.id,
            payload.title,
        )


class AlertDispatcher:
    """Formats and delivers alert matches."""

    def __init__(
        self,
        sink: NotificationSink,
        *,
        formatter: AlertFormatter | None = None,
        gate: PremiumGate | None = None,
        premium_alert_types: Iterable[AlertType] = (),
    ) -> None:
        self._sink = sink
        self._formatter = formatter or AlertFormatter()
        self._gate = gate
        self._premium_types = frozenset(premium_alert_types)
        self.stats = DispatchStats()

    async def _has_premium(self, subscription: AlertSubscription) -> bool:
        if self._gate is None or subscription.alert_type not in self._premium_types:
            return True
        if not subscription.owner_wallet:
            return False
        result = await self._gate.check_access(subscription.owner_wallet)
        return result.has_access

    async def dispatch(self, matches: Iterable[AlertMatch]) -> int:
        """Deliver matches. Returns the number delivered."""
        delivered = 0
        for match in matches:
            sub = match.subscription
            if not await self._has_premium(sub):
                self.stats.skipped_premium += 1
                logger.debug(
                    "Skipping %s alert for user %s: premium access required",
                    sub.alert_type.value,
                    sub.user_id,
                )
                continue

            payload = self._formatter.format(match)
            try:
                await self._sink.deliver(sub, payload)
            except Exception as e:
                self.stats.failed += 1
                logger.warning(
                    "Alert delivery failed for user %s (subscription=%d): %s",
                    sub.user_id,
                    sub.id,
                    e,
                )
                continue
            self.stats.delivered += 1
            delivered += 1
        return delivered

    async def notify_revoked(
        self,
        subscription: AlertSubscription,
        result: PremiumAccessResult,
    ) -> bool:
        """Tell a user their alerts are being disabled for low balance."""
        payload = self._formatter.format_balance_notice(
            result.current_balance, result.required_balance
        )
        try:
            await self._sink.deliver(subscription, payload)
        except Exception as e:
            self.stats.failed += 1
            logger.warning("Low-balance notice failed for user %s: %s", subscription.user_id, e)
            return False
        self.stats.notices_sent += 1
        return True
