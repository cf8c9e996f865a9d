"""Whale cluster detector.

Aggregates buy events per token over fixed, truncated time windows and
reports a cluster when enough distinct wallets have bought enough volume.
Emission is edge-triggered per subscription: a subscription is reported at
most once per (token, window).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from solana_whale_tracker.detector.models import (
    AlertSubscription,
    AlertType,
    ClusterResult,
    WhaleClusterConfig,
)
from solana_whale_tracker.ingestor.models import NormalizedSwapEvent

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MINUTES = 15

SubscriptionProvider = Callable[[], Iterable[AlertSubscription]]


@dataclass
class _ClusterWindow:
    token_mint: str
    window_start: datetime
    last_update: datetime
    token_symbol: str = ""
    wallet_volume: dict[str, Decimal] = field(default_factory=dict)
    total_volume_usd: Decimal = Decimal("0")
    triggered: set[int] = field(default_factory=set)

    @property
    def count(self) -> int:
        return len(self.wallet_volume)


class ClusterDetector:
    """Detects coordinated whale buying per token and time window.

    Only the newest window per token is kept; when an event opens a new
    window the previous aggregate is discarded. Events older than the
    current window of their token are ignored.

    ``observe`` never awaits, so each update is atomic with respect to other
    tasks on the event loop.
    """

    def __init__(
        self,
        *,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
        subscriptions: SubscriptionProvider | None = None,
    ) -> None:
        if window_minutes <= 0:
            raise ValueError("window_minutes must be > 0")
        self._window_minutes = window_minutes
        self._window_seconds = window_minutes * 60
        self._subscriptions = subscriptions or (lambda: ())
        self._windows: dict[str, _ClusterWindow] = {}

    @property
    def window_minutes(self) -> int:
        return self._window_minutes

    @property
    def active_windows(self) -> int:
        return len(self._windows)

    def window_start_for(self, timestamp: datetime) -> datetime:
        """Truncate a timestamp to the start of its aggregation window."""
        epoch = int(timestamp.timestamp())
        bucket = (epoch // self._window_seconds) * self._window_seconds
        return datetime.fromtimestamp(bucket, tz=UTC)

    def observe(self, event: NormalizedSwapEvent) -> ClusterResult | None:
        """Fold a swap into its token's window.

        Returns:
            A ClusterResult if at least one subscription's thresholds were
            crossed for the first time in this window, otherwise None.
        """
        if not event.is_buy or not event.token_mint:
            return None

        start = self.window_start_for(event.timestamp)
        window = self._windows.get(event.token_mint)
        if window is not None and start < window.window_start:
            logger.debug(
                "Ignoring late buy %s for %s (window %s already closed)",
                event.signature,
                event.token_mint,
                start.isoformat(),
            )
            return None
        if window is None or start > window.window_start:
            window = _ClusterWindow(
                token_mint=event.token_mint,
                window_start=start,
                last_update=event.timestamp,
            )
            self._windows[event.token_mint] = window

        window.wallet_volume[event.wallet_address] = (
            window.wallet_volume.get(event.wallet_address, Decimal("0")) + event.usd_amount
        )
        window.total_volume_usd += event.usd_amount
        window.last_update = max(window.last_update, event.timestamp)
        if event.token_symbol:
            window.token_symbol = event.token_symbol

        newly_triggered = self._newly_triggered(window)
        if not newly_triggered:
            return None

        window.triggered.update(newly_triggered)
        logger.info(
            "Cluster detected for %s: %d wallets, $%s in %d min window (subscriptions=%s)",
            window.token_mint,
            window.count,
            window.total_volume_usd,
            self._window_minutes,
            sorted(newly_triggered),
        )
        return ClusterResult(
            token_mint=window.token_mint,
            window_start=window.window_start,
            count=window.count,
            total_volume_usd=window.total_volume_usd,
            time_window_minutes=self._window_minutes,
            timestamp=window.last_update,
            triggered_subscription_ids=frozenset(newly_triggered),
            token_symbol=window.token_symbol,
            wallets=tuple(window.wallet_volume),
        )

    def _newly_triggered(self, window: _ClusterWindow) -> set[int]:
        crossed: set[int] = set()
        for sub in self._subscriptions():
            if sub.alert_type is not AlertType.WHALE_CLUSTER or not sub.enabled:
                continue
            if sub.id in window.triggered:
                continue
            config = sub.config
            if not isinstance(config, WhaleClusterConfig):
                continue
            if config.tokens and window.token_mint not in config.tokens:
                continue
            if (
                window.count >= config.min_cluster_size
                and window.total_volume_usd >= config.min_inflow_usd
            ):
                crossed.add(sub.id)
        return crossed

    def prune(self, now: datetime | None = None) -> int:
        """Drop windows that have ended. Returns the number removed."""
        now = now or datetime.now(UTC)
        span = timedelta(seconds=self._window_seconds)
        expired = [
            mint for mint, window in self._windows.items() if window.window_start + span <= now
        ]
        for mint in expired:
            del self._windows[mint]
        if expired:
            logger.debug("Pruned %d expired cluster windows", len(expired))
        return len(expired)

    def snapshot(self, token_mint: str) -> ClusterResult | None:
        """Current aggregate for a token, if it has a live window."""
        window = self._windows.get(token_mint)
        if window is None:
            return None
        return ClusterResult(
            token_mint=window.token_mint,
            window_start=window.window_start,
            count=window.count,
            total_volume_usd=window.total_volume_usd,
            time_window_minutes=self._window_minutes,
            timestamp=window.last_update,
            token_symbol=window.token_symbol,
            wallets=tuple(window.wallet_volume),
        )
