"""Alert subscription matcher.

Holds an in-memory snapshot of active subscriptions (grouped by alert type)
and of tracked KOL wallets, and evaluates swap events and cluster results
against them. Evaluation is pure: it returns every match and leaves
delivery to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from decimal import Decimal
from typing import assert_never

from solana_whale_tracker.detector.models import (
    AlertMatch,
    AlertSubscription,
    AlertType,
    AlphaStreamConfig,
    ClusterResult,
    KolActivityConfig,
    KolProfile,
    KolProfileConfig,
    MatcherMetrics,
    WhaleClusterConfig,
)
from solana_whale_tracker.ingestor.models import NormalizedSwapEvent

logger = logging.getLogger(__name__)

EVENT_ALERT_TYPES = (AlertType.ALPHA_STREAM, AlertType.KOL_ACTIVITY, AlertType.KOL_PROFILE)
CLUSTER_ALERT_TYPES = (AlertType.WHALE_CLUSTER,)


def _normalize_username(username: str) -> str:
    return username.strip().lstrip("@").lower()


def _within_market_cap(
    market_cap: Decimal | None,
    min_cap: Decimal | None,
    max_cap: Decimal | None,
) -> bool:
    if min_cap is None and max_cap is None:
        return True
    if market_cap is None:
        return False
    if min_cap is not None and market_cap < min_cap:
        return False
    return not (max_cap is not None and market_cap > max_cap)


def _meets_hotness(score: float | None, minimum: float | None) -> bool:
    if minimum is None:
        return True
    return score is not None and score >= minimum


class AlertMatcher:
    """Matches signals against the active subscription snapshot."""

    def __init__(
        self,
        subscriptions: Iterable[AlertSubscription] = (),
        kols: Iterable[KolProfile] = (),
    ) -> None:
        self._by_type: dict[AlertType, tuple[AlertSubscription, ...]] = {
            alert_type: () for alert_type in AlertType
        }
        self._kols: dict[str, KolProfile] = {}
        self._last_sync: datetime | None = None
        self._evaluations = 0
        self._matches = 0
        self.replace_subscriptions(subscriptions)
        self.set_kols(kols)

    def replace_subscriptions(self, subscriptions: Iterable[AlertSubscription]) -> None:
        """Swap in a fresh snapshot of enabled subscriptions."""
        grouped: dict[AlertType, list[AlertSubscription]] = {t: [] for t in AlertType}
        for sub in subscriptions:
            if sub.enabled:
                grouped[sub.alert_type].append(sub)
        self._by_type = {t: tuple(subs) for t, subs in grouped.items()}
        self._last_sync = datetime.now(UTC)
        logger.debug(
            "Subscription snapshot replaced: %s",
            {t.value: len(subs) for t, subs in self._by_type.items()},
        )

    def set_kols(self, kols: Iterable[KolProfile]) -> None:
        self._kols = {kol.address: kol for kol in kols}

    def kol_for(self, wallet_address: str) -> KolProfile | None:
        return self._kols.get(wallet_address)

    def subscriptions_for(self, alert_type: AlertType) -> tuple[AlertSubscription, ...]:
        return self._by_type.get(alert_type, ())

    def invalidate_user(self, user_id: str) -> int:
        """Remove a user's subscriptions from the snapshot until the next sync."""
        removed = 0
        for alert_type, subs in self._by_type.items():
            kept = tuple(s for s in subs if s.user_id != user_id)
            removed += len(subs) - len(kept)
            self._by_type[alert_type] = kept
        if removed:
            logger.info("Dropped %d subscriptions for user %s", removed, user_id)
        return removed

    def evaluate(self, signal: NormalizedSwapEvent | ClusterResult) -> list[AlertMatch]:
        """Return every subscription matched by the signal."""
        self._evaluations += 1
        if isinstance(signal, ClusterResult):
            alert_types = CLUSTER_ALERT_TYPES
            kol = None
        else:
            alert_types = EVENT_ALERT_TYPES
            kol = self._kols.get(signal.wallet_address)

        matches: list[AlertMatch] = []
        for alert_type in alert_types:
            for sub in self._by_type.get(alert_type, ()):
                if self._matches_subscription(sub, signal, kol):
                    matches.append(
                        AlertMatch(
                            subscription=sub,
                            signal=signal,
                            payload=self._build_payload(sub, signal, kol),
                            kol=kol,
                        )
                    )
        self._matches += len(matches)
        return matches

    def _matches_subscription(
        self,
        sub: AlertSubscription,
        signal: NormalizedSwapEvent | ClusterResult,
        kol: KolProfile | None,
    ) -> bool:
        config = sub.config
        if isinstance(config, AlphaStreamConfig):
            return isinstance(signal, NormalizedSwapEvent) and self._match_alpha(
                config, signal, kol
            )
        if isinstance(config, WhaleClusterConfig):
            return isinstance(signal, ClusterResult) and self._match_cluster(sub.id, config, signal)
        if isinstance(config, KolActivityConfig):
            return isinstance(signal, NormalizedSwapEvent) and self._match_kol_activity(
                config, signal, kol
            )
        if isinstance(config, KolProfileConfig):
            return isinstance(signal, NormalizedSwapEvent) and self._match_kol_profile(
                config, signal, kol
            )
        assert_never(config)

    @staticmethod
    def _match_alpha(
        config: AlphaStreamConfig,
        event: NormalizedSwapEvent,
        kol: KolProfile | None,
    ) -> bool:
        # KOL trades have their own alert types
        if kol is not None or not event.is_buy:
            return False
        if config.tokens and event.token_mint not in config.tokens:
            return False
        if config.wallets and event.wallet_address not in config.wallets:
            return False
        if config.min_amount is not None and event.usd_amount < config.min_amount:
            return False
        if not config.is_whale_alert:
            return True
        # A zero threshold or minimum means "any"
        if not _meets_hotness(event.hotness_score, config.hotness_score_threshold or None):
            return False
        return not config.min_buy_amount_usd or event.usd_amount >= config.min_buy_amount_usd

    @staticmethod
    def _match_cluster(
        subscription_id: int,
        config: WhaleClusterConfig,
        cluster: ClusterResult,
    ) -> bool:
        triggered = cluster.triggered_subscription_ids
        if triggered and subscription_id not in triggered:
            return False
        if config.tokens and cluster.token_mint not in config.tokens:
            return False
        return (
            cluster.count >= config.min_cluster_size
            and cluster.total_volume_usd >= config.min_inflow_usd
        )

    @staticmethod
    def _match_kol_activity(
        config: KolActivityConfig,
        event: NormalizedSwapEvent,
        kol: KolProfile | None,
    ) -> bool:
        if kol is None:
            return False
        if config.kol_ids:
            ids = {_normalize_username(i) for i in config.kol_ids}
            if _normalize_username(kol.username) not in ids and kol.address.lower() not in ids:
                return False
        if config.tokens and event.token_mint not in config.tokens:
            return False
        if not _meets_hotness(event.hotness_score, config.min_hotness_score):
            return False
        return _within_market_cap(
            event.market_cap_usd, config.min_market_cap_usd, config.max_market_cap_usd
        )

    @staticmethod
    def _match_kol_profile(
        config: KolProfileConfig,
        event: NormalizedSwapEvent,
        kol: KolProfile | None,
    ) -> bool:
        address_match = (
            config.target_kol_address is not None
            and event.wallet_address == config.target_kol_address
        )
        username_match = (
            config.target_kol_username is not None
            and kol is not None
            and _normalize_username(kol.username) == _normalize_username(config.target_kol_username)
        )
        if not (address_match or username_match):
            return False
        if config.min_amount is not None and event.usd_amount < config.min_amount:
            return False
        if not _meets_hotness(event.hotness_score, config.min_hotness_score):
            return False
        return _within_market_cap(
            event.market_cap_usd, config.min_market_cap_usd, config.max_market_cap_usd
        )

    @staticmethod
    def _build_payload(
        sub: AlertSubscription,
        signal: NormalizedSwapEvent | ClusterResult,
        kol: KolProfile | None,
    ) -> dict[str, object]:
        payload: dict[str, object] = {
            "alert_type": sub.alert_type.value,
            "priority": sub.priority.value,
            "subscription_id": sub.id,
            "user_id": sub.user_id,
            **signal.to_dict(),
        }
        if kol is not None:
            payload["kol_username"] = kol.username
            payload["kol_name"] = kol.name
        return payload

    def get_metrics(self) -> MatcherMetrics:
        return MatcherMetrics(
            subscriptions_by_type={t.value: len(s) for t, s in self._by_type.items()},
            evaluations=self._evaluations,
            matches=self._matches,
            last_sync=self._last_sync,
        )
