"""Tests for the alert subscription matcher."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from conftest import TOKEN_MINT, make_address, make_event
from solana_whale_tracker.detector.matcher import AlertMatcher
from solana_whale_tracker.detector.models import (
    AlertSubscription,
    AlertType,
    AlphaStreamConfig,
    ClusterResult,
    KolActivityConfig,
    KolProfile,
    KolProfileConfig,
    WhaleClusterConfig,
)

WHALE = make_address(1)
KOL_WALLET = make_address(2)
KOL = KolProfile(address=KOL_WALLET, username="Alice", name="Alice Trader")


def _sub(sub_id: int, alert_type: AlertType, config, *, user_id: str = "user-1", enabled=True):
    return AlertSubscription(
        id=sub_id,
        user_id=user_id,
        alert_type=alert_type,
        config=config,
        enabled=enabled,
    )


def _cluster(count: int = 5, volume: str = "12000", triggered=frozenset()) -> ClusterResult:
    ts = datetime(2026, 1, 1, 12, 5, tzinfo=UTC)
    return ClusterResult(
        token_mint=TOKEN_MINT,
        window_start=datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
        count=count,
        total_volume_usd=Decimal(volume),
        time_window_minutes=15,
        timestamp=ts,
        triggered_subscription_ids=frozenset(triggered),
    )


class TestAlphaStream:
    @pytest.mark.parametrize(
        "min_amount,usd,expected",
        [
            (None, "1", True),
            (Decimal("1000"), "999.99", False),
            (Decimal("1000"), "1000", True),
            (Decimal("1000"), "5000", True),
        ],
    )
    def test_min_amount(self, min_amount, usd: str, expected: bool) -> None:
        matcher = AlertMatcher(
            [_sub(1, AlertType.ALPHA_STREAM, AlphaStreamConfig(min_amount=min_amount))]
        )

        matches = matcher.evaluate(make_event(usd_amount=usd))

        assert bool(matches) is expected

    def test_sells_do_not_match(self) -> None:
        matcher = AlertMatcher([_sub(1, AlertType.ALPHA_STREAM, AlphaStreamConfig())])
        assert matcher.evaluate(make_event(side="SELL")) == []

    def test_kol_wallets_excluded(self) -> None:
        matcher = AlertMatcher([_sub(1, AlertType.ALPHA_STREAM, AlphaStreamConfig())], kols=[KOL])
        assert matcher.evaluate(make_event(wallet=KOL_WALLET)) == []

    def test_token_and_wallet_filters(self) -> None:
        matcher = AlertMatcher(
            [
                _sub(1, AlertType.ALPHA_STREAM, AlphaStreamConfig(tokens=frozenset({"other"}))),
                _sub(2, AlertType.ALPHA_STREAM, AlphaStreamConfig(wallets=frozenset({WHALE}))),
            ]
        )

        matches = matcher.evaluate(make_event(wallet=WHALE))

        assert [m.subscription.id for m in matches] == [2]

    @pytest.mark.parametrize(
        "hotness,usd,expected",
        [
            (7.0, "3000", True),
            (6.0, "2500", True),
            (5.9, "3000", False),
            (None, "3000", False),
            (8.0, "2499.99", False),
        ],
    )
    def test_whale_alert_thresholds(self, hotness, usd: str, expected: bool) -> None:
        config = AlphaStreamConfig.from_dict(
            {"hotnessScoreThreshold": 6, "minBuyAmountUSD": 2500, "walletLabels": ["SNIPER"]}
        )
        matcher = AlertMatcher([_sub(1, AlertType.ALPHA_STREAM, config)])

        matches = matcher.evaluate(make_event(usd_amount=usd, hotness_score=hotness))

        assert bool(matches) is expected

    def test_whale_alert_zero_thresholds_accept_any_buy(self) -> None:
        config = AlphaStreamConfig.from_dict(
            {"hotnessScoreThreshold": 0, "minBuyAmountUSD": 0, "walletLabels": []}
        )
        matcher = AlertMatcher([_sub(1, AlertType.ALPHA_STREAM, config)])

        assert len(matcher.evaluate(make_event(usd_amount="1"))) == 1
        assert matcher.evaluate(make_event(side="SELL")) == []

    def test_payload(self) -> None:
        matcher = AlertMatcher([_sub(1, AlertType.ALPHA_STREAM, AlphaStreamConfig())])

        (match,) = matcher.evaluate(make_event(signature="abc"))

        assert match.alert_type is AlertType.ALPHA_STREAM
        assert match.payload["alert_type"] == "ALPHA_STREAM"
        assert match.payload["subscription_id"] == 1
        assert match.payload["signature"] == "abc"
        assert match.kol is None


class TestWhaleCluster:
    def test_only_triggered_subscriptions_match(self) -> None:
        config = WhaleClusterConfig(min_cluster_size=5, min_inflow_usd=Decimal("10000"))
        matcher = AlertMatcher(
            [
                _sub(1, AlertType.WHALE_CLUSTER, config),
                _sub(2, AlertType.WHALE_CLUSTER, config),
            ]
        )

        matches = matcher.evaluate(_cluster(triggered={2}))

        assert [m.subscription.id for m in matches] == [2]

    def test_thresholds_checked_without_trigger_set(self) -> None:
        config = WhaleClusterConfig(min_cluster_size=5, min_inflow_usd=Decimal("10000"))
        matcher = AlertMatcher([_sub(1, AlertType.WHALE_CLUSTER, config)])

        assert matcher.evaluate(_cluster(count=4)) == []
        assert matcher.evaluate(_cluster(volume="9999")) == []
        assert len(matcher.evaluate(_cluster())) == 1

    def test_cluster_does_not_match_event_types(self) -> None:
        matcher = AlertMatcher([_sub(1, AlertType.ALPHA_STREAM, AlphaStreamConfig())])
        assert matcher.evaluate(_cluster()) == []


class TestKolActivity:
    def test_any_kol(self) -> None:
        matcher = AlertMatcher([_sub(1, AlertType.KOL_ACTIVITY, KolActivityConfig())], kols=[KOL])

        (match,) = matcher.evaluate(make_event(wallet=KOL_WALLET, side="SELL"))

        assert match.kol == KOL
        assert match.payload["kol_username"] == "Alice"

    def test_non_kol_wallet(self) -> None:
        matcher = AlertMatcher([_sub(1, AlertType.KOL_ACTIVITY, KolActivityConfig())], kols=[KOL])
        assert matcher.evaluate(make_event(wallet=WHALE)) == []

    @pytest.mark.parametrize(
        "kol_ids,expected",
        [({"@alice"}, True), ({KOL_WALLET}, True), ({"bob"}, False)],
    )
    def test_kol_id_filter(self, kol_ids: set[str], expected: bool) -> None:
        config = KolActivityConfig(kol_ids=frozenset(kol_ids))
        matcher = AlertMatcher([_sub(1, AlertType.KOL_ACTIVITY, config)], kols=[KOL])

        assert bool(matcher.evaluate(make_event(wallet=KOL_WALLET))) is expected

    @pytest.mark.parametrize(
        "hotness,market_cap,expected",
        [
            (8.0, Decimal("50000"), True),
            (4.0, Decimal("50000"), False),
            (None, Decimal("50000"), False),
            (8.0, Decimal("5000"), False),
            (8.0, None, False),
        ],
    )
    def test_hotness_and_market_cap(self, hotness, market_cap, expected: bool) -> None:
        config = KolActivityConfig(
            min_hotness_score=5.0,
            min_market_cap_usd=Decimal("10000"),
            max_market_cap_usd=Decimal("100000"),
        )
        matcher = AlertMatcher([_sub(1, AlertType.KOL_ACTIVITY, config)], kols=[KOL])
        event = make_event(wallet=KOL_WALLET, hotness_score=hotness, market_cap_usd=market_cap)

        assert bool(matcher.evaluate(event)) is expected


class TestKolProfile:
    def test_matches_by_username(self) -> None:
        config = KolProfileConfig(target_kol_username="alice")
        matcher = AlertMatcher([_sub(1, AlertType.KOL_PROFILE, config)], kols=[KOL])

        assert len(matcher.evaluate(make_event(wallet=KOL_WALLET))) == 1

    def test_matches_by_address_without_registry(self) -> None:
        config = KolProfileConfig(target_kol_address=WHALE)
        matcher = AlertMatcher([_sub(1, AlertType.KOL_PROFILE, config)])

        assert len(matcher.evaluate(make_event(wallet=WHALE))) == 1
        assert matcher.evaluate(make_event(wallet=KOL_WALLET)) == []

    def test_min_amount(self) -> None:
        config = KolProfileConfig(target_kol_username="alice", min_amount=Decimal("5000"))
        matcher = AlertMatcher([_sub(1, AlertType.KOL_PROFILE, config)], kols=[KOL])

        assert matcher.evaluate(make_event(wallet=KOL_WALLET, usd_amount="4999")) == []


class TestSnapshot:
    def test_disabled_subscriptions_skipped(self) -> None:
        matcher = AlertMatcher(
            [_sub(1, AlertType.ALPHA_STREAM, AlphaStreamConfig(), enabled=False)]
        )
        assert matcher.subscriptions_for(AlertType.ALPHA_STREAM) == ()

    def test_replace_subscriptions(self) -> None:
        matcher = AlertMatcher([_sub(1, AlertType.ALPHA_STREAM, AlphaStreamConfig())])
        matcher.replace_subscriptions([])

        assert matcher.evaluate(make_event()) == []

    def test_invalidate_user(self) -> None:
        matcher = AlertMatcher(
            [
                _sub(1, AlertType.ALPHA_STREAM, AlphaStreamConfig(), user_id="a"),
                _sub(2, AlertType.ALPHA_STREAM, AlphaStreamConfig(), user_id="b"),
                _sub(3, AlertType.KOL_ACTIVITY, KolActivityConfig(), user_id="a"),
            ]
        )

        assert matcher.invalidate_user("a") == 2
        assert [s.id for s in matcher.subscriptions_for(AlertType.ALPHA_STREAM)] == [2]
        assert matcher.subscriptions_for(AlertType.KOL_ACTIVITY) == ()
        assert matcher.invalidate_user("a") == 0

    def test_metrics(self) -> None:
        matcher = AlertMatcher([_sub(1, AlertType.ALPHA_STREAM, AlphaStreamConfig())])
        matcher.evaluate(make_event())
        matcher.evaluate(make_event(side="SELL"))

        metrics = matcher.get_metrics()

        assert metrics.evaluations == 2
        assert metrics.matches == 1
        assert metrics.total_subscriptions == 1
        assert metrics.subscriptions_by_type["ALPHA_STREAM"] == 1
        assert metrics.last_sync is not None

    def test_kol_lookup(self) -> None:
        matcher = AlertMatcher(kols=[KOL])

        assert matcher.kol_for(KOL_WALLET) == KOL
        assert matcher.kol_for(WHALE) is None
