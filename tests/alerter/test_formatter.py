"""Tests for the alert formatter."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from conftest import TOKEN_MINT, make_address, make_event
from solana_whale_tracker.alerter.formatter import (
    AlertFormatter,
    escape_markdown,
    format_market_cap,
    format_token_amount,
    format_usd,
    truncate_address,
)
from solana_whale_tracker.detector.models import (
    AlertMatch,
    AlertSubscription,
    AlertType,
    AlphaStreamConfig,
    ClusterResult,
    KolActivityConfig,
    KolProfile,
    WhaleClusterConfig,
)


def _match(alert_type: AlertType, config, signal, kol: KolProfile | None = None) -> AlertMatch:
    sub = AlertSubscription(id=1, user_id="user", alert_type=alert_type, config=config)
    return AlertMatch(subscription=sub, signal=signal, payload={}, kol=kol)


class TestHelpers:
    def test_escape_markdown(self) -> None:
        assert escape_markdown("a_b*c.d!") == r"a\_b\*c\.d\!"
        assert escape_markdown("plain") == "plain"

    def test_truncate_address(self) -> None:
        address = make_address(20)
        assert truncate_address(address) == f"{address[:4]}...{address[-4:]}"
        assert truncate_address("short") == "short"

    def test_format_usd(self) -> None:
        assert format_usd(Decimal("1234")) == "$1,234.00"

    @pytest.mark.parametrize(
        "amount,expected",
        [
            (None, "n/a"),
            (Decimal("950"), "$950.00"),
            (Decimal("12500"), "$12.5K"),
            (Decimal("3400000"), "$3.40M"),
            (Decimal("2100000000"), "$2.10B"),
        ],
    )
    def test_format_market_cap(self, amount, expected: str) -> None:
        assert format_market_cap(amount) == expected


class TestSwapAlerts:
    def test_whale_buy(self) -> None:
        event = make_event(signature="5sig", token_symbol="BONK", market_cap_usd=Decimal("12500"))

        alert = AlertFormatter().format(_match(AlertType.ALPHA_STREAM, AlphaStreamConfig(), event))

        assert alert.title == "Whale Buy: BONK"
        assert "Value: $2,500.00" in alert.body
        assert "Action: bought 1,000.0000 BONK" in alert.body
        assert "Market Cap: $12.5K" in alert.body
        assert "Hotness" not in alert.body
        assert alert.links == {
            "transaction": "https://solscan.io/tx/5sig",
            "wallet": f"https://solscan.io/account/{event.wallet_address}",
            "token": f"https://dexscreener.com/solana/{TOKEN_MINT}",
        }
        assert alert.plain_text.endswith(f"Token: https://dexscreener.com/solana/{TOKEN_MINT}")
        assert alert.telegram_markdown.startswith("*Whale Buy: BONK*")

    def test_kol_trade_uses_username(self) -> None:
        kol = KolProfile(address=make_address(2), username="alice")
        event = make_event(wallet=kol.address, side="SELL", token_symbol="WIF", hotness_score=7.5)

        alert = AlertFormatter().format(
            _match(AlertType.KOL_ACTIVITY, KolActivityConfig(), event, kol=kol)
        )

        assert alert.title == "KOL Sell: @alice sold WIF"
        assert "Wallet: @alice" in alert.body
        assert "Hotness: 7.5/10" in alert.body

    def test_missing_symbol_falls_back_to_mint(self) -> None:
        event = make_event(token_symbol="")

        alert = AlertFormatter().format(_match(AlertType.ALPHA_STREAM, AlphaStreamConfig(), event))

        assert alert.title == f"Whale Buy: {truncate_address(TOKEN_MINT)}"


class TestClusterAlerts:
    def test_cluster(self) -> None:
        wallets = tuple(make_address(n) for n in range(1, 8))
        cluster = ClusterResult(
            token_mint=TOKEN_MINT,
            window_start=datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
            count=7,
            total_volume_usd=Decimal("15000"),
            time_window_minutes=15,
            timestamp=datetime(2026, 1, 1, 12, 7, tzinfo=UTC),
            token_symbol="BONK",
            wallets=wallets,
        )
        config = WhaleClusterConfig(min_cluster_size=5, min_inflow_usd=Decimal("10000"))

        alert = AlertFormatter().format(_match(AlertType.WHALE_CLUSTER, config, cluster))

        assert alert.title == "Whale Cluster: 7 wallets buying BONK"
        assert "Total Inflow: $15,000.00" in alert.body
        assert "Window: 15 min" in alert.body
        assert "(+2 more)" in alert.body
        assert list(alert.links) == ["token"]
        assert "Whale Cluster: 7 wallets buying BONK" in alert.telegram_markdown


class TestBalanceNotice:
    @pytest.mark.parametrize(
        "amount,expected",
        [
            (Decimal("500000"), "500,000"),
            (Decimal("499999.50"), "499,999.5"),
            (Decimal("0"), "0"),
        ],
    )
    def test_format_token_amount(self, amount: Decimal, expected: str) -> None:
        assert format_token_amount(amount) == expected

    def test_notice(self) -> None:
        alert = AlertFormatter().format_balance_notice(Decimal("499999.5"), Decimal("500000"))

        assert alert.title == "Alerts Disconnected: Insufficient Premium Balance"
        assert "Current balance: 499,999.5" in alert.body
        assert "Required: 500,000" in alert.body
        assert alert.links == {}
        assert "Required: 500,000" in alert.plain_text
        assert "Required: 500,000" in alert.telegram_markdown
