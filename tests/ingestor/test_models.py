"""Tests for ingestor data models."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from conftest import TOKEN_MINT, make_event
from solana_whale_tracker.ingestor.models import NormalizedSwapEvent, TransactionSignature


class TestTransactionSignature:
    def test_from_rpc_item(self) -> None:
        discovered = datetime(2026, 1, 1, tzinfo=UTC)
        sig = TransactionSignature.from_rpc_item(
            {"signature": "5abc", "slot": 123, "blockTime": 1_767_225_600, "err": None},
            address="wallet",
            discovered_at=discovered,
        )

        assert sig.signature == "5abc"
        assert sig.address == "wallet"
        assert sig.slot == 123
        assert sig.block_time == datetime.fromtimestamp(1_767_225_600, tz=UTC)
        assert sig.discovered_at == discovered

    def test_from_rpc_item_without_block_time(self) -> None:
        sig = TransactionSignature.from_rpc_item({"signature": "5abc"}, address="wallet")
        assert sig.slot is None
        assert sig.block_time is None


class TestNormalizedSwapEvent:
    def test_token_amount_uses_decimals(self) -> None:
        event = make_event(raw_amount=2_500_000, decimals=6)
        assert event.token_amount == Decimal("2.5")

    def test_side_helpers(self) -> None:
        assert make_event(side="BUY").is_buy
        assert make_event(side="SELL").is_sell

    def test_from_dict_camel_case(self) -> None:
        event = NormalizedSwapEvent.from_dict(
            {
                "signature": "sig",
                "walletAddress": "wallet",
                "tokenMint": TOKEN_MINT,
                "side": "sell",
                "rawAmount": "42",
                "decimals": 2,
                "usdAmount": "12.5",
                "timestamp": 1_767_225_600_000,
                "sourceProtocol": "raydium",
                "tokenSymbol": "BONK",
                "hotnessScore": 7.5,
                "marketCapUSD": "250000",
            }
        )

        assert event.side == "SELL"
        assert event.wallet_address == "wallet"
        assert event.raw_amount == 42
        assert event.usd_amount == Decimal("12.5")
        assert event.timestamp == datetime.fromtimestamp(1_767_225_600, tz=UTC)
        assert event.hotness_score == 7.5
        assert event.market_cap_usd == Decimal("250000")

    def test_from_dict_optional_fields_absent(self) -> None:
        event = NormalizedSwapEvent.from_dict(
            {
                "signature": "sig",
                "wallet_address": "wallet",
                "token_mint": TOKEN_MINT,
                "side": "BUY",
                "raw_amount": 1,
                "decimals": 0,
                "usd_amount": "1",
                "timestamp": "2026-01-01T00:00:00Z",
            }
        )

        assert event.hotness_score is None
        assert event.market_cap_usd is None
        assert event.timestamp == datetime(2026, 1, 1, tzinfo=UTC)

    def test_to_dict_serializes_decimals_as_strings(self) -> None:
        data = make_event(usd_amount="2500.50").to_dict()
        assert data["usd_amount"] == "2500.50"
        assert data["market_cap_usd"] is None
