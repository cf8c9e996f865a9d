"""Tests for the premium access gate."""

from __future__ import annotations

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import PREMIUM_MINT, make_address
from solana_whale_tracker.chain.rpc import SolanaRpcClient, TokenBalance
from solana_whale_tracker.premium.gate import (
    ERROR_BALANCE_UNAVAILABLE,
    ERROR_INVALID_ADDRESS,
    PremiumGate,
)
from solana_whale_tracker.premium.oracle import BalanceOracle, BalanceUnavailableError

OWNER = make_address(20)


def _balance(raw: int, decimals: int = 6) -> TokenBalance:
    return TokenBalance(owner=OWNER, mint=PREMIUM_MINT, raw_amount=raw, decimals=decimals)


@pytest.fixture
def oracle() -> MagicMock:
    mock = MagicMock()
    mock.get_balance = AsyncMock(return_value=_balance(2_000_000))
    return mock


class TestEvaluate:
    @pytest.mark.parametrize(
        "raw,has_access,difference",
        [
            (2_000_000, True, None),
            (1_000_000, True, None),
            (999_999, False, Decimal("0.000001")),
            (1_000_001, True, None),
            (500_000, False, Decimal("0.5")),
            (0, False, Decimal("1")),
        ],
    )
    async def test_threshold(self, oracle, raw: int, has_access: bool, difference) -> None:
        oracle.get_balance.return_value = _balance(raw)
        gate = PremiumGate(oracle, threshold=Decimal("1.0"))

        result = await gate.check_access(OWNER)

        assert result.has_access is has_access
        assert result.difference == difference
        assert result.current_balance == Decimal(raw).scaleb(-6)
        assert result.required_balance == Decimal("1.0")
        assert result.error is None

    def test_rejects_non_positive_threshold(self, oracle) -> None:
        with pytest.raises(ValueError):
            PremiumGate(oracle, threshold=Decimal("0"))


class TestFailures:
    @pytest.mark.parametrize("wallet", ["", "short", "0" * 44, "l" * 40])
    async def test_invalid_address(self, oracle, wallet: str) -> None:
        gate = PremiumGate(oracle, threshold=Decimal("100"))

        result = await gate.check_access(wallet)

        assert result.has_access is False
        assert result.error == ERROR_INVALID_ADDRESS
        assert result.difference == Decimal("100")
        oracle.get_balance.assert_not_awaited()

    async def test_oracle_failure_denies(self, oracle) -> None:
        oracle.get_balance.side_effect = BalanceUnavailableError("timeout")
        gate = PremiumGate(oracle, threshold=Decimal("1"))

        result = await gate.check_access(OWNER)

        assert result.has_access is False
        assert result.error == ERROR_BALANCE_UNAVAILABLE
        assert result.to_dict() == {
            "has_access": False,
            "current_balance": "0",
            "required_balance": "1",
            "difference": "1",
            "error": ERROR_BALANCE_UNAVAILABLE,
        }

    async def test_non_json_rpc_body_denies(self) -> None:
        resp = MagicMock(status=200)
        resp.json = AsyncMock(
            side_effect=json.JSONDecodeError("Expecting value", "<html>502 bad gateway</html>", 0)
        )
        ctx = MagicMock()
        ctx.__aenter__ = AsyncMock(return_value=resp)
        ctx.__aexit__ = AsyncMock(return_value=False)
        session = MagicMock(closed=False)
        session.post = MagicMock(return_value=ctx)
        client = SolanaRpcClient("https://primary.example", session=session, retry_delay_seconds=0)
        gate = PremiumGate(BalanceOracle(client, mint=PREMIUM_MINT), threshold=Decimal("1"))

        result = await gate.check_access(OWNER)

        assert result.has_access is False
        assert result.error == ERROR_BALANCE_UNAVAILABLE
        assert result.difference == Decimal("1")


class TestCache:
    async def test_caches_balance(self, oracle, mock_redis) -> None:
        gate = PremiumGate(oracle, threshold=Decimal("1"), redis=mock_redis, cache_ttl_seconds=60)

        await gate.check_access(OWNER)
        second = await gate.check_access(OWNER)

        assert second.has_access is True
        assert oracle.get_balance.await_count == 1
        mock_redis.set.assert_awaited_once_with(f"premium:balance:{OWNER}", "2.000000", ex=60)

    async def test_bypass_cache(self, oracle, mock_redis) -> None:
        gate = PremiumGate(oracle, threshold=Decimal("1"), redis=mock_redis)
        await gate.check_access(OWNER)

        oracle.get_balance.return_value = _balance(0)
        result = await gate.check_access(OWNER, bypass_cache=True)

        assert result.has_access is False
        assert oracle.get_balance.await_count == 2

    async def test_invalidate(self, oracle, mock_redis) -> None:
        gate = PremiumGate(oracle, threshold=Decimal("1"), redis=mock_redis)
        await gate.check_access(OWNER)

        await gate.invalidate(OWNER)
        await gate.check_access(OWNER)

        assert oracle.get_balance.await_count == 2

    async def test_cache_errors_fall_through_to_oracle(self, oracle) -> None:
        redis = AsyncMock()
        redis.get.side_effect = ConnectionError("redis down")
        redis.set.side_effect = ConnectionError("redis down")
        gate = PremiumGate(oracle, threshold=Decimal("1"), redis=redis)

        result = await gate.check_access(OWNER)

        assert result.has_access is True
        oracle.get_balance.assert_awaited_once()

    async def test_malformed_cached_value_ignored(self, oracle, mock_redis) -> None:
        mock_redis.store[f"premium:balance:{OWNER}"] = b"not-a-number"
        gate = PremiumGate(oracle, threshold=Decimal("1"), redis=mock_redis)

        result = await gate.check_access(OWNER)

        assert result.has_access is True
        oracle.get_balance.assert_awaited_once()

    async def test_cache_key_keeps_wallet_case(self, oracle, mock_redis) -> None:
        gate = PremiumGate(oracle, threshold=Decimal("1"), redis=mock_redis)
        await gate.check_access(OWNER)

        assert f"premium:balance:{OWNER}" in mock_redis.store
        assert f"premium:balance:{OWNER.lower()}" not in mock_redis.store
