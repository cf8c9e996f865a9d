"""Premium access gate backed by a cached token balance.

Balances are cached in Redis for a short TTL under
``premium:balance:{wallet}``. A cache failure is a miss, and an oracle
failure is a denial carrying an error marker; ``check_access`` never raises
for either.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from redis.asyncio import Redis

from solana_whale_tracker.config import is_valid_solana_address
from solana_whale_tracker.premium.oracle import BalanceOracle, BalanceUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300  # 5 minutes
CACHE_KEY_PREFIX = "premium:balance:"

ERROR_INVALID_ADDRESS = "invalid_address"
ERROR_BALANCE_UNAVAILABLE = "balance_unavailable"


@dataclass(frozen=True)
class PremiumAccessResult:
    """Outcome of a premium balance check.

    ``difference`` is set only when access is denied.
    """

    has_access: bool
    current_balance: Decimal
    required_balance: Decimal
    difference: Decimal | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "has_access": self.has_access,
            "current_balance": str(self.current_balance),
            "required_balance": str(self.required_balance),
        }
        if self.difference is not None:
            result["difference"] = str(self.difference)
        if self.error is not None:
            result["error"] = self.error
        return result


class PremiumGate:
    """Decides premium access from a wallet's token balance."""

    def __init__(
        self,
        oracle: BalanceOracle,
        *,
        threshold: Decimal,
        redis: Redis | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
    ) -> None:
        if threshold <= 0:
            raise ValueError("threshold must be > 0")
        self._oracle = oracle
        self._threshold = threshold
        self._redis = redis
        self._cache_ttl = cache_ttl_seconds

    @property
    def threshold(self) -> Decimal:
        return self._threshold

    def _cache_key(self, wallet_address: str) -> str:
        return f"{CACHE_KEY_PREFIX}{wallet_address}"

    async def _get_cached(self, key: str) -> Decimal | None:
        if self._redis is None:
            return None
        try:
            value = await self._redis.get(key)
        except Exception as e:
            logger.warning("Balance cache get failed: %s", e)
            return None
        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode()
        try:
            return Decimal(str(value))
        except InvalidOperation:
            logger.warning("Ignoring malformed cached balance %r for %s", value, key)
            return None

    async def _set_cached(self, key: str, balance: Decimal) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(key, str(balance), ex=self._cache_ttl)
        except Exception as e:
            logger.warning("Balance cache set failed: %s", e)

    def evaluate(self, balance: Decimal) -> PremiumAccessResult:
        """Compare a balance in token units against the threshold."""
        if balance >= self._threshold:
            return PremiumAccessResult(
                has_access=True,
                current_balance=balance,
                required_balance=self._threshold,
            )
        return PremiumAccessResult(
            has_access=False,
            current_balance=balance,
            required_balance=self._threshold,
            difference=self._threshold - balance,
        )

    def _denied(self, error: str) -> PremiumAccessResult:
        return PremiumAccessResult(
            has_access=False,
            current_balance=Decimal("0"),
            required_balance=self._threshold,
            difference=self._threshold,
            error=error,
        )

    async def check_access(
        self,
        wallet_address: str,
        *,
        bypass_cache: bool = False,
    ) -> PremiumAccessResult:
        """Check whether a wallet holds enough of the premium token.

        Args:
            wallet_address: Solana wallet to check.
            bypass_cache: Skip the cached balance and query the chain.

        Returns:
            The access decision. Failures are reported through ``error``.
        """
        if not is_valid_solana_address(wallet_address):
            logger.warning("Premium check for invalid wallet address %r", wallet_address)
            return self._denied(ERROR_INVALID_ADDRESS)

        key = self._cache_key(wallet_address)
        if not bypass_cache:
            cached = await self._get_cached(key)
            if cached is not None:
                return self.evaluate(cached)

        try:
            token_balance = await self._oracle.get_balance(wallet_address)
        except BalanceUnavailableError as e:
            logger.error("Premium balance unavailable for %s: %s", wallet_address, e)
            return self._denied(ERROR_BALANCE_UNAVAILABLE)

        balance = token_balance.ui_amount
        await self._set_cached(key, balance)
        return self.evaluate(balance)

    async def invalidate(self, wallet_address: str) -> None:
        """Forget the cached balance of a wallet."""
        if self._redis is None:
            return
        try:
            await self._redis.delete(self._cache_key(wallet_address))
        except Exception as e:
            logger.warning("Balance cache invalidation failed for %s: %s", wallet_address, e)
