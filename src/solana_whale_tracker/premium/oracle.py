"""Premium token balance lookups."""

from __future__ import annotations

import asyncio
import logging

from solana_whale_tracker.chain.rpc import SolanaClientError, SolanaRpcClient, TokenBalance

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_TOKEN_DECIMALS = 6


class BalanceUnavailableError(Exception):
    """Raised when no RPC provider could report a balance in time."""


class BalanceOracle:
    """Reads an owner's balance of the premium token.

    The timeout is handed to the RPC client, which splits it between the
    primary and fallback providers. The same timeout also caps the whole
    lookup.
    """

    def __init__(
        self,
        client: SolanaRpcClient,
        *,
        mint: str,
        default_decimals: int = DEFAULT_TOKEN_DECIMALS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self._mint = mint
        self._default_decimals = default_decimals
        self._timeout = timeout_seconds

    @property
    def mint(self) -> str:
        return self._mint

    async def get_balance(self, wallet_address: str) -> TokenBalance:
        """Fetch the raw token balance.

        Raises:
            BalanceUnavailableError: If every provider failed or timed out.
        """
        try:
            return await asyncio.wait_for(
                self._client.get_token_balance(
                    wallet_address,
                    mint=self._mint,
                    default_decimals=self._default_decimals,
                    timeout=self._timeout,
                ),
                timeout=self._timeout,
            )
        except TimeoutError as e:
            logger.warning(
                "Balance lookup for %s timed out after %.1fs", wallet_address, self._timeout
            )
            raise BalanceUnavailableError(f"Balance lookup timed out for {wallet_address}") from e
        except SolanaClientError as e:
            logger.warning("Balance lookup for %s failed: %s", wallet_address, e)
            raise BalanceUnavailableError(f"Balance lookup failed for {wallet_address}: {e}") from e
