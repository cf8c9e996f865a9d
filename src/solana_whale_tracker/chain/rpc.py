"""Solana JSON-RPC client with rate limiting and provider failover.

This module provides the Solana client used by signature ingestion and the
premium balance oracle:
- aiohttp session reuse for concurrent requests
- Retry logic with exponential backoff
- Rate limiting to respect provider limits
- Failover to a secondary RPC URL
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_MAX_REQUESTS_PER_SECOND = 10
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY_SECONDS = 0.5
DEFAULT_REQUEST_TIMEOUT = 5.0
DEFAULT_COMMITMENT = "confirmed"

PRIMARY_RECOVERY_INTERVAL_SECONDS = 60.0


class SolanaClientError(Exception):
    """Base exception for Solana client errors."""


class RPCError(SolanaClientError):
    """Raised when an RPC call fails on every provider."""


class RateLimitError(SolanaClientError):
    """Raised when a provider answers with HTTP 429."""


@dataclass(frozen=True)
class TokenBalance:
    """Raw SPL token balance of an owner for a single mint."""

    owner: str
    mint: str
    raw_amount: int
    decimals: int

    @property
    def ui_amount(self) -> Decimal:
        """Balance in token units, exact."""
        return Decimal(self.raw_amount).scaleb(-self.decimals)


@dataclass
class RateLimiter:
    """Token bucket rate limiter."""

    max_tokens: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, max_requests_per_second: float) -> RateLimiter:
        """Create a rate limiter with specified max requests per second."""
        return cls(
            max_tokens=max_requests_per_second,
            refill_rate=max_requests_per_second,
            tokens=max_requests_per_second,
            last_refill=time.monotonic(),
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens, waiting if necessary."""
        while True:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return
            wait_time = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_time)


class SolanaRpcClient:
    """Solana JSON-RPC client with rate limiting and failover.

    Example:
        ```python
        client = SolanaRpcClient(
            "https://api.mainnet-beta.solana.com",
            fallback_rpc_url="https://solana-rpc.publicnode.com",
        )
        sigs = await client.get_signatures_for_address("9xQe...", limit=10)
        balance = await client.get_token_balance("9xQe...", mint="EPjF...")
        await client.aclose()
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        fallback_rpc_url: str | None = None,
        session: aiohttp.ClientSession | None = None,
        request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
    ) -> None:
        """Initialize the Solana client.

        Args:
            rpc_url: Primary Solana RPC endpoint URL.
            fallback_rpc_url: Optional fallback RPC URL for failover.
            session: Optional shared aiohttp session (owned by the caller).
            request_timeout_seconds: Per-request HTTP timeout.
            max_requests_per_second: Rate limit for RPC calls.
            max_retries: Attempts per endpoint before failing over.
            retry_delay_seconds: Initial delay between retries.
        """
        self._rpc_url = rpc_url
        self._fallback_rpc_url = fallback_rpc_url
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=request_timeout_seconds)
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._rate_limiter = RateLimiter.create(max_requests_per_second)
        self._request_ids = itertools.count(1)

        # Track primary RPC health
        self._primary_healthy = True
        self._last_primary_check = 0.0

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    def _should_try_primary(self) -> bool:
        if self._primary_healthy:
            return True
        now = time.monotonic()
        if now - self._last_primary_check > PRIMARY_RECOVERY_INTERVAL_SECONDS:
            self._last_primary_check = now
            return True
        return False

    async def _post(self, url: str, method: str, params: list[Any]) -> Any:
        """Send a single JSON-RPC request and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }
        session = self._get_session()
        async with session.post(url, json=payload, timeout=self._timeout) as resp:
            if resp.status == 429:
                raise RateLimitError(f"{method} rate limited by {url}")
            resp.raise_for_status()
            try:
                data = await resp.json(content_type=None)
            except ValueError as e:
                raise RPCError(f"Undecodable RPC response for {method} from {url}: {e}") from e

        if not isinstance(data, dict):
            raise RPCError(f"Malformed RPC response for {method}")
        if data.get("error"):
            raise RPCError(f"RPC error for {method}: {data['error']}")
        return data.get("result")

    async def _try_endpoint(
        self,
        url: str,
        label: str,
        method: str,
        params: list[Any],
    ) -> tuple[bool, Any, Exception | None]:
        delay = self._retry_delay
        last_error: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                return True, await self._post(url, method, params), None
            except (aiohttp.ClientError, TimeoutError, SolanaClientError) as e:
                last_error = e
                logger.warning(
                    "%s RPC %s failed (attempt %d/%d): %s",
                    label,
                    method,
                    attempt + 1,
                    self._max_retries,
                    e,
                )
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(delay)
                    delay *= 2
        return False, None, last_error

    async def _try_endpoint_within(
        self,
        url: str,
        label: str,
        method: str,
        params: list[Any],
        budget: float | None,
    ) -> tuple[bool, Any, Exception | None]:
        if budget is None:
            return await self._try_endpoint(url, label, method, params)
        try:
            return await asyncio.wait_for(
                self._try_endpoint(url, label, method, params), timeout=max(budget, 0.0)
            )
        except TimeoutError as e:
            logger.warning("%s RPC %s exceeded its %.2fs budget", label, method, budget)
            return False, None, e

    async def call(
        self,
        method: str,
        params: list[Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Execute an RPC call with retry and failover logic.

        With ``timeout`` the remaining time is split evenly between the
        providers still to be tried, so a hung primary cannot consume the
        fallback's share.

        Raises:
            RPCError: If all retries on every provider fail.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        await self._rate_limiter.acquire()
        params = params or []
        last_error: Exception | None = None

        endpoints: list[tuple[str, str]] = []
        if self._should_try_primary():
            endpoints.append((self._rpc_url, "Primary"))
        if self._fallback_rpc_url:
            endpoints.append((self._fallback_rpc_url, "Fallback"))

        for index, (url, label) in enumerate(endpoints):
            budget = None
            if deadline is not None:
                budget = (deadline - time.monotonic()) / (len(endpoints) - index)
            ok, result, err = await self._try_endpoint_within(url, label, method, params, budget)
            if label == "Primary":
                self._primary_healthy = ok
                if not ok:
                    self._last_primary_check = time.monotonic()
            if ok:
                if label == "Fallback":
                    logger.info("Fallback RPC succeeded for %s", method)
                return result
            last_error = err

        raise RPCError(f"RPC call {method} failed after all retries: {last_error}")

    async def get_signatures_for_address(
        self,
        address: str,
        *,
        limit: int = 25,
        until: str | None = None,
        before: str | None = None,
    ) -> list[dict[str, Any]]:
        """Newest-first signature infos for an address.

        Results stop at ``until`` (exclusive) and, with ``before``, start just
        below that signature.
        """
        opts: dict[str, Any] = {"limit": limit, "commitment": DEFAULT_COMMITMENT}
        if until:
            opts["until"] = until
        if before:
            opts["before"] = before
        result = await self.call("getSignaturesForAddress", [address, opts])
        if result is None:
            return []
        if not isinstance(result, list):
            raise RPCError(f"Malformed getSignaturesForAddress result for {address}")
        return result

    async def get_token_balance(
        self,
        owner: str,
        *,
        mint: str,
        default_decimals: int = 0,
        timeout: float | None = None,
    ) -> TokenBalance:
        """Sum of an owner's token accounts for ``mint``.

        A wallet without a token account for the mint has a zero balance.
        ``timeout`` bounds the lookup across every provider.
        """
        result = await self.call(
            "getTokenAccountsByOwner",
            [
                owner,
                {"mint": mint},
                {"encoding": "jsonParsed", "commitment": DEFAULT_COMMITMENT},
            ],
            timeout=timeout,
        )
        if result is None:
            return TokenBalance(owner=owner, mint=mint, raw_amount=0, decimals=default_decimals)
        if not isinstance(result, dict) or not isinstance(result.get("value") or [], list):
            raise RPCError(f"Malformed token account response for {owner}: {result!r}")

        raw_total = 0
        decimals = default_decimals
        try:
            for item in result.get("value") or []:
                info = item.get("account", {}).get("data", {}).get("parsed", {}).get("info", {})
                if info.get("mint", mint) != mint:
                    continue
                token_amount = info.get("tokenAmount", {})
                raw_total += int(token_amount.get("amount", "0"))
                if "decimals" in token_amount:
                    decimals = int(token_amount["decimals"])
        except (AttributeError, TypeError, ValueError) as e:
            raise RPCError(f"Unparseable token account for {owner}: {e}") from e

        return TokenBalance(owner=owner, mint=mint, raw_amount=raw_total, decimals=decimals)

    async def health_check(self) -> bool:
        """Check if the client can reach an RPC provider."""
        try:
            await self.call("getHealth")
            return True
        except RPCError:
            return False

    async def aclose(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            try:
                await self._session.close()
            except Exception as e:
                logger.warning("Failed to close RPC session: %s", e)
        self._session = None
