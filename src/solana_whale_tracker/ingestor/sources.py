"""Signature discovery over Solana ``getSignaturesForAddress``."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime

from solana_whale_tracker.chain.rpc import SolanaRpcClient
from solana_whale_tracker.ingestor.models import TransactionSignature

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURES_PER_ADDRESS = 10
DEFAULT_MAX_PAGES_PER_ADDRESS = 10


class RpcSignatureSource:
    """Fetches new signatures for tracked addresses since a cursor.

    Transactions that failed on-chain are skipped. Results are returned
    oldest-first so downstream processing follows chain order.

    A failure for any address raises, which aborts the caller's tick and
    leaves its checkpoint untouched.
    """

    def __init__(
        self,
        client: SolanaRpcClient,
        *,
        signatures_per_address: int = DEFAULT_SIGNATURES_PER_ADDRESS,
        max_pages_per_address: int = DEFAULT_MAX_PAGES_PER_ADDRESS,
    ) -> None:
        self._client = client
        self._limit = signatures_per_address
        self._max_pages = max_pages_per_address

    async def _fetch_items(self, address: str, until: str | None) -> list[dict]:
        items = list(
            await self._client.get_signatures_for_address(address, limit=self._limit, until=until)
        )
        if until is None:
            # No checkpoint yet: start from the newest page only
            return items

        pages = 1
        page = items
        while len(page) >= self._limit:
            if pages >= self._max_pages:
                logger.warning(
                    "Signature backlog for %s exceeds %d pages; older signatures since %s are skipped",
                    address,
                    self._max_pages,
                    until,
                )
                break
            page = await self._client.get_signatures_for_address(
                address, limit=self._limit, until=until, before=page[-1]["signature"]
            )
            items.extend(page)
            pages += 1
        return items

    async def _fetch_one(
        self,
        address: str,
        until: str | None,
    ) -> list[TransactionSignature]:
        items = await self._fetch_items(address, until)
        now = datetime.now(UTC)
        result: list[TransactionSignature] = []
        skipped_failed = 0
        for item in items:
            if item.get("err") is not None:
                skipped_failed += 1
                continue
            result.append(TransactionSignature.from_rpc_item(item, address=address, discovered_at=now))
        if skipped_failed:
            logger.debug("Skipped %d failed transactions for %s", skipped_failed, address)
        # RPC returns newest first
        result.reverse()
        return result

    async def fetch_signatures(
        self,
        addresses: Sequence[str],
        since_cursor: Mapping[str, str],
    ) -> list[TransactionSignature]:
        if not addresses:
            return []
        batches = await asyncio.gather(
            *(self._fetch_one(address, since_cursor.get(address)) for address in addresses)
        )
        return [sig for batch in batches for sig in batch]
