"""Data models for the ingestor module."""

from __future__ import annotations

import contextlib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Literal, Protocol

# Tracked address -> newest signature already processed for it.
SignatureCursor = dict[str, str]


def _parse_timestamp(raw: object) -> datetime:
    if isinstance(raw, datetime):
        return raw if raw.tzinfo is not None else raw.replace(tzinfo=UTC)
    if isinstance(raw, (int, float)):
        ts = float(raw)
        if ts > 1e12:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    if isinstance(raw, str):
        with contextlib.suppress(ValueError):
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed.astimezone(UTC)
    return datetime.now(UTC)


def _optional_decimal(raw: object) -> Decimal | None:
    if raw is None or raw == "":
        return None
    return Decimal(str(raw))


@dataclass(frozen=True)
class TransactionSignature:
    """A transaction signature discovered for a tracked address."""

    signature: str
    discovered_at: datetime
    address: str = ""
    slot: int | None = None
    block_time: datetime | None = None

    @classmethod
    def from_rpc_item(
        cls,
        item: Mapping[str, Any],
        *,
        address: str,
        discovered_at: datetime | None = None,
    ) -> TransactionSignature:
        """Build from a single getSignaturesForAddress result item."""
        block_time_raw = item.get("blockTime")
        slot_raw = item.get("slot")
        return cls(
            signature=str(item["signature"]),
            discovered_at=discovered_at or datetime.now(UTC),
            address=address,
            slot=int(slot_raw) if slot_raw is not None else None,
            block_time=(
                datetime.fromtimestamp(int(block_time_raw), tz=UTC)
                if block_time_raw is not None
                else None
            ),
        )


@dataclass(frozen=True)
class NormalizedSwapEvent:
    """A parsed swap produced by the transaction parser."""

    signature: str
    wallet_address: str
    token_mint: str
    side: Literal["BUY", "SELL"]
    raw_amount: int
    decimals: int
    usd_amount: Decimal
    timestamp: datetime
    source_protocol: str

    # Token metadata (optional - depends on the parser's enrichment)
    token_symbol: str = ""
    hotness_score: float | None = None
    market_cap_usd: Decimal | None = None

    @property
    def is_buy(self) -> bool:
        return self.side == "BUY"

    @property
    def is_sell(self) -> bool:
        return self.side == "SELL"

    @property
    def token_amount(self) -> Decimal:
        """Raw amount scaled by the token's decimals."""
        return Decimal(self.raw_amount).scaleb(-self.decimals)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NormalizedSwapEvent:
        """Create an event from a parser payload (camelCase or snake_case keys)."""
        side_raw = str(data.get("side", "BUY")).upper()
        side: Literal["BUY", "SELL"] = "BUY" if side_raw == "BUY" else "SELL"
        hotness = data.get("hotness_score", data.get("hotnessScore"))
        return cls(
            signature=str(data["signature"]),
            wallet_address=str(data.get("wallet_address") or data.get("walletAddress") or ""),
            token_mint=str(data.get("token_mint") or data.get("tokenMint") or ""),
            side=side,
            raw_amount=int(data.get("raw_amount", data.get("rawAmount", 0))),
            decimals=int(data.get("decimals", 0)),
            usd_amount=Decimal(str(data.get("usd_amount", data.get("usdAmount", "0")))),
            timestamp=_parse_timestamp(data.get("timestamp")),
            source_protocol=str(data.get("source_protocol") or data.get("sourceProtocol") or ""),
            token_symbol=str(data.get("token_symbol") or data.get("tokenSymbol") or ""),
            hotness_score=float(hotness) if hotness is not None else None,
            market_cap_usd=_optional_decimal(
                data.get("market_cap_usd", data.get("marketCapUSD"))
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "wallet_address": self.wallet_address,
            "token_mint": self.token_mint,
            "side": self.side,
            "raw_amount": self.raw_amount,
            "decimals": self.decimals,
            "usd_amount": str(self.usd_amount),
            "timestamp": self.timestamp.isoformat(),
            "source_protocol": self.source_protocol,
            "token_symbol": self.token_symbol,
            "hotness_score": self.hotness_score,
            "market_cap_usd": str(self.market_cap_usd) if self.market_cap_usd is not None else None,
        }


class SignatureSource(Protocol):
    """Discovers new transaction signatures for a set of addresses."""

    async def fetch_signatures(
        self,
        addresses: Sequence[str],
        since_cursor: Mapping[str, str],
    ) -> list[TransactionSignature]: ...


class TransactionParser(Protocol):
    """Turns a transaction signature into a normalized swap, if it is one."""

    async def parse_transaction(
        self, signature: TransactionSignature
    ) -> NormalizedSwapEvent | None: ...
