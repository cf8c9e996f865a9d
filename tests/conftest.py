"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from solana_whale_tracker.ingestor.models import NormalizedSwapEvent
from solana_whale_tracker.storage.database import init_async_db

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

TOKEN_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
PREMIUM_MINT = "So11111111111111111111111111111111111111112"


def make_address(seed: int) -> str:
    """Deterministic valid base58 address for a seed."""
    head = BASE58_ALPHABET[seed % 58]
    tail = BASE58_ALPHABET[(seed // 58) % 58]
    return head * 32 + tail * 12


def make_event(
    *,
    signature: str = "sig-1",
    wallet: str | None = None,
    token_mint: str = TOKEN_MINT,
    side: str = "BUY",
    usd_amount: Decimal | str | int = "2500",
    timestamp: datetime | None = None,
    raw_amount: int = 1_000_000_000,
    decimals: int = 6,
    token_symbol: str = "USDC",
    hotness_score: float | None = None,
    market_cap_usd: Decimal | None = None,
) -> NormalizedSwapEvent:
    return NormalizedSwapEvent(
        signature=signature,
        wallet_address=wallet or make_address(1),
        token_mint=token_mint,
        side="BUY" if side == "BUY" else "SELL",
        raw_amount=raw_amount,
        decimals=decimals,
        usd_amount=Decimal(str(usd_amount)),
        timestamp=timestamp or datetime(2026, 1, 1, 12, 1, tzinfo=UTC),
        source_protocol="jupiter",
        token_symbol=token_symbol,
        hotness_score=hotness_score,
        market_cap_usd=market_cap_usd,
    )


@pytest.fixture
def event_factory() -> Callable[..., NormalizedSwapEvent]:
    return make_event


@pytest.fixture
def mock_redis() -> AsyncMock:
    """AsyncMock Redis backed by an in-memory dict."""
    store: dict[str, Any] = {}
    hashes: dict[str, dict[str, str]] = {}
    redis = AsyncMock()

    async def _get(key: str) -> Any:
        return store.get(key)

    async def _set(key: str, value: Any, ex: int | None = None, nx: bool = False) -> bool | None:
        if nx and key in store:
            return None
        store[key] = value if isinstance(value, bytes) else str(value).encode()
        return True

    async def _exists(key: str) -> int:
        return int(key in store)

    async def _delete(*keys: str) -> int:
        return sum(1 for key in keys if store.pop(key, None) is not None)

    async def _hgetall(key: str) -> dict[bytes, bytes]:
        return {k.encode(): v.encode() for k, v in hashes.get(key, {}).items()}

    async def _hset(key: str, mapping: dict[str, str]) -> int:
        hashes.setdefault(key, {}).update(mapping)
        return len(mapping)

    redis.get.side_effect = _get
    redis.set.side_effect = _set
    redis.exists.side_effect = _exists
    redis.delete.side_effect = _delete
    redis.hgetall.side_effect = _hgetall
    redis.hset.side_effect = _hset
    redis.store = store
    redis.hashes = hashes
    return redis


@pytest.fixture
async def async_engine():
    """Create an async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    await init_async_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncSession:
    """Create an async session for testing."""
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def session_scope(async_engine) -> Callable[[], Any]:
    """Committing session scope, shaped like DatabaseManager.get_async_session."""
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)

    @asynccontextmanager
    async def scope() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return scope
