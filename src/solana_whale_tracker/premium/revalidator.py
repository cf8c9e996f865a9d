"""Periodic premium balance revalidation.

Owners of enabled subscriptions are re-checked against the premium gate.
A wallet that falls below the threshold has its subscriptions disabled,
after a second check that bypasses the balance cache. A wallet whose balance
cannot be read is left untouched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from solana_whale_tracker.detector.models import AlertSubscription, SubscriptionConfigError
from solana_whale_tracker.premium.gate import PremiumAccessResult, PremiumGate
from solana_whale_tracker.storage.repos import AlertSubscriptionRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

SessionScope = Callable[[], AbstractAsyncContextManager["AsyncSession"]]
RevocationNotifier = Callable[[AlertSubscription, PremiumAccessResult], Awaitable[object]]


@dataclass
class RevalidationStats:
    """Statistics of the most recent revalidation sweep."""

    checked: int = 0
    passed: int = 0
    revoked: int = 0
    errors: int = 0
    subscriptions_disabled: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    revoked_users: list[str] = field(default_factory=list)


class BalanceRevalidator:
    """Disables subscriptions of owners that no longer hold enough tokens."""

    def __init__(
        self,
        gate: PremiumGate,
        session_scope: SessionScope,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        on_revoked: Callable[[str], object] | None = None,
        notifier: RevocationNotifier | None = None,
    ) -> None:
        """Initialize the revalidator.

        Args:
            gate: Premium gate used for balance checks.
            session_scope: Factory for a committing database session scope.
            batch_size: Wallets checked concurrently.
            on_revoked: Called with the user id after their subscriptions
                were disabled (e.g. to drop them from the matcher snapshot).
            notifier: Sends the user a low-balance notice through one of
                their subscriptions before they are disabled.
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._gate = gate
        self._session_scope = session_scope
        self._batch_size = batch_size
        self._on_revoked = on_revoked
        self._notifier = notifier
        self._last_stats: RevalidationStats | None = None
        self._running = False

    @property
    def last_stats(self) -> RevalidationStats | None:
        return self._last_stats

    @property
    def is_running(self) -> bool:
        return self._running

    async def _verify(self, wallet: str) -> PremiumAccessResult:
        result = await self._gate.check_access(wallet)
        if result.has_access or result.error is not None:
            return result
        # Confirm against the chain before revoking anything
        return await self._gate.check_access(wallet, bypass_cache=True)

    async def run_once(self) -> RevalidationStats:
        """Run one sweep over every owner wallet with enabled subscriptions."""
        stats = RevalidationStats(started_at=datetime.now(UTC))
        self._running = True
        try:
            async with self._session_scope() as session:
                owners = await AlertSubscriptionRepository(session).list_owner_wallets()

            for offset in range(0, len(owners), self._batch_size):
                batch = owners[offset : offset + self._batch_size]
                results = await asyncio.gather(*(self._verify(wallet) for _, wallet in batch))
                for (user_id, wallet), result in zip(batch, results, strict=True):
                    stats.checked += 1
                    if result.error is not None:
                        stats.errors += 1
                        logger.warning(
                            "Skipping premium revalidation for %s (user=%s): %s",
                            wallet,
                            user_id,
                            result.error,
                        )
                        continue
                    if result.has_access:
                        stats.passed += 1
                        continue
                    await self._revoke(user_id, wallet, result, stats)
        finally:
            self._running = False
            stats.finished_at = datetime.now(UTC)
            self._last_stats = stats

        logger.info(
            "Premium revalidation: checked=%d passed=%d revoked=%d errors=%d",
            stats.checked,
            stats.passed,
            stats.revoked,
            stats.errors,
        )
        return stats

    async def _revoke(
        self,
        user_id: str,
        wallet: str,
        result: PremiumAccessResult,
        stats: RevalidationStats,
    ) -> None:
        if self._notifier is not None:
            await self._notify(self._notifier, user_id, result)
        async with self._session_scope() as session:
            disabled = await AlertSubscriptionRepository(session).set_enabled_for_user(
                user_id, False
            )
        stats.revoked += 1
        stats.subscriptions_disabled += disabled
        stats.revoked_users.append(user_id)
        logger.info(
            "Premium access revoked for user %s (wallet=%s balance=%s required=%s); disabled %d subscriptions",
            user_id,
            wallet,
            result.current_balance,
            result.required_balance,
            disabled,
        )
        if self._on_revoked is not None:
            self._on_revoked(user_id)

    async def _notify(
        self, notifier: RevocationNotifier, user_id: str, result: PremiumAccessResult
    ) -> None:
        async with self._session_scope() as session:
            dtos = await AlertSubscriptionRepository(session).list_by_user(user_id)

        for dto in dtos:
            if not dto.enabled:
                continue
            try:
                subscription = dto.to_subscription()
            except SubscriptionConfigError:
                continue
            try:
                await notifier(subscription, result)
            except Exception as e:
                logger.warning("Low-balance notice for user %s failed: %s", user_id, e)
            return
