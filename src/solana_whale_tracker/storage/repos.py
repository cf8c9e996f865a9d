"""Repository pattern implementations for data access.

This module provides data access for alert subscriptions and tracked
wallets, and converts stored subscriptions into their typed form.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update

from solana_whale_tracker.detector.models import (
    AlertPriority,
    AlertSubscription,
    AlertType,
    KolProfile,
    SubscriptionConfigError,
    parse_alert_config,
)
from solana_whale_tracker.storage.models import (
    FEED_KOL,
    AlertSubscriptionModel,
    TrackedWalletModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass
class AlertSubscriptionDTO:
    """Data transfer object for a stored alert subscription."""

    user_id: str
    alert_type: str
    config: dict[str, Any] = field(default_factory=dict)
    priority: str = AlertPriority.MEDIUM.value
    enabled: bool = True
    owner_wallet: str | None = None
    chat_id: str | None = None
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: AlertSubscriptionModel) -> AlertSubscriptionDTO:
        return cls(
            id=model.id,
            user_id=model.user_id,
            alert_type=model.alert_type,
            config=dict(model.config or {}),
            priority=model.priority,
            enabled=model.enabled,
            owner_wallet=model.owner_wallet,
            chat_id=model.chat_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def to_subscription(self) -> AlertSubscription:
        """Convert to the typed subscription used by the pipeline.

        Raises:
            SubscriptionConfigError: If the stored config is invalid.
        """
        if self.id is None:
            raise SubscriptionConfigError("Subscription has not been persisted")
        try:
            alert_type = AlertType(self.alert_type)
        except ValueError as e:
            raise SubscriptionConfigError(f"Unknown alert type: {self.alert_type!r}") from e
        try:
            priority = AlertPriority(self.priority)
        except ValueError:
            priority = AlertPriority.MEDIUM
        try:
            config = parse_alert_config(alert_type, self.config)
        except (TypeError, ValueError) as e:
            raise SubscriptionConfigError(str(e)) from e
        return AlertSubscription(
            id=self.id,
            user_id=self.user_id,
            alert_type=alert_type,
            config=config,
            priority=priority,
            owner_wallet=self.owner_wallet,
            chat_id=self.chat_id,
            enabled=self.enabled,
        )


@dataclass
class TrackedWalletDTO:
    """Data transfer object for a tracked wallet."""

    address: str
    feed: str
    label: str = ""
    kol_username: str | None = None
    kol_name: str | None = None
    active: bool = True

    @classmethod
    def from_model(cls, model: TrackedWalletModel) -> TrackedWalletDTO:
        return cls(
            address=model.address,
            feed=model.feed,
            label=model.label,
            kol_username=model.kol_username,
            kol_name=model.kol_name,
            active=model.active,
        )


class AlertSubscriptionRepository:
    """Repository for alert subscriptions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: AlertSubscriptionDTO) -> AlertSubscriptionDTO:
        model = AlertSubscriptionModel(
            user_id=dto.user_id,
            alert_type=dto.alert_type,
            config=dict(dto.config),
            priority=dto.priority,
            enabled=dto.enabled,
            owner_wallet=dto.owner_wallet,
            chat_id=dto.chat_id,
        )
        self.session.add(model)
        await self.session.flush()
        return AlertSubscriptionDTO.from_model(model)

    async def get(self, subscription_id: int) -> AlertSubscriptionDTO | None:
        model = await self.session.get(AlertSubscriptionModel, subscription_id)
        return AlertSubscriptionDTO.from_model(model) if model else None

    async def list_enabled(self) -> list[AlertSubscriptionDTO]:
        result = await self.session.execute(
            select(AlertSubscriptionModel)
            .where(AlertSubscriptionModel.enabled.is_(True))
            .order_by(AlertSubscriptionModel.id)
        )
        return [AlertSubscriptionDTO.from_model(m) for m in result.scalars().all()]

    async def list_by_user(self, user_id: str) -> list[AlertSubscriptionDTO]:
        result = await self.session.execute(
            select(AlertSubscriptionModel)
            .where(AlertSubscriptionModel.user_id == user_id)
            .order_by(AlertSubscriptionModel.id)
        )
        return [AlertSubscriptionDTO.from_model(m) for m in result.scalars().all()]

    async def list_active_subscriptions(self) -> list[AlertSubscription]:
        """Enabled subscriptions in typed form. Invalid rows are skipped."""
        subscriptions: list[AlertSubscription] = []
        for dto in await self.list_enabled():
            try:
                subscriptions.append(dto.to_subscription())
            except SubscriptionConfigError as e:
                logger.warning("Skipping invalid subscription %s (user=%s): %s", dto.id, dto.user_id, e)
        return subscriptions

    async def list_owner_wallets(self) -> list[tuple[str, str]]:
        """Distinct (user_id, owner_wallet) pairs with enabled subscriptions."""
        result = await self.session.execute(
            select(AlertSubscriptionModel.user_id, AlertSubscriptionModel.owner_wallet)
            .where(
                AlertSubscriptionModel.enabled.is_(True),
                AlertSubscriptionModel.owner_wallet.is_not(None),
            )
            .distinct()
            .order_by(AlertSubscriptionModel.user_id)
        )
        return [(str(user_id), str(wallet)) for user_id, wallet in result.all()]

    async def set_enabled_for_user(self, user_id: str, enabled: bool) -> int:
        """Enable or disable every subscription of a user. Returns rows changed."""
        result = await self.session.execute(
            update(AlertSubscriptionModel)
            .where(
                AlertSubscriptionModel.user_id == user_id,
                AlertSubscriptionModel.enabled.is_not(enabled),
            )
            .values(enabled=enabled, updated_at=datetime.now(UTC))
        )
        await self.session.flush()
        return int(result.rowcount or 0)


class TrackedWalletRepository:
    """Repository for wallets polled by ingestion feeds."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, dto: TrackedWalletDTO) -> TrackedWalletDTO:
        model = await self.session.get(TrackedWalletModel, dto.address)
        if model is None:
            model = TrackedWalletModel(address=dto.address)
            self.session.add(model)
        model.feed = dto.feed
        model.label = dto.label
        model.kol_username = dto.kol_username
        model.kol_name = dto.kol_name
        model.active = dto.active
        await self.session.flush()
        return TrackedWalletDTO.from_model(model)

    async def list_addresses(self, feed: str) -> list[str]:
        result = await self.session.execute(
            select(TrackedWalletModel.address)
            .where(TrackedWalletModel.feed == feed, TrackedWalletModel.active.is_(True))
            .order_by(TrackedWalletModel.address)
        )
        return [str(a) for a in result.scalars().all()]

    async def list_kols(self) -> list[KolProfile]:
        result = await self.session.execute(
            select(TrackedWalletModel)
            .where(TrackedWalletModel.feed == FEED_KOL, TrackedWalletModel.active.is_(True))
            .order_by(TrackedWalletModel.address)
        )
        return [
            KolProfile(
                address=m.address,
                username=m.kol_username or m.label or m.address,
                name=m.kol_name or "",
            )
            for m in result.scalars().all()
        ]

    async def deactivate(self, address: str) -> bool:
        result = await self.session.execute(
            update(TrackedWalletModel)
            .where(TrackedWalletModel.address == address)
            .values(active=False)
        )
        await self.session.flush()
        return bool(result.rowcount)
