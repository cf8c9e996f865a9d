"""SQLAlchemy models for persistent storage.

This module defines the schema the pipeline reads: user alert
subscriptions and the wallets tracked by the ingestion feeds.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

FEED_WHALE = "whale"
FEED_KOL = "kol"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class AlertSubscriptionModel(Base):
    """SQLAlchemy model for user alert subscriptions."""

    __tablename__ = "alert_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    owner_wallet: Mapped[str | None] = mapped_column(String(44), nullable=True)
    chat_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    alert_type: Mapped[str] = mapped_column(String(32), nullable=False)
    priority: Mapped[str] = mapped_column(String(8), nullable=False, default="MEDIUM")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_alert_subscriptions_user", "user_id"),
        Index("idx_alert_subscriptions_type_enabled", "alert_type", "enabled"),
    )


class TrackedWalletModel(Base):
    """SQLAlchemy model for wallets polled by the ingestion feeds."""

    __tablename__ = "tracked_wallets"

    address: Mapped[str] = mapped_column(String(44), primary_key=True)
    feed: Mapped[str] = mapped_column(String(16), nullable=False)
    label: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    kol_username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    kol_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("idx_tracked_wallets_feed_active", "feed", "active"),)
