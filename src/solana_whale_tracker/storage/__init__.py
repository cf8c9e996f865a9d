"""Storage layer - Database schemas and repositories."""

from solana_whale_tracker.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from solana_whale_tracker.storage.models import (
    FEED_KOL,
    FEED_WHALE,
    AlertSubscriptionModel,
    Base,
    TrackedWalletModel,
)
from solana_whale_tracker.storage.repos import (
    AlertSubscriptionDTO,
    AlertSubscriptionRepository,
    TrackedWalletDTO,
    TrackedWalletRepository,
)

__all__ = [
    "FEED_KOL",
    "FEED_WHALE",
    "AlertSubscriptionDTO",
    "AlertSubscriptionModel",
    "AlertSubscriptionRepository",
    "Base",
    "DatabaseManager",
    "TrackedWalletDTO",
    "TrackedWalletModel",
    "TrackedWalletRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
