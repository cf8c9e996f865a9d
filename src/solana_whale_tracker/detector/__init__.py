"""Detection layer - Whale clusters and alert subscription matching."""

from solana_whale_tracker.detector.cluster import ClusterDetector
from solana_whale_tracker.detector.matcher import AlertMatcher
from solana_whale_tracker.detector.models import (
    AlertConfig,
    AlertMatch,
    AlertPriority,
    AlertSubscription,
    AlertType,
    AlphaStreamConfig,
    ClusterResult,
    KolActivityConfig,
    KolProfile,
    KolProfileConfig,
    MatcherMetrics,
    SubscriptionConfigError,
    WhaleClusterConfig,
    parse_alert_config,
)

__all__ = [
    "AlertConfig",
    "AlertMatch",
    "AlertMatcher",
    "AlertPriority",
    "AlertSubscription",
    "AlertType",
    "AlphaStreamConfig",
    "ClusterDetector",
    "ClusterResult",
    "KolActivityConfig",
    "KolProfile",
    "KolProfileConfig",
    "MatcherMetrics",
    "SubscriptionConfigError",
    "WhaleClusterConfig",
    "parse_alert_config",
]
