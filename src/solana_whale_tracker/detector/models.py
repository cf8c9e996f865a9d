"""Data models for the detector module.

Alert subscription configs form a tagged union keyed by ``AlertType``: each
type has exactly one config class, and ``parse_alert_config`` is the only
place raw stored configs are turned into typed ones.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from solana_whale_tracker.ingestor.models import NormalizedSwapEvent

MIN_MARKET_CAP_BOUND_USD = Decimal("1000")
MAX_HOTNESS_SCORE = 10.0


class SubscriptionConfigError(ValueError):
    """Raised when a stored alert config is invalid for its alert type."""


class AlertType(str, Enum):
    ALPHA_STREAM = "ALPHA_STREAM"
    WHALE_CLUSTER = "WHALE_CLUSTER"
    KOL_ACTIVITY = "KOL_ACTIVITY"
    KOL_PROFILE = "KOL_PROFILE"


class AlertPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


def _get(data: Mapping[str, Any], snake: str, camel: str) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel)


def _decimal(value: Any, name: str) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise SubscriptionConfigError(f"{name} must be numeric, got {value!r}") from e


def _str_tuple(value: Any, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(str(v) for v in value if str(v))
    raise SubscriptionConfigError(f"{name} must be a list of strings")


def _validate_market_cap_bounds(min_cap: Decimal | None, max_cap: Decimal | None) -> None:
    if min_cap is not None and min_cap < MIN_MARKET_CAP_BOUND_USD:
        raise SubscriptionConfigError("min_market_cap_usd must be at least 1000")
    if max_cap is not None and max_cap < MIN_MARKET_CAP_BOUND_USD:
        raise SubscriptionConfigError("max_market_cap_usd must be at least 1000")
    if min_cap is not None and max_cap is not None and min_cap > max_cap:
        raise SubscriptionConfigError("min_market_cap_usd must not exceed max_market_cap_usd")


def _hotness(value: Any, name: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        score = float(value)
    except (TypeError, ValueError) as e:
        raise SubscriptionConfigError(f"{name} must be numeric, got {value!r}") from e
    if not 0.0 <= score <= MAX_HOTNESS_SCORE:
        raise SubscriptionConfigError(f"{name} must be between 0 and 10")
    return score


@dataclass(frozen=True)
class AlphaStreamConfig:
    """Individual whale buys, optionally filtered by token/wallet and size.

    A config carrying any of the whale-alert keys (``hotnessScoreThreshold``,
    ``minBuyAmountUSD``, ``walletLabels``) is a whale alert. Wallet labels
    only mark the subscription as one; they do not filter trades.
    """

    min_amount: Decimal | None = None
    tokens: frozenset[str] = frozenset()
    wallets: frozenset[str] = frozenset()
    hotness_score_threshold: float | None = None
    min_buy_amount_usd: Decimal | None = None
    wallet_labels: tuple[str, ...] | None = None

    @property
    def is_whale_alert(self) -> bool:
        return (
            self.hotness_score_threshold is not None
            or self.min_buy_amount_usd is not None
            or self.wallet_labels is not None
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AlphaStreamConfig:
        min_amount = _decimal(_get(data, "min_amount", "minAmount"), "min_amount")
        if min_amount is not None and min_amount < 0:
            raise SubscriptionConfigError("min_amount must be >= 0")
        hotness = _hotness(
            _get(data, "hotness_score_threshold", "hotnessScoreThreshold"),
            "hotness_score_threshold",
        )
        min_buy = _decimal(
            _get(data, "min_buy_amount_usd", "minBuyAmountUSD"), "min_buy_amount_usd"
        )
        if min_buy is not None and min_buy < 0:
            raise SubscriptionConfigError("min_buy_amount_usd must be >= 0")
        labels = _get(data, "wallet_labels", "walletLabels")
        return cls(
            min_amount=min_amount,
            tokens=frozenset(_str_tuple(data.get("tokens"), "tokens")),
            wallets=frozenset(_str_tuple(data.get("wallets"), "wallets")),
            hotness_score_threshold=hotness,
            min_buy_amount_usd=min_buy,
            wallet_labels=_str_tuple(labels, "wallet_labels") if labels is not None else None,
        )


@dataclass(frozen=True)
class WhaleClusterConfig:
    """Coordinated buying of one token by several distinct whales."""

    min_cluster_size: int
    min_inflow_usd: Decimal
    tokens: frozenset[str] = frozenset()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WhaleClusterConfig:
        raw_size = _get(data, "min_cluster_size", "minClusterSize")
        if raw_size is None:
            raise SubscriptionConfigError("min_cluster_size is required")
        try:
            size = int(raw_size)
        except (TypeError, ValueError) as e:
            raise SubscriptionConfigError("min_cluster_size must be an integer") from e
        if size < 1:
            raise SubscriptionConfigError("min_cluster_size must be >= 1")
        inflow = _decimal(_get(data, "min_inflow_usd", "minInflowUSD"), "min_inflow_usd")
        if inflow is None:
            inflow = Decimal("0")
        if inflow < 0:
            raise SubscriptionConfigError("min_inflow_usd must be >= 0")
        return cls(
            min_cluster_size=size,
            min_inflow_usd=inflow,
            tokens=frozenset(_str_tuple(data.get("tokens"), "tokens")),
        )


@dataclass(frozen=True)
class KolActivityConfig:
    """Trades by tracked KOLs, optionally restricted to some of them."""

    kol_ids: frozenset[str] = frozenset()
    tokens: frozenset[str] = frozenset()
    min_hotness_score: float | None = None
    min_market_cap_usd: Decimal | None = None
    max_market_cap_usd: Decimal | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KolActivityConfig:
        hotness_value = _hotness(
            _get(data, "min_hotness_score", "minHotnessScore"), "min_hotness_score"
        )
        min_cap = _decimal(_get(data, "min_market_cap_usd", "minMarketCapUSD"), "min_market_cap_usd")
        max_cap = _decimal(_get(data, "max_market_cap_usd", "maxMarketCapUSD"), "max_market_cap_usd")
        _validate_market_cap_bounds(min_cap, max_cap)
        return cls(
            kol_ids=frozenset(_str_tuple(_get(data, "kol_ids", "kolIds"), "kol_ids")),
            tokens=frozenset(_str_tuple(data.get("tokens"), "tokens")),
            min_hotness_score=hotness_value,
            min_market_cap_usd=min_cap,
            max_market_cap_usd=max_cap,
        )


@dataclass(frozen=True)
class KolProfileConfig:
    """Trades by one specific KOL, identified by username or address."""

    target_kol_username: str | None = None
    target_kol_address: str | None = None
    min_amount: Decimal | None = None
    min_hotness_score: float | None = None
    min_market_cap_usd: Decimal | None = None
    max_market_cap_usd: Decimal | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KolProfileConfig:
        username = _get(data, "target_kol_username", "targetKolUsername") or None
        address = _get(data, "target_kol_address", "targetKolAddress") or None
        if username is None and address is None:
            raise SubscriptionConfigError(
                "target_kol_username or target_kol_address is required"
            )
        min_amount = _decimal(_get(data, "min_amount", "minAmount"), "min_amount")
        if min_amount is not None and min_amount < 0:
            raise SubscriptionConfigError("min_amount must be >= 0")
        hotness_value = _hotness(
            _get(data, "min_hotness_score", "minHotnessScore"), "min_hotness_score"
        )
        min_cap = _decimal(_get(data, "min_market_cap_usd", "minMarketCapUSD"), "min_market_cap_usd")
        max_cap = _decimal(_get(data, "max_market_cap_usd", "maxMarketCapUSD"), "max_market_cap_usd")
        _validate_market_cap_bounds(min_cap, max_cap)
        return cls(
            target_kol_username=str(username).lstrip("@") if username else None,
            target_kol_address=str(address) if address else None,
            min_amount=min_amount,
            min_hotness_score=hotness_value,
            min_market_cap_usd=min_cap,
            max_market_cap_usd=max_cap,
        )


AlertConfig = AlphaStreamConfig | WhaleClusterConfig | KolActivityConfig | KolProfileConfig

_CONFIG_TYPES: dict[AlertType, type[AlertConfig]] = {
    AlertType.ALPHA_STREAM: AlphaStreamConfig,
    AlertType.WHALE_CLUSTER: WhaleClusterConfig,
    AlertType.KOL_ACTIVITY: KolActivityConfig,
    AlertType.KOL_PROFILE: KolProfileConfig,
}


def parse_alert_config(alert_type: AlertType | str, data: Mapping[str, Any] | None) -> AlertConfig:
    """Build the typed config for an alert type from its stored form.

    Raises:
        SubscriptionConfigError: If the type is unknown or the config invalid.
    """
    try:
        kind = AlertType(alert_type)
    except ValueError as e:
        raise SubscriptionConfigError(f"Unknown alert type: {alert_type!r}") from e
    return _CONFIG_TYPES[kind].from_dict(data or {})


@dataclass(frozen=True)
class AlertSubscription:
    """A user's alert subscription as seen by the pipeline."""

    id: int
    user_id: str
    alert_type: AlertType
    config: AlertConfig
    priority: AlertPriority = AlertPriority.MEDIUM
    owner_wallet: str | None = None
    chat_id: str | None = None
    enabled: bool = True

    def __post_init__(self) -> None:
        expected = _CONFIG_TYPES[self.alert_type]
        if not isinstance(self.config, expected):
            raise SubscriptionConfigError(
                f"{self.alert_type.value} subscription requires {expected.__name__}"
            )


@dataclass(frozen=True)
class KolProfile:
    """A tracked KOL wallet."""

    address: str
    username: str
    name: str = ""


@dataclass(frozen=True)
class ClusterResult:
    """Aggregate of distinct-wallet buys for one token in one time window.

    Attributes:
        token_mint: Token being bought.
        window_start: Start of the aggregation window.
        count: Distinct wallets that bought in the window.
        total_volume_usd: Sum of USD buy volume in the window.
        time_window_minutes: Window size.
        timestamp: Time of the event that last updated the aggregate.
        triggered_subscription_ids: Subscriptions whose thresholds this
            update crossed for the first time in the window.
        token_symbol: Symbol of the token, when the parser supplied one.
    """

    token_mint: str
    window_start: datetime
    count: int
    total_volume_usd: Decimal
    time_window_minutes: int
    timestamp: datetime
    triggered_subscription_ids: frozenset[int] = frozenset()
    token_symbol: str = ""
    wallets: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "token_mint": self.token_mint,
            "token_symbol": self.token_symbol,
            "window_start": self.window_start.isoformat(),
            "count": self.count,
            "total_volume_usd": str(self.total_volume_usd),
            "time_window_minutes": self.time_window_minutes,
            "timestamp": self.timestamp.isoformat(),
            "triggered_subscription_ids": sorted(self.triggered_subscription_ids),
            "wallets": list(self.wallets),
        }


@dataclass(frozen=True)
class MatcherMetrics:
    """Snapshot of alert matcher activity."""

    subscriptions_by_type: dict[str, int]
    evaluations: int
    matches: int
    last_sync: datetime | None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def total_subscriptions(self) -> int:
        return sum(self.subscriptions_by_type.values())


@dataclass(frozen=True)
class AlertMatch:
    """A subscription matched by a swap event or a cluster result."""

    subscription: AlertSubscription
    signal: NormalizedSwapEvent | ClusterResult
    payload: dict[str, object]
    kol: KolProfile | None = None

    @property
    def alert_type(self) -> AlertType:
        return self.subscription.alert_type
