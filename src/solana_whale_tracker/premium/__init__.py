"""Premium access layer - Token balance gate and revalidation."""

from solana_whale_tracker.premium.gate import (
    ERROR_BALANCE_UNAVAILABLE,
    ERROR_INVALID_ADDRESS,
    PremiumAccessResult,
    PremiumGate,
)
from solana_whale_tracker.premium.oracle import BalanceOracle, BalanceUnavailableError
from solana_whale_tracker.premium.revalidator import BalanceRevalidator, RevalidationStats

__all__ = [
    "ERROR_BALANCE_UNAVAILABLE",
    "ERROR_INVALID_ADDRESS",
    "BalanceOracle",
    "BalanceRevalidator",
    "BalanceUnavailableError",
    "PremiumAccessResult",
    "PremiumGate",
    "RevalidationStats",
]
