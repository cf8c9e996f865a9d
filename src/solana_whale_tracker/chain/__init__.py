"""Chain access layer - Solana JSON-RPC client."""

from solana_whale_tracker.chain.rpc import (
    RateLimiter,
    RateLimitError,
    RPCError,
    SolanaClientError,
    SolanaRpcClient,
    TokenBalance,
)

__all__ = [
    "RPCError",
    "RateLimitError",
    "RateLimiter",
    "SolanaClientError",
    "SolanaRpcClient",
    "TokenBalance",
]
