"""Data ingestion layer - Signature discovery, dedup and load shedding."""

from solana_whale_tracker.ingestor.checkpoint import CheckpointStore
from solana_whale_tracker.ingestor.dedup import DedupCache
from solana_whale_tracker.ingestor.models import (
    NormalizedSwapEvent,
    SignatureCursor,
    SignatureSource,
    TransactionParser,
    TransactionSignature,
)
from solana_whale_tracker.ingestor.queue import BackpressureQueue, OfferResult, QueueStats
from solana_whale_tracker.ingestor.signature_ingestor import SignatureIngestor, TickResult
from solana_whale_tracker.ingestor.sources import RpcSignatureSource

__all__ = [
    "BackpressureQueue",
    "CheckpointStore",
    "DedupCache",
    "NormalizedSwapEvent",
    "OfferResult",
    "QueueStats",
    "RpcSignatureSource",
    "SignatureCursor",
    "SignatureIngestor",
    "SignatureSource",
    "TickResult",
    "TransactionParser",
    "TransactionSignature",
]
