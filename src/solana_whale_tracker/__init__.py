"""Solana Whale Tracker - Whale, cluster and KOL alert pipeline for Solana swaps."""

__version__ = "0.1.0"
