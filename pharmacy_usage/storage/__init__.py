"""Ledger and aggregate store backends."""

from .base import LedgerStore, StatsStore
from .config import get_ledger_store, get_stats_store, reset_stores

__all__ = [
    "LedgerStore",
    "StatsStore",
    "get_ledger_store",
    "get_stats_store",
    "reset_stores",
]
