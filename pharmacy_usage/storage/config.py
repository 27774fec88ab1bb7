"""Store factory."""

import logging
from typing import Optional

from pharmacy_usage.core.usage.config import get_usage_config

from .base import LedgerStore, StatsStore

logger = logging.getLogger(__name__)


# Global store instances (singletons)
_ledger_store: Optional[LedgerStore] = None
_stats_store: Optional[StatsStore] = None


def _backend() -> str:
    return get_usage_config().store_backend


def get_ledger_store() -> LedgerStore:
    """
    Get or create the ledger store singleton.

    Returns:
        LedgerStore for the configured backend (USAGE_STORE_BACKEND)
    """
    global _ledger_store

    if _ledger_store is None:
        backend = _backend()
        if backend == "memory":
            from .memory import MemoryLedgerStore

            _ledger_store = MemoryLedgerStore()
        else:
            from .postgres import PostgresLedgerStore

            _ledger_store = PostgresLedgerStore()
        logger.info(f"Ledger store initialized: backend={backend}")

    return _ledger_store


def get_stats_store() -> StatsStore:
    """
    Get or create the stats store singleton.

    Returns:
        StatsStore for the configured backend (USAGE_STORE_BACKEND)
    """
    global _stats_store

    if _stats_store is None:
        backend = _backend()
        if backend == "memory":
            from .memory import MemoryStatsStore

            _stats_store = MemoryStatsStore()
        else:
            from .postgres import PostgresStatsStore

            _stats_store = PostgresStatsStore()
        logger.info(f"Stats store initialized: backend={backend}")

    return _stats_store


def reset_stores() -> None:
    """Reset store singletons (for testing)."""
    global _ledger_store, _stats_store
    _ledger_store = None
    _stats_store = None
