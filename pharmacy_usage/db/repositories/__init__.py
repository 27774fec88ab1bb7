"""
Repository layer for database operations.

Provides:
- ledger_repository: Per-user reserve/commit/release on the usage ledger
- stats_repository: Keyed aggregate counters bootstrapped from user profiles
"""

from . import ledger_repository, stats_repository

__all__ = [
    "ledger_repository",
    "stats_repository",
]
