"""
PostgreSQL database package for usage accounting.

Provides:
- SQLAlchemy 2.0 async ORM models for the ledger and aggregate tables
- Connection management with per-event-loop engines
- Repository layer for ledger and aggregate operations
"""

from .connection import DatabaseConfig, DatabaseManager, db, get_session
from .models import Base, DashboardStatsModel, UsageLedgerModel, UserProfileModel

__all__ = [
    # Connection management
    "DatabaseConfig",
    "DatabaseManager",
    "db",
    "get_session",
    # Models
    "Base",
    "UsageLedgerModel",
    "DashboardStatsModel",
    "UserProfileModel",
]
