"""
SQLAlchemy models for usage accounting.

Tables:
- ai_message_usage: per-user ledger of committed and reserved AI messages
- dashboard_stats: keyed aggregate counters (singleton row at "global")
- user_profiles: user directory owned by the host application; only
  counted here when bootstrapping or recomputing aggregates
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all usage accounting tables."""


class UsageLedgerModel(Base):
    """Per-user AI message ledger."""
    __tablename__ = "ai_message_usage"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    messages_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    pending_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_reserved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("messages_used >= 0", name="ck_ai_message_usage_messages_used_nonneg"),
        CheckConstraint("pending_messages >= 0", name="ck_ai_message_usage_pending_nonneg"),
    )

    def __repr__(self) -> str:
        return (
            f"<UsageLedgerModel user_id={self.user_id} "
            f"used={self.messages_used} pending={self.pending_messages}>"
        )


class DashboardStatsModel(Base):
    """Keyed aggregate counters."""
    __tablename__ = "dashboard_stats"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    active_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("total_users >= 0", name="ck_dashboard_stats_total_nonneg"),
        CheckConstraint("active_users >= 0", name="ck_dashboard_stats_active_nonneg"),
    )


class UserProfileModel(Base):
    """Minimal read-only mapping of the host application's user profiles."""
    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="user", server_default="user")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


__all__ = [
    "Base",
    "UsageLedgerModel",
    "DashboardStatsModel",
    "UserProfileModel",
]
