"""
SQLAlchemy Models for CallSync Storage

Async-compatible SQLAlchemy 2.0 ORM model for session snapshots.

Designed to work with:
- SQLite (via aiosqlite)
- PostgreSQL (via asyncpg)
- MySQL (via aiomysql)
"""

from datetime import datetime

from sqlalchemy import (
    String,
    Integer,
    Boolean,
    DateTime,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)


# =============================================================================
# Base
# =============================================================================

class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# =============================================================================
# Call Session Model
# =============================================================================

class CallSessionModel(Base):
    """
    Latest known state of a call session.

    One row per session, overwritten on every lifecycle transition.
    """
    __tablename__ = "call_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Parties
    caller_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    callee_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    channel_name: Mapped[str] = mapped_column(String(64), nullable=False)

    # Countdown
    duration_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", index=True
    )
    warning_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    end_reason: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<CallSession {self.id} status={self.status}>"
