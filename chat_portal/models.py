"""
SQLAlchemy models for the chat lifecycle audit log.
"""
from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ChatAuditLog(Base):
    """One inactivity-monitor lifecycle event. No tokens or message text."""

    __tablename__ = "chat_audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    chat_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    outcome: Mapped[str] = mapped_column(String(32), nullable=False, default="success")
