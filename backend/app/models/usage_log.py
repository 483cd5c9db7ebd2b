"""
Usage log model — one row per AI proxy request attempt.

Append-only: rows are inserted by the usage recorder and never updated or
deleted here. Failed attempts are logged with tokens_used = 0 and an
error_code so analytics can break errors down.
"""

import datetime
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, utcnow


class UsageLog(Base):
    """One request attempt and its outcome."""

    __tablename__ = "usage_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    api_key: Mapped[str] = mapped_column(String(21), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    timestamp: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    upstream_credential_used: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("tokens_used >= 0", name="ck_usage_logs_tokens_non_neg"),
        Index("ix_usage_logs_timestamp", "timestamp"),
        Index("ix_usage_logs_api_key", "api_key"),
        Index("ix_usage_logs_owner_id", "owner_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<UsageLog id={self.id!s:.8} key={self.api_key[:9]!r}… "
            f"success={self.success} tokens={self.tokens_used}>"
        )
