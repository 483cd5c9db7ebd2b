"""
Upstream credential model — one OpenRouter key in the credential pool.

The secret is never stored: `env_name` names the environment variable
that holds it. `status` is the durable copy of the health flag; the live
copy sits in the counter store with a TTL so negative states expire back
to an implicit "healthy".
"""

import datetime
import enum

from sqlalchemy import CheckConstraint, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, utcnow


class HealthStatus(str, enum.Enum):
    HEALTHY = "healthy"
    RATE_LIMITED = "rate_limited"
    UNHEALTHY = "unhealthy"


class UpstreamCredential(Base):
    """An upstream API key reference plus its last known health."""

    __tablename__ = "upstream_credentials"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    env_name: Mapped[str] = mapped_column(String(128), nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=HealthStatus.HEALTHY.value,
    )
    last_checked_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('healthy', 'rate_limited', 'unhealthy')",
            name="ck_upstream_credentials_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<UpstreamCredential id={self.id!r} status={self.status}>"
