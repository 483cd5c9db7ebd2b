"""
API key model — the credential a desktop client presents to the AI proxy.

Notes:
  • The key string itself is the primary key (`ctrl-` + 16 alphanumerics),
    so lookup is a single primary-key read.
  • `status` flips active → revoked; revoked rows stay for the audit trail
    and must never pass admission.
  • `usage_this_month` only grows within a billing period. The period
    reset happens outside this service.
  • `linked_upstream_credentials` is advisory — the upstream router does
    not filter by it.
"""

import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base, utcnow

KEY_STATUS_ACTIVE = "active"
KEY_STATUS_REVOKED = "revoked"


class APIKey(Base):
    """One issued API key and its running monthly usage."""

    __tablename__ = "api_keys"

    key: Mapped[str] = mapped_column(String(21), primary_key=True)
    tier: Mapped[str] = mapped_column(
        String(10),
        ForeignKey("tiers.name"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=KEY_STATUS_ACTIVE,
    )
    owner_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    monthly_quota: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    usage_this_month: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    linked_upstream_credentials: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("tier IN ('free', 'pro', 'payg')", name="ck_api_keys_tier"),
        CheckConstraint(
            "status IN ('active', 'revoked')",
            name="ck_api_keys_status",
        ),
        CheckConstraint("monthly_quota >= 0", name="ck_api_keys_quota_non_neg"),
        CheckConstraint("usage_this_month >= 0", name="ck_api_keys_usage_non_neg"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == KEY_STATUS_ACTIVE

    def __repr__(self) -> str:
        # Only the prefix; full keys never reach logs.
        return (
            f"<APIKey key={self.key[:9]!r}… tier={self.tier} "
            f"status={self.status}>"
        )
