"""
Account model — the owner of API keys.

Carries the two aggregates the usage recorder maintains:
  • usage     — total tokens consumed across all of the owner's keys
  • payg_due  — owed balance accrued by pay-as-you-go keys (exact decimal)

`role` gates the admin endpoints.
"""

import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base, utcnow

ROLE_USER = "user"
ROLE_ADMIN = "admin"


class Account(Base):
    """A customer (or operator) account."""

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(10), nullable=False, default=ROLE_USER)
    usage: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    payg_due: Mapped[Decimal] = mapped_column(
        Numeric(14, 8),
        nullable=False,
        default=Decimal("0"),
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="ck_accounts_role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __repr__(self) -> str:
        return f"<Account id={self.id!r} role={self.role}>"
