"""
Tier model — a named pricing/service plan.

`rate_limit_per_min`, `monthly_quota`, `price_per_token` and
`default_model` drive admission and billing; the display fields back the
admin and pricing screens only.
"""

from decimal import Decimal

from sqlalchemy import JSON, BigInteger, CheckConstraint, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

TIER_NAMES = ("free", "pro", "payg")
TIER_PAYG = "payg"


class Tier(Base):
    """Tier configuration, keyed by name."""

    __tablename__ = "tiers"

    name: Mapped[str] = mapped_column(String(10), primary_key=True)
    default_model: Mapped[str] = mapped_column(String(100), nullable=False)
    rate_limit_per_min: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_quota: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    price_per_token: Mapped[Decimal] = mapped_column(
        Numeric(14, 8),
        nullable=False,
        default=Decimal("0"),
    )

    # ── Display ─────────────────────────────────────────────
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
    )
    features: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint("name IN ('free', 'pro', 'payg')", name="ck_tiers_name"),
        CheckConstraint("rate_limit_per_min > 0", name="ck_tiers_rate_limit_pos"),
        CheckConstraint("monthly_quota >= 0", name="ck_tiers_quota_non_neg"),
        CheckConstraint("price_per_token >= 0", name="ck_tiers_price_non_neg"),
    )

    def __repr__(self) -> str:
        return f"<Tier name={self.name} rpm={self.rate_limit_per_min}>"
