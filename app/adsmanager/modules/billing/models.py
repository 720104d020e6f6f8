from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.adsmanager.models import Base


class Package(Base):
    __tablename__ = "packages"
    __table_args__ = (
        Index("idx_packages_active_price", "is_active", "price_cents"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    features: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)  # ordered list of strings
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # NULL means unlimited (every current package)
    campaign_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    monthly_impressions_limit: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    ads_per_campaign_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @property
    def price(self) -> float:
        return (self.price_cents or 0) / 100


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("idx_subscriptions_user", "user_id"),
        Index(
            "uq_subscriptions_one_active_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    package_id: Mapped[int] = mapped_column(ForeignKey("packages.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")  # active, cancelled

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    package: Mapped[Package] = relationship("Package", lazy="joined")
