from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.adsmanager.models import Base

if TYPE_CHECKING:
    from app.adsmanager.modules.campaigns.models import Campaign


class Ad(Base):
    __tablename__ = "ads"
    __table_args__ = (
        Index("idx_ads_campaign", "campaign_id"),
        Index("idx_ads_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    ad_type: Mapped[str] = mapped_column(String(16), nullable=False, default="image")  # image, video
    headline: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    link_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # At most one populated, matching ad_type
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    video_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    budget_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")  # draft, active, paused

    # Targeting metadata: call_to_action, target_audience, duration_days, tags
    performance_data: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    # Many-to-one only; campaign deletion removes ads explicitly in the service layer.
    campaign: Mapped["Campaign"] = relationship("Campaign", lazy="joined")

    @property
    def budget(self) -> float:
        return (self.budget_cents or 0) / 100

    @property
    def media_url(self) -> str | None:
        return self.video_url if self.ad_type == "video" else self.image_url

    @property
    def has_complete_content(self) -> bool:
        return bool(
            (self.image_url or self.video_url)
            and (self.headline or "").strip()
            and (self.description or "").strip()
        )
