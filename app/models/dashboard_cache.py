"""
Dashboard cache model

One row per slice (tenant, segment, timeframe, platform). A refresh replaces
``data`` wholesale; there is no partial update.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from datetime import datetime

from app.models.base import Base


class DashboardCacheEntry(Base):
    __tablename__ = "dashboard_cache"

    id = Column(Integer, primary_key=True, index=True)

    tenant_id = Column(String, nullable=False, index=True)
    segment_id = Column(String, nullable=False, index=True)
    timeframe = Column(String, nullable=False)  # 7d, 14d, 30d
    platform = Column(String, nullable=False, default="all")

    data = Column(JSON, nullable=False)

    refreshed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "segment_id", "timeframe", "platform",
            name="uq_dashboard_cache_slice",
        ),
    )
