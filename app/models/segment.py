"""
Segment model

A segment scopes a tenant's data. Segments form a tree; only leaf segments own
activities, so aggregate segments are queried through the union of their leaves.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey
from datetime import datetime

from app.models.base import Base


class Segment(Base):
    __tablename__ = "segments"

    id = Column(String, primary_key=True)
    tenant_id = Column(String, index=True, nullable=False)
    parent_id = Column(String, ForeignKey("segments.id"), index=True, nullable=True)

    name = Column(String, nullable=False)
    slug = Column(String, nullable=True)

    # Watermark: start time of the last refresh pass that wrote every planned slice
    dashboard_cache_last_refreshed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
