"""
Activity model

Only the columns the refresh engine reads are mapped here; the analytical
measures themselves are answered by the query backend.
"""
from sqlalchemy import Column, String, DateTime, Index
from datetime import datetime

from app.models.base import Base


class Activity(Base):
    __tablename__ = "activities"

    id = Column(String, primary_key=True)
    tenant_id = Column(String, index=True, nullable=False)
    segment_id = Column(String, index=True, nullable=False)
    member_id = Column(String, index=True, nullable=True)

    platform = Column(String, nullable=False)  # github, slack, discord, ...
    type = Column(String, nullable=True)
    sentiment_mood = Column(String, nullable=True)

    timestamp = Column(DateTime, nullable=False)  # When the activity happened
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)  # When it was ingested
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_activities_segment_created", "segment_id", "created_at"),
    )
