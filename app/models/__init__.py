"""Database models for the dashboard cache worker"""

from app.models.segment import Segment
from app.models.activity import Activity
from app.models.dashboard_cache import DashboardCacheEntry
