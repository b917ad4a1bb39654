import os

os.environ.setdefault("ENABLE_SCHEDULER", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.models.activity import Activity
from app.models.base import Base
from app.models.segment import Segment
from app.services.activity_store import ActivityStore
from app.services.cache_writer import CacheWriter
from app.services.dashboard_refresh_service import DashboardRefreshService
from app.services.metric_aggregator import MetricAggregator
from app.utils.response_cache import response_cache
from tests.utils import NOW, FakeQueryBackend, RecordingStepExecutor


@pytest.fixture(autouse=True)
def clear_response_cache():
    response_cache.clear()
    yield
    response_cache.clear()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_segment(db):
    def fn(
        segment_id: str,
        tenant_id: str = "tenant-1",
        parent_id: Optional[str] = None,
        created_at: datetime = datetime(2024, 1, 1),
        watermark: Optional[datetime] = None,
    ) -> Segment:
        segment = Segment(
            id=segment_id,
            tenant_id=tenant_id,
            parent_id=parent_id,
            name=segment_id,
            created_at=created_at,
            dashboard_cache_last_refreshed_at=watermark,
        )
        db.add(segment)
        db.commit()
        return segment

    return fn


@pytest.fixture
def make_activity(db):
    counter = {"n": 0}

    def fn(
        segment_id: str,
        platform: str,
        created_at: datetime,
        tenant_id: str = "tenant-1",
        deleted: bool = False,
    ) -> Activity:
        counter["n"] += 1
        activity = Activity(
            id=f"activity-{counter['n']}",
            tenant_id=tenant_id,
            segment_id=segment_id,
            platform=platform,
            type="message",
            timestamp=created_at,
            created_at=created_at,
            deleted_at=created_at if deleted else None,
        )
        db.add(activity)
        db.commit()
        return activity

    return fn


@pytest.fixture
def backend():
    return FakeQueryBackend()


@pytest.fixture
def executor():
    return RecordingStepExecutor()


@pytest.fixture
def store(db):
    return ActivityStore(db)


@pytest.fixture
def writer(db, store):
    return CacheWriter(db, store)


@pytest.fixture
def refresh_service(store, writer, backend, executor):
    return DashboardRefreshService(
        store=store,
        aggregator=MetricAggregator(backend),
        writer=writer,
        executor=executor,
        clock=lambda: NOW,
    )
