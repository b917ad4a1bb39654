"""
Cache writer tests: whole-slice overwrite, isolation between slices, reads.
"""
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.models.base import Base
from app.models.dashboard_cache import DashboardCacheEntry
from app.services.cache_writer import CacheWriter, SliceKey, response_cache_prefix
from app.services.metric_aggregator import DashboardData, MetricSnapshot, TimeseriesPoint
from app.services.step_executor import RetryingStepExecutor
from app.services.timeframe import DashboardTimeframe
from app.utils.response_cache import response_cache

REFRESHED_AT = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
KEY = SliceKey("tenant-1", "seg-1", DashboardTimeframe.LAST_7_DAYS, "github")


def _data(total, **extra_families):
    snapshots = {"newMembers": MetricSnapshot(total=total, previous_period_total=1)}
    snapshots.update(extra_families)
    return DashboardData(snapshots=snapshots)


def test_write_creates_entry(writer, db):
    writer.write(KEY, _data(10), REFRESHED_AT)

    entry = db.query(DashboardCacheEntry).one()
    assert (entry.tenant_id, entry.segment_id, entry.timeframe, entry.platform) == (
        "tenant-1", "seg-1", "7d", "github"
    )
    assert entry.data["newMembers"]["total"] == 10
    assert entry.refreshed_at == datetime(2024, 3, 15, 12, 0)


def test_write_replaces_whole_entry(writer, db):
    activity = MetricSnapshot(
        total=4,
        previous_period_total=2,
        timeseries=(TimeseriesPoint(date=REFRESHED_AT.date(), value=4),),
    )
    writer.write(KEY, _data(10, activity=activity), REFRESHED_AT)
    writer.write(KEY, _data(20), REFRESHED_AT)

    entry = db.query(DashboardCacheEntry).one()
    assert entry.data == {"newMembers": {"total": 20, "previousPeriodTotal": 1, "timeseries": []}}


def test_write_is_idempotent(writer, db):
    writer.write(KEY, _data(10), REFRESHED_AT)
    writer.write(KEY, _data(10), REFRESHED_AT)

    assert db.query(DashboardCacheEntry).count() == 1
    assert db.query(DashboardCacheEntry).one().data["newMembers"]["total"] == 10


def test_slices_are_independent(writer, db):
    other = SliceKey("tenant-1", "seg-1", DashboardTimeframe.LAST_7_DAYS, "all")
    writer.write(KEY, _data(10), REFRESHED_AT)
    writer.write(other, _data(99), REFRESHED_AT)

    assert writer.read("tenant-1", "seg-1", "7d", "github")["data"]["newMembers"]["total"] == 10
    assert writer.read("tenant-1", "seg-1", "7d", "all")["data"]["newMembers"]["total"] == 99


def test_read_missing_slice(writer):
    assert writer.read("tenant-1", "seg-1", "30d", "all") is None


def test_write_invalidates_cached_responses_for_segment(writer):
    prefix = response_cache_prefix("tenant-1", "seg-1")
    response_cache.set(prefix + "7d:github", {"stale": True})
    response_cache.set(response_cache_prefix("tenant-1", "seg-2") + "7d:github", {"other": True})

    writer.write(KEY, _data(10), REFRESHED_AT)

    assert response_cache.get(prefix + "7d:github") is None
    assert response_cache.get(response_cache_prefix("tenant-1", "seg-2") + "7d:github") == {"other": True}


def test_slice_key_string():
    assert str(KEY) == "seg-1:7d:github"


def test_lost_insert_race_ends_as_update(tmp_path, monkeypatch):
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False)
    db = Session()
    other = Session()
    try:
        writer = CacheWriter(db)
        real_commit = db.commit
        calls = {"n": 0}

        def commit_after_concurrent_insert():
            calls["n"] += 1
            if calls["n"] == 1:
                # Another worker inserts the same slice between our lookup and commit
                other.add(DashboardCacheEntry(
                    tenant_id=KEY.tenant_id,
                    segment_id=KEY.segment_id,
                    timeframe=KEY.timeframe.value,
                    platform=KEY.platform,
                    data={"from": "other worker"},
                    refreshed_at=datetime(2024, 3, 15, 11, 0),
                ))
                other.commit()
            real_commit()

        monkeypatch.setattr(db, "commit", commit_after_concurrent_insert)
        executor = RetryingStepExecutor(max_attempts=3, base_delay=0, max_delay=0)

        executor.run(f"write:{KEY}", writer.write, KEY, _data(42), REFRESHED_AT)

        assert calls["n"] == 2
        rows = other.query(DashboardCacheEntry).all()
        assert len(rows) == 1
        other.refresh(rows[0])
        assert rows[0].data["newMembers"]["total"] == 42
        assert rows[0].refreshed_at == datetime(2024, 3, 15, 12, 0)
    finally:
        db.close()
        other.close()
        engine.dispose()
