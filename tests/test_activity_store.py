"""
Activity store tests: segment resolution, platform lookups and the watermark.
"""
from datetime import datetime, timezone

from sqlalchemy.exc import OperationalError

from app.models.segment import Segment
from app.services.step_executor import RetryingStepExecutor

UTC = timezone.utc


def test_default_segment_is_earliest_created(store, make_segment):
    make_segment("seg-late", created_at=datetime(2024, 2, 1))
    make_segment("seg-early", created_at=datetime(2024, 1, 1))
    make_segment("other-tenant", tenant_id="tenant-2", created_at=datetime(2023, 1, 1))

    assert store.get_default_segment("tenant-1") == "seg-early"


def test_default_segment_missing(store):
    assert store.get_default_segment("nobody") is None


def test_leaf_segments_of_tree(store, make_segment):
    make_segment("root")
    make_segment("project-a", parent_id="root")
    make_segment("sub-a1", parent_id="project-a")
    make_segment("sub-a2", parent_id="project-a")
    make_segment("project-b", parent_id="root")

    assert store.get_leaf_segment_ids("root") == ["project-b", "sub-a1", "sub-a2"]
    assert store.get_leaf_segment_ids("project-a") == ["sub-a1", "sub-a2"]


def test_segment_without_children_is_its_own_leaf(store, make_segment):
    make_segment("solo")
    assert store.get_leaf_segment_ids("solo") == ["solo"]


def test_active_platforms_ignore_deleted_and_foreign_segments(store, make_segment, make_activity):
    make_segment("seg-1")
    make_segment("seg-2")
    make_activity("seg-1", "github", datetime(2024, 3, 1))
    make_activity("seg-1", "github", datetime(2024, 3, 2))
    make_activity("seg-1", "discord", datetime(2024, 3, 2), deleted=True)
    make_activity("seg-2", "slack", datetime(2024, 3, 2))

    assert store.get_active_platforms(["seg-1"]) == {"github"}
    assert store.get_active_platforms(["seg-1", "seg-2"]) == {"github", "slack"}
    assert store.get_active_platforms([]) == set()


def test_find_new_activity_platforms_returns_empty_set(store, make_segment, make_activity):
    make_segment("seg-1")
    make_activity("seg-1", "github", datetime(2024, 3, 1))

    result = store.find_new_activity_platforms(datetime(2024, 3, 5, tzinfo=UTC), ["seg-1"])

    assert result == set()


def test_find_new_activity_platforms_accepts_aware_timestamps(store, make_segment, make_activity):
    make_segment("seg-1")
    make_activity("seg-1", "github", datetime(2024, 3, 6))

    result = store.find_new_activity_platforms(datetime(2024, 3, 5, tzinfo=UTC), ["seg-1"])

    assert result == {"github"}


def test_watermark_round_trip_is_utc(store, make_segment):
    make_segment("seg-1")
    assert store.get_dashboard_last_refreshed_at("seg-1") is None

    ts = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)
    assert store.advance_watermark("seg-1", ts) is True
    assert store.get_dashboard_last_refreshed_at("seg-1") == ts


def test_watermark_never_moves_backwards(store, make_segment, db):
    make_segment("seg-1", watermark=datetime(2024, 3, 15, 12, 0))

    assert store.advance_watermark("seg-1", datetime(2024, 3, 14, tzinfo=UTC)) is False
    assert store.advance_watermark("seg-1", datetime(2024, 3, 15, 12, 0, tzinfo=UTC)) is False
    assert db.get(Segment, "seg-1").dashboard_cache_last_refreshed_at == datetime(2024, 3, 15, 12, 0)

    assert store.advance_watermark("seg-1", datetime(2024, 3, 16, tzinfo=UTC)) is True
    assert db.get(Segment, "seg-1").dashboard_cache_last_refreshed_at == datetime(2024, 3, 16)


def test_advance_watermark_unknown_segment(store):
    assert store.advance_watermark("missing", datetime(2024, 3, 16, tzinfo=UTC)) is False


def test_refresh_targets_are_root_segments(store, make_segment):
    make_segment("root-1")
    make_segment("child", parent_id="root-1")
    make_segment("root-2", tenant_id="tenant-2")

    assert store.list_refresh_targets() == [("tenant-1", "root-1"), ("tenant-2", "root-2")]


def test_segment_exists_checks_tenant(store, make_segment):
    make_segment("seg-1")
    make_segment("seg-t2", tenant_id="tenant-2")

    assert store.segment_exists("tenant-1", "seg-1") is True
    assert store.segment_exists("tenant-1", "seg-t2") is False
    assert store.segment_exists("tenant-1", "missing") is False


def test_failed_watermark_commit_is_retried_cleanly(store, make_segment, db, monkeypatch):
    make_segment("seg-1")
    real_commit = db.commit
    calls = {"n": 0}

    def commit_failing_once():
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("UPDATE segments", {}, Exception("database is locked"))
        real_commit()

    monkeypatch.setattr(db, "commit", commit_failing_once)
    executor = RetryingStepExecutor(max_attempts=3, base_delay=0, max_delay=0)
    ts = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)

    assert executor.run("advance-watermark", store.advance_watermark, "seg-1", ts) is True

    db.expire_all()
    assert calls["n"] == 2
    assert db.get(Segment, "seg-1").dashboard_cache_last_refreshed_at == datetime(2024, 3, 15, 12, 0)
