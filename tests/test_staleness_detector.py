"""
Staleness planning: cold start, nothing new, and platform-selective refresh.
"""
from datetime import datetime, timezone

from app.services.staleness_detector import RefreshPlan, StalenessDetector

T0 = datetime(2024, 3, 14, 12, 0, 0, tzinfo=timezone.utc)


def test_cold_start_plans_all_active_platforms(store, make_segment, make_activity):
    make_segment("seg-1")
    make_activity("seg-1", "github", datetime(2024, 3, 1))
    make_activity("seg-1", "slack", datetime(2024, 3, 2))

    plan = StalenessDetector(store).plan_refresh("seg-1", None, ["seg-1"])

    assert plan.skip is False
    assert plan.cold_start is True
    assert plan.platforms == {"github", "slack", "all"}


def test_cold_start_without_activities_still_refreshes_all(store, make_segment):
    make_segment("seg-1")

    plan = StalenessDetector(store).plan_refresh("seg-1", None, ["seg-1"])

    assert plan.skip is False
    assert plan.platforms == {"all"}


def test_no_new_activity_skips(store, make_segment, make_activity):
    make_segment("seg-1")
    make_activity("seg-1", "github", datetime(2024, 3, 13))

    plan = StalenessDetector(store).plan_refresh("seg-1", T0, ["seg-1"])

    assert plan.skip is True
    assert plan.platforms == frozenset()


def test_only_platforms_with_new_activity_are_planned(store, make_segment, make_activity):
    make_segment("seg-1")
    make_activity("seg-1", "github", datetime(2024, 3, 15, 8, 0))
    make_activity("seg-1", "slack", datetime(2024, 3, 13))

    plan = StalenessDetector(store).plan_refresh("seg-1", T0, ["seg-1"])

    assert plan.skip is False
    assert plan.cold_start is False
    assert plan.platforms == {"github", "all"}
    assert "slack" not in plan.platforms


def test_activity_exactly_at_watermark_is_not_new(store, make_segment, make_activity):
    make_segment("seg-1")
    make_activity("seg-1", "github", T0.replace(tzinfo=None))

    plan = StalenessDetector(store).plan_refresh("seg-1", T0, ["seg-1"])

    assert plan.skip is True


def test_activity_outside_leaf_segments_is_ignored(store, make_segment, make_activity):
    make_segment("seg-1")
    make_segment("seg-2")
    make_activity("seg-2", "github", datetime(2024, 3, 15, 8, 0))

    plan = StalenessDetector(store).plan_refresh("seg-1", T0, ["seg-1"])

    assert plan.skip is True


def test_ordered_platforms_puts_all_first():
    plan = RefreshPlan(platforms=frozenset({"slack", "all", "discord", "github"}), skip=False)
    assert plan.ordered_platforms() == ("all", "discord", "github", "slack")
