"""
Quota Tracker Tests

Daily budget of 10,000 units (search = 100, detail = 1, trending = 1) resetting at
midnight America/Los_Angeles, with LOW / MEDIUM / HIGH / CRITICAL priority bands.

Run:
----
    pytest tests/test_quota_tracker.py -v
"""

from datetime import datetime, timezone

from conftest import FakeClock

from vibe_server.services.quota_tracker import (
    PriorityLevel,
    QuotaConfig,
    QuotaOperation,
    QuotaTracker,
)


class TestBudget:
    def test_costs(self, quota):
        assert quota.cost(QuotaOperation.SEARCH) == 100
        assert quota.cost(QuotaOperation.DETAIL, 7) == 7
        assert quota.cost(QuotaOperation.TRENDING) == 1

    def test_search_blocked_near_budget(self, quota):
        quota.record(QuotaOperation.DETAIL, 9950)
        assert not quota.can_afford(QuotaOperation.SEARCH)
        assert quota.can_afford(QuotaOperation.DETAIL, 50)
        assert not quota.can_afford(QuotaOperation.DETAIL, 51)

    def test_can_afford_is_pure(self, quota):
        for _ in range(5):
            quota.can_afford(QuotaOperation.SEARCH)
        assert quota.consumed == 0

    def test_exhaustion(self, quota):
        for _ in range(100):
            quota.record(QuotaOperation.SEARCH)
        assert quota.consumed == 10_000
        assert not quota.can_afford(QuotaOperation.TRENDING)
        assert quota.priority_level() == PriorityLevel.CRITICAL
        assert quota.scaled_limit(20) == 0


class TestPriorityBands:
    def test_low_to_medium_exactly_at_half(self, quota):
        quota.record(QuotaOperation.DETAIL, 4999)
        assert quota.priority_level() == PriorityLevel.LOW
        quota.record(QuotaOperation.DETAIL)
        assert quota.priority_level() == PriorityLevel.MEDIUM

    def test_high_and_critical(self, quota):
        quota.record(QuotaOperation.DETAIL, 8000)
        assert quota.priority_level() == PriorityLevel.HIGH
        quota.record(QuotaOperation.DETAIL, 1500)
        assert quota.priority_level() == PriorityLevel.CRITICAL

    def test_scaled_limit_by_band(self, quota):
        assert quota.scaled_limit(20) == 20
        quota.record(QuotaOperation.DETAIL, 5000)
        assert quota.scaled_limit(20) == 10
        quota.record(QuotaOperation.DETAIL, 3000)
        assert quota.scaled_limit(20) == 5
        assert quota.scaled_limit(1) == 1


class TestEpoch:
    def test_resets_at_pacific_midnight(self):
        # Midnight PDT is 07:00 UTC; 06:30 UTC is still June 14 in Los Angeles.
        clock = FakeClock(datetime(2025, 6, 15, 6, 30, tzinfo=timezone.utc))
        quota = QuotaTracker(clock=clock)
        quota.record(QuotaOperation.SEARCH, 50)
        assert quota.consumed == 5000

        clock.advance(minutes=29)
        assert quota.consumed == 5000

        clock.advance(minutes=2)  # 07:01 UTC = 00:01 PDT June 15
        assert quota.consumed == 0
        assert quota.can_afford(QuotaOperation.SEARCH, 100)
        assert quota.priority_level() == PriorityLevel.LOW

        quota.record(QuotaOperation.DETAIL)
        assert quota.consumed == 1
        assert quota.snapshot().operations == {"search": 0, "detail": 1, "trending": 0}

    def test_snapshot(self, quota, clock):
        quota.record(QuotaOperation.SEARCH, 2)
        quota.record(QuotaOperation.DETAIL, 40)
        snap = quota.snapshot()
        assert snap.consumed == 240
        assert snap.remaining == 9760
        assert snap.percent_used == 2.4
        assert snap.operations["search"] == 2
        assert snap.priority == PriorityLevel.LOW
        assert snap.epoch_date.isoformat() == "2025-06-15"

    def test_custom_budget(self, clock):
        quota = QuotaTracker(QuotaConfig(daily_budget=200), clock=clock)
        quota.record(QuotaOperation.SEARCH)
        assert quota.priority_level() == PriorityLevel.MEDIUM
        assert not quota.can_afford(QuotaOperation.SEARCH, 2)
