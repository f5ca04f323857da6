"""Tests for daily quota (RPD) tracking."""

from datetime import datetime

import pytest

from smokefree_qa.llm.credentials import build_credentials
from smokefree_qa.llm.quota import QuotaTracker
from smokefree_qa.models.quota import Credential
from smokefree_qa.storage.kv_store import InMemoryKeyValueStore
from tests.fakes import VALID_KEYS, Clock


@pytest.fixture
def clock() -> Clock:
    return Clock(datetime(2026, 10, 19, 21, 30))


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def credentials() -> list[Credential]:
    return build_credentials(VALID_KEYS)


@pytest.fixture
def quota(kv: InMemoryKeyValueStore, credentials: list[Credential], clock: Clock) -> QuotaTracker:
    return QuotaTracker(kv, credentials, max_per_day=250, today=clock.today, now=clock.now)


class TestSnapshot:
    def test_fresh_snapshot(self, quota: QuotaTracker) -> None:
        stats = quota.stats()
        assert stats.reset_time == "2026-10-19"
        assert stats.total_used == 0
        assert stats.total_max == 750
        assert stats.remaining == 750
        names = [key.key_name for key in stats.api_keys]
        assert names == ["API Key #1", "API Key #2", "API Key #3"]
        assert all(key.is_active for key in stats.api_keys)

    def test_keys_are_masked(self, quota: QuotaTracker) -> None:
        usage = quota.stats().api_keys[0]
        assert usage.masked_key == "AIza****0001"

    def test_snapshot_is_persisted(
        self,
        quota: QuotaTracker,
        kv: InMemoryKeyValueStore,
        credentials: list[Credential],
        clock: Clock,
    ) -> None:
        quota.record_usage("key2")
        reopened = QuotaTracker(kv, credentials, today=clock.today, now=clock.now)
        assert reopened.stats().find("key2").used_today == 1

    def test_corrupt_snapshot_resets(
        self, quota: QuotaTracker, kv: InMemoryKeyValueStore
    ) -> None:
        kv.set("gemini_rpd_stats", "{broken")
        assert quota.stats().total_used == 0

    def test_reconciles_with_configured_keys(
        self, quota: QuotaTracker, kv: InMemoryKeyValueStore, clock: Clock
    ) -> None:
        quota.record_usage("key1")
        more_keys = VALID_KEYS + ["AIzaSyD-fourth-test-key-00000000000004"]
        wider = QuotaTracker(kv, build_credentials(more_keys), today=clock.today, now=clock.now)
        stats = wider.stats()
        assert len(stats.api_keys) == 4
        assert stats.find("key1").used_today == 1
        assert stats.find("key4").key_name == "API Key #4"


class TestRecordUsage:
    def test_increments_by_one(self, quota: QuotaTracker) -> None:
        assert quota.record_usage("key1") is True
        assert quota.stats().find("key1").used_today == 1
        assert quota.stats().total_used == 1

    def test_gate_at_daily_ceiling(self, quota: QuotaTracker, kv: InMemoryKeyValueStore) -> None:
        for _ in range(250):
            assert quota.record_usage("key1") is True

        before = kv.get("gemini_rpd_stats")
        assert quota.record_usage("key1") is False
        assert kv.get("gemini_rpd_stats") == before
        assert quota.stats().find("key1").used_today == 250
        assert quota.is_available("key1") is False
        assert quota.is_available("key2") is True

    @pytest.mark.parametrize("key_id", ["", "key9", None])
    def test_rejects_invalid_ids(self, quota: QuotaTracker, key_id: str) -> None:
        assert quota.record_usage(key_id) is False
        assert quota.stats().total_used == 0

    def test_inactive_key_rejected(self, quota: QuotaTracker) -> None:
        quota.deactivate("key1")
        assert quota.record_usage("key1") is False
        assert quota.stats().find("key1").used_today == 0


class TestActivation:
    def test_deactivate_and_activate(self, quota: QuotaTracker) -> None:
        assert quota.deactivate("key2") is True
        assert quota.is_available("key2") is False
        assert quota.activate("key2") is True
        assert quota.is_available("key2") is True

    def test_toggle(self, quota: QuotaTracker) -> None:
        assert quota.toggle_key_status("key3") is True
        assert quota.stats().find("key3").is_active is False
        assert quota.toggle_key_status("key3") is True
        assert quota.stats().find("key3").is_active is True

    def test_unknown_key(self, quota: QuotaTracker) -> None:
        assert quota.deactivate("key9") is False
        assert quota.toggle_key_status("key9") is False


class TestDailyReset:
    def test_rollover_clears_usage(self, quota: QuotaTracker, clock: Clock) -> None:
        for _ in range(250):
            quota.record_usage("key1")
        quota.record_usage("key2")
        quota.deactivate("key3")

        clock.current = datetime(2026, 10, 20, 0, 1)
        stats = quota.stats()

        assert stats.reset_time == "2026-10-20"
        assert all(key.used_today == 0 for key in stats.api_keys)
        assert all(key.is_active for key in stats.api_keys)
        assert all(key.last_reset_date == "2026-10-20" for key in stats.api_keys)

    def test_same_day_keeps_usage(self, quota: QuotaTracker, clock: Clock) -> None:
        quota.record_usage("key1")
        clock.current = datetime(2026, 10, 19, 23, 59)
        assert quota.stats().total_used == 1

    def test_force_reset(self, quota: QuotaTracker) -> None:
        quota.record_usage("key1")
        assert quota.force_reset().total_used == 0
        assert quota.stats().total_used == 0


class TestDisplayHelpers:
    def test_time_until_reset(self, quota: QuotaTracker) -> None:
        assert quota.time_until_reset() == "2시간 30분"

    @pytest.mark.parametrize(
        ("used", "maximum", "expected"),
        [(0, 250, 0.0), (125, 250, 50.0), (300, 250, 100.0), (1, 0, 100.0)],
    )
    def test_usage_percentage(self, used: int, maximum: int, expected: float) -> None:
        assert QuotaTracker.usage_percentage(used, maximum) == expected

    @pytest.mark.parametrize(
        ("percentage", "status"), [(10.0, "정상"), (70.0, "주의"), (89.9, "주의"), (90.0, "위험")]
    )
    def test_usage_status(self, percentage: float, status: str) -> None:
        assert QuotaTracker.usage_status(percentage) == status
