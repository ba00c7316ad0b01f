"""Tests for the domain risk tracker and its DB layer."""

from __future__ import annotations

import sqlite3

import pytest

from orbit_crawler.db import domain_risk
from orbit_crawler.db.models import DomainRiskRecord
from orbit_crawler.risk import DomainRiskTracker, is_friction, normalize_hostname
from orbit_crawler.scraper.models import FetchOutcome


@pytest.fixture()
def tracker(conn: sqlite3.Connection) -> DomainRiskTracker:
    return DomainRiskTracker(conn, default_delay_ms=2000, max_delay_ms=60000, multiplier=2.0)


class TestNormalizeHostname:
    @pytest.mark.parametrize(
        "value",
        [
            "example.com",
            "WWW.Example.com",
            "https://www.example.com/about?x=1",
            "http://example.com:8080/",
            "www.example.com:443",
        ],
    )
    def test_variants_collapse(self, value: str) -> None:
        assert normalize_hostname(value) == "example.com"

    def test_subdomains_are_distinct(self) -> None:
        assert normalize_hostname("shop.example.com") == "shop.example.com"


class TestFrictionPolicy:
    def test_blocked_is_always_friction(self) -> None:
        assert is_friction(FetchOutcome.BLOCKED, None)
        assert is_friction(FetchOutcome.BLOCKED, "ok")

    def test_single_transient_failure_is_not_friction(self) -> None:
        assert not is_friction(FetchOutcome.SERVER_ERROR, "ok")
        assert not is_friction(FetchOutcome.TIMEOUT, None)
        assert not is_friction(FetchOutcome.NO_CONTENT, "ok")

    def test_repeated_failures_are_friction(self) -> None:
        assert is_friction(FetchOutcome.SERVER_ERROR, "timeout")
        assert is_friction(FetchOutcome.TIMEOUT, "server_error")
        assert is_friction(FetchOutcome.NO_CONTENT, "no_content")

    def test_not_found_is_never_friction(self) -> None:
        assert not is_friction(FetchOutcome.NOT_FOUND, "not_found")


class TestDomainRiskTracker:
    def test_unknown_host_gets_default_delay(self, tracker: DomainRiskTracker) -> None:
        assert tracker.get_delay("new.test") == 2000
        assert tracker.get_record("new.test") is None

    def test_ok_creates_record_without_changing_delay(self, tracker: DomainRiskTracker) -> None:
        record = tracker.record_outcome("www.Site.test", FetchOutcome.OK, 200)
        assert record.hostname == "site.test"
        assert record.success_count == 1
        assert record.failure_count == 0
        assert record.recommended_delay_ms == 2000
        assert record.last_success_at is not None
        assert record.last_outcome == "ok"

    def test_blocked_doubles_delay(self, tracker: DomainRiskTracker) -> None:
        record = tracker.record_outcome("site.test", FetchOutcome.BLOCKED, 403)
        assert record.recommended_delay_ms == 4000
        assert record.friction_count == 1
        assert record.failure_count == 1
        assert record.last_friction_codes == [403]
        assert tracker.get_delay("https://www.site.test/menu") == 4000

    def test_delay_strictly_increases_under_repeated_friction(self, tracker: DomainRiskTracker) -> None:
        delays = [
            tracker.record_outcome("site.test", FetchOutcome.BLOCKED, 403).recommended_delay_ms
            for _ in range(4)
        ]
        assert delays == [4000, 8000, 16000, 32000]

    def test_delay_is_capped(self, tracker: DomainRiskTracker) -> None:
        for _ in range(10):
            record = tracker.record_outcome("site.test", FetchOutcome.BLOCKED, 403)
        assert record.recommended_delay_ms == 60000

    def test_delay_never_decreases_after_ok(self, tracker: DomainRiskTracker) -> None:
        tracker.record_outcome("site.test", "blocked", 403)
        tracker.record_outcome("site.test", "blocked", 403)
        for _ in range(5):
            record = tracker.record_outcome("site.test", FetchOutcome.OK, 200)
        assert record.recommended_delay_ms == 8000
        assert record.success_count == 5

    def test_repeated_server_errors_raise_delay(self, tracker: DomainRiskTracker) -> None:
        first = tracker.record_outcome("site.test", FetchOutcome.SERVER_ERROR, 503)
        assert first.recommended_delay_ms == 2000
        assert first.friction_count == 0
        second = tracker.record_outcome("site.test", FetchOutcome.TIMEOUT)
        assert second.recommended_delay_ms == 4000
        assert second.friction_count == 1
        assert second.last_friction_codes == []

    def test_not_found_counts_as_failure_only(self, tracker: DomainRiskTracker) -> None:
        for _ in range(3):
            record = tracker.record_outcome("site.test", FetchOutcome.NOT_FOUND, 404)
        assert record.failure_count == 3
        assert record.friction_count == 0
        assert record.recommended_delay_ms == 2000

    def test_friction_codes_keep_last_ten(self, tracker: DomainRiskTracker) -> None:
        for status in range(400, 412):
            record = tracker.record_outcome("site.test", FetchOutcome.BLOCKED, status)
        assert record.last_friction_codes == list(range(402, 412))

    def test_state_is_persisted(self, conn: sqlite3.Connection, tracker: DomainRiskTracker) -> None:
        tracker.record_outcome("site.test", FetchOutcome.BLOCKED, 429)
        other = DomainRiskTracker(conn)
        assert other.get_delay("site.test") == 4000

    def test_empty_hostname_rejected(self, tracker: DomainRiskTracker) -> None:
        with pytest.raises(ValueError):
            tracker.record_outcome("", FetchOutcome.OK)

    def test_list_records_riskiest_first(self, tracker: DomainRiskTracker) -> None:
        tracker.record_outcome("calm.test", FetchOutcome.OK, 200)
        tracker.record_outcome("busy.test", FetchOutcome.BLOCKED, 403)
        assert [r.hostname for r in tracker.list_records()] == ["busy.test", "calm.test"]


class TestRecommendedMode:
    def test_unknown_host_is_standard(self, tracker: DomainRiskTracker) -> None:
        assert tracker.recommended_mode("new.test") == "standard"

    def test_clean_history_is_standard(self, tracker: DomainRiskTracker) -> None:
        tracker.record_outcome("site.test", FetchOutcome.OK, 200)
        assert tracker.recommended_mode("site.test") == "standard"

    def test_last_blocked_is_user_assisted(self, tracker: DomainRiskTracker) -> None:
        tracker.record_outcome("site.test", FetchOutcome.BLOCKED, 403)
        assert tracker.recommended_mode("site.test") == "user_assisted"

    def test_some_friction_is_light(self, tracker: DomainRiskTracker) -> None:
        tracker.record_outcome("site.test", FetchOutcome.BLOCKED, 403)
        tracker.record_outcome("site.test", FetchOutcome.OK, 200)
        assert tracker.recommended_mode("site.test") == "light"

    def test_heavy_friction_is_user_assisted(self, tracker: DomainRiskTracker) -> None:
        for _ in range(3):
            tracker.record_outcome("site.test", FetchOutcome.BLOCKED, 403)
        tracker.record_outcome("site.test", FetchOutcome.OK, 200)
        assert tracker.recommended_mode("site.test") == "user_assisted"


class TestRiskScore:
    def test_clean_host_scores_zero(self) -> None:
        record = DomainRiskRecord(hostname="a.test", recommended_delay_ms=2000, success_count=4)
        assert record.risk_score == 0

    def test_score_combines_failures_and_friction(self) -> None:
        record = DomainRiskRecord(
            hostname="a.test",
            recommended_delay_ms=8000,
            success_count=1,
            failure_count=1,
            friction_count=2,
        )
        assert record.risk_score == 45

    def test_score_is_capped(self) -> None:
        record = DomainRiskRecord(
            hostname="a.test", recommended_delay_ms=60000, failure_count=9, friction_count=9
        )
        assert record.risk_score == 100


class TestDomainRiskStore:
    def test_create_is_idempotent(self, conn: sqlite3.Connection) -> None:
        a = domain_risk.create_record(conn, "a.test", 2000)
        a.recommended_delay_ms = 9000
        domain_risk.save_record(conn, a)
        b = domain_risk.create_record(conn, "a.test", 2000)
        assert b.recommended_delay_ms == 9000

    def test_create_rejects_empty_hostname(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(ValueError):
            domain_risk.create_record(conn, "", 2000)

    def test_save_missing_record_raises(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(ValueError, match="not found"):
            domain_risk.save_record(conn, DomainRiskRecord(hostname="ghost.test", recommended_delay_ms=1))

    def test_friction_codes_round_trip(self, conn: sqlite3.Connection) -> None:
        record = domain_risk.create_record(conn, "a.test", 2000)
        record.last_friction_codes = [403, 429]
        domain_risk.save_record(conn, record)
        assert domain_risk.get_record(conn, "a.test").last_friction_codes == [403, 429]
