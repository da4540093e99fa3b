from __future__ import annotations

import threading

from beatsmith.governor import InMemoryCounterStore, RateGovernor, utc_day


def test_per_minute_ceiling_then_window_slides(clock) -> None:
    gov = RateGovernor(per_minute=3, per_day=100, clock=clock)
    for _ in range(3):
        assert gov.check_and_record().allowed
        clock.advance(1)

    rejected = gov.check_and_record()
    assert not rejected.allowed
    assert rejected.scope == "minute"
    assert "3 requests per minute" in rejected.reason

    # the first timestamp is now older than 60 s
    clock.advance(58)
    assert gov.check_and_record().allowed


def test_rejected_requests_are_not_recorded(clock) -> None:
    gov = RateGovernor(per_minute=1, per_day=100, clock=clock)
    assert gov.check_and_record().allowed
    for _ in range(5):
        assert not gov.check_and_record().allowed
    assert gov.snapshot()["today"] == 1


def test_daily_ceiling_ignores_minute_window(clock) -> None:
    gov = RateGovernor(per_minute=10, per_day=2, clock=clock)
    assert gov.check_and_record().allowed
    assert gov.check_and_record().allowed

    clock.advance(120)  # minute window is empty again
    rejected = gov.check_and_record()
    assert not rejected.allowed
    assert rejected.scope == "day"
    assert "per day" in rejected.reason


def test_new_utc_day_resets_counter(clock) -> None:
    gov = RateGovernor(per_minute=10, per_day=1, clock=clock)
    assert gov.check_and_record().allowed
    assert not gov.check_and_record().allowed

    clock.advance(24 * 60 * 60)
    assert gov.check_and_record().allowed


def test_store_drops_old_day_buckets() -> None:
    store = InMemoryCounterStore()
    store.record(0.0, utc_day(0.0))
    store.record(86_400.0, utc_day(86_400.0))
    assert list(store.daily) == ["1970-01-02"]
    assert store.day_count("1970-01-01") == 0


def test_injected_store_is_used(clock) -> None:
    store = InMemoryCounterStore()
    gov = RateGovernor(per_minute=5, per_day=5, clock=clock, store=store)
    gov.check_and_record()
    assert store.window_size() == 1
    assert store.day_count(utc_day(clock())) == 1


def test_concurrent_admissions_never_exceed_ceiling(clock) -> None:
    gov = RateGovernor(per_minute=7, per_day=100, clock=clock)
    results: list[bool] = []
    lock = threading.Lock()

    def worker() -> None:
        allowed = gov.check_and_record().allowed
        with lock:
            results.append(allowed)

    threads = [threading.Thread(target=worker) for _ in range(40)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 7
    assert gov.snapshot()["lastMinute"] == 7
