"""Tests for the per-address connection gate."""

import logging

from app.realtime.rate_limit import ConnectionRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_sixth_attempt_in_window_is_rejected():
    limiter = ConnectionRateLimiter(window_seconds=60, max_attempts=5, clock=FakeClock())
    results = [limiter.hit("1.2.3.4") for _ in range(6)]
    assert results == [True, True, True, True, True, False]


def test_window_rollover_resets_count():
    clock = FakeClock()
    limiter = ConnectionRateLimiter(window_seconds=60, max_attempts=5, clock=clock)
    for _ in range(6):
        limiter.hit("1.2.3.4")
    clock.now += 60
    assert limiter.hit("1.2.3.4") is True


def test_addresses_are_counted_separately():
    limiter = ConnectionRateLimiter(window_seconds=60, max_attempts=1, clock=FakeClock())
    assert limiter.hit("1.1.1.1")
    assert not limiter.hit("1.1.1.1")
    assert limiter.hit("2.2.2.2")


def test_should_log_once_per_reason_per_window():
    clock = FakeClock()
    limiter = ConnectionRateLimiter(window_seconds=60, clock=clock)
    assert limiter.should_log("1.2.3.4", "invalid_credential")
    assert not limiter.should_log("1.2.3.4", "invalid_credential")
    assert limiter.should_log("1.2.3.4", "rate_limited")
    clock.now += 61
    assert limiter.should_log("1.2.3.4", "invalid_credential")


def test_warn_once_logs_single_warning(caplog):
    limiter = ConnectionRateLimiter(clock=FakeClock())
    with caplog.at_level(logging.WARNING, logger="app.realtime.rate_limit"):
        for _ in range(10):
            limiter.warn_once("1.2.3.4", "rate_limited", "limited %s", "1.2.3.4")
    assert len([r for r in caplog.records if r.name == "app.realtime.rate_limit"]) == 1


def test_prune_drops_expired_windows():
    clock = FakeClock()
    limiter = ConnectionRateLimiter(window_seconds=60, clock=clock)
    limiter.hit("1.1.1.1")
    clock.now += 30
    limiter.hit("2.2.2.2")
    clock.now += 31
    assert limiter.prune() == 1
    assert len(limiter) == 1


def test_hit_sweeps_stale_windows_once_per_window():
    clock = FakeClock()
    limiter = ConnectionRateLimiter(window_seconds=60, clock=clock)
    for n in range(100):
        limiter.hit(f"10.0.{n}.1")
    assert len(limiter) == 100

    clock.now += 30
    limiter.hit("10.1.0.1")
    assert len(limiter) == 101

    clock.now += 30
    limiter.hit("10.1.0.2")
    assert len(limiter) == 2
