"""
Tests for RequestCoordinator: in-flight dedup, transient-only retry, backoff schedule.
"""
from __future__ import annotations

import threading
import time

import pytest

from tokenfeed.providers.coordinator import (
    RequestCoordinator,
    RetryConfig,
    backoff_delays,
    resilient_call,
)
from tokenfeed.providers.errors import ErrorKind, NoDataError, ProviderError


def _transient(msg="busy", retry_after_s=None):
    return ProviderError("p", msg, kind=ErrorKind.TRANSIENT, status=503, retry_after_s=retry_after_s)


def _wait_until(predicate, timeout_s=5.0):
    deadline = time.monotonic() + timeout_s
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.005)


class TestDedup:
    def test_concurrent_identical_calls_share_one_execution(self):
        coordinator = RequestCoordinator(RetryConfig(max_retries=0))
        release = threading.Event()
        calls = []

        def work():
            calls.append(1)
            release.wait(5)
            return {"rows": 5}

        results = []

        def caller():
            results.append(coordinator.execute("ohlcv:wif:1h", work))

        threads = [threading.Thread(target=caller) for _ in range(4)]
        threads[0].start()
        _wait_until(lambda: coordinator.in_flight() == 1)
        for t in threads[1:]:
            t.start()
        _wait_until(lambda: coordinator.calls_joined == 3)
        release.set()
        for t in threads:
            t.join(5)

        assert len(calls) == 1
        assert len(results) == 4
        assert all(r is results[0] for r in results)
        assert coordinator.in_flight() == 0

    def test_joined_callers_see_same_failure(self):
        coordinator = RequestCoordinator(RetryConfig(max_retries=0))
        release = threading.Event()

        def work():
            release.wait(5)
            raise ProviderError("p", "bad request", status=400)

        errors = []

        def caller():
            try:
                coordinator.execute("k", work)
            except ProviderError as exc:
                errors.append(exc)

        first = threading.Thread(target=caller)
        first.start()
        _wait_until(lambda: coordinator.in_flight() == 1)
        second = threading.Thread(target=caller)
        second.start()
        _wait_until(lambda: coordinator.calls_joined == 1)
        release.set()
        first.join(5)
        second.join(5)

        assert len(errors) == 2
        assert errors[0] is errors[1]

    def test_settled_fingerprint_starts_fresh(self):
        coordinator = RequestCoordinator(RetryConfig(max_retries=0))
        counter = iter(range(10))
        assert coordinator.execute("k", lambda: next(counter)) == 0
        assert coordinator.execute("k", lambda: next(counter)) == 1
        assert coordinator.calls_started == 2
        assert coordinator.in_flight() == 0

    def test_failure_clears_bookkeeping(self):
        coordinator = RequestCoordinator(RetryConfig(max_retries=0))
        with pytest.raises(ProviderError):
            coordinator.execute("k", lambda: (_ for _ in ()).throw(ProviderError("p", "x")))
        assert coordinator.in_flight() == 0
        assert coordinator.execute("k", lambda: "ok") == "ok"


class TestRetry:
    def test_transient_retried_until_success(self):
        sleeps = []
        attempts = {"n": 0}

        def work():
            attempts["n"] += 1
            if attempts["n"] < 3:
                raise _transient()
            return "ok"

        cfg = RetryConfig(max_retries=3, base_delay_s=1.0, max_delay_s=10.0, backoff_factor=2.0)
        assert resilient_call(work, cfg, sleep=sleeps.append) == "ok"
        assert attempts["n"] == 3
        assert sleeps == [1.0, 2.0]

    def test_permanent_not_retried(self):
        sleeps = []
        attempts = {"n": 0}

        def work():
            attempts["n"] += 1
            raise ProviderError("p", "HTTP 404", status=404)

        with pytest.raises(ProviderError):
            resilient_call(work, RetryConfig(max_retries=5), sleep=sleeps.append)
        assert attempts["n"] == 1
        assert sleeps == []

    def test_empty_not_retried(self):
        attempts = {"n": 0}

        def work():
            attempts["n"] += 1
            raise NoDataError("p")

        with pytest.raises(NoDataError):
            resilient_call(work, RetryConfig(max_retries=5), sleep=lambda s: None)
        assert attempts["n"] == 1

    def test_exhausted_retries_raise_last_error(self):
        sleeps = []
        cfg = RetryConfig(max_retries=4, base_delay_s=1.0, max_delay_s=5.0, backoff_factor=2.0)
        coordinator = RequestCoordinator(cfg, sleep=sleeps.append)

        def work():
            raise _transient()

        with pytest.raises(ProviderError) as info:
            coordinator.execute("k", work)
        assert info.value.is_transient
        assert len(sleeps) == 4

    def test_backoff_monotone_and_bounded(self):
        sleeps = []
        cfg = RetryConfig(max_retries=8, base_delay_s=0.5, max_delay_s=6.0, backoff_factor=2.0)
        with pytest.raises(ProviderError):
            resilient_call(lambda: (_ for _ in ()).throw(_transient()), cfg, sleep=sleeps.append)
        assert sleeps == backoff_delays(cfg)
        assert all(a <= b for a, b in zip(sleeps, sleeps[1:]))
        assert max(sleeps) == 6.0

    def test_retry_after_hint_overrides_backoff(self):
        sleeps = []
        attempts = {"n": 0}

        def work():
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise _transient(retry_after_s=7.0)
            return "ok"

        cfg = RetryConfig(max_retries=2, base_delay_s=1.0, max_delay_s=30.0)
        assert resilient_call(work, cfg, sleep=sleeps.append) == "ok"
        assert sleeps == [7.0]

    def test_rate_limit_message_counts_as_transient(self):
        attempts = {"n": 0}

        def work():
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise RuntimeError("Too Many Requests")
            return 1

        assert resilient_call(work, RetryConfig(max_retries=1), sleep=lambda s: None) == 1
        assert attempts["n"] == 2
