from __future__ import annotations

from random import Random

import pytest

from scripts.backoff import call_with_backoff, exponential_backoff


def test_schedule_grows_and_caps_without_jitter():
    schedule = list(exponential_backoff(max_attempts=5, base_delay=1.0, max_delay=5.0, jitter=0))

    assert schedule == [(1, 1.0), (2, 2.0), (3, 4.0), (4, 5.0), (5, 5.0)]


def test_jitter_stays_within_bounds():
    for _, delay in exponential_backoff(max_attempts=4, base_delay=1.0, rng=Random(7)):
        assert delay <= 30.0
    first = next(exponential_backoff(base_delay=2.0, jitter=0.5, rng=Random(1)))[1]
    assert 2.0 <= first <= 3.0


@pytest.mark.parametrize(
    "kwargs",
    [{"max_attempts": 0}, {"base_delay": 0}, {"factor": 0.5}, {"jitter": -1}],
)
def test_invalid_parameters(kwargs):
    with pytest.raises(ValueError):
        list(exponential_backoff(**kwargs))


class _Flaky(Exception):
    pass


def test_call_with_backoff_retries_listed_errors():
    calls = {"count": 0}
    sleeps: list[float] = []
    retried: list[int] = []

    def func():
        calls["count"] += 1
        if calls["count"] < 3:
            raise _Flaky()
        return "ok"

    result = call_with_backoff(
        func,
        retry_on=(_Flaky,),
        max_attempts=3,
        sleep=sleeps.append,
        on_retry=lambda attempt, delay, exc: retried.append(attempt),
    )

    assert result == "ok"
    assert retried == [1, 2]
    assert len(sleeps) == 2


def test_call_with_backoff_reraises_after_budget():
    def func():
        raise _Flaky()

    with pytest.raises(_Flaky):
        call_with_backoff(func, retry_on=(_Flaky,), max_attempts=2, sleep=lambda _: None)


def test_call_with_backoff_does_not_retry_other_errors():
    calls = []

    def func():
        calls.append(1)
        raise KeyError("boom")

    with pytest.raises(KeyError):
        call_with_backoff(func, retry_on=(_Flaky,), sleep=lambda _: None)
    assert len(calls) == 1
