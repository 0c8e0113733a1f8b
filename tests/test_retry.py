import random
from datetime import UTC, datetime, timedelta

import pytest

from delayed_jobs.config.settings import Settings
from delayed_jobs.v1.jobs.retry import MAX_RETRY_INTERVAL, RetryStrategy


def test_retry_times_strictly_increase():
    """Later attempts always wait longer, with jitter on."""
    strategy = RetryStrategy()
    before = datetime.now(UTC)

    first = strategy.next_retry_time(1)
    second = strategy.next_retry_time(2)
    third = strategy.next_retry_time(3)

    assert before < first < second < third


def test_delay_doubles_per_attempt():
    strategy = RetryStrategy(base_delay=timedelta(seconds=5), jitter=0)

    assert strategy.delay_for(1) == timedelta(seconds=10)
    assert strategy.delay_for(2) == timedelta(seconds=20)
    assert strategy.delay_for(3) == timedelta(seconds=40)


def test_next_retry_time_without_jitter_is_exact():
    strategy = RetryStrategy(jitter=0)
    now = datetime(2024, 1, 1, tzinfo=UTC)

    assert strategy.next_retry_time(1, now=now) == now + timedelta(seconds=10)


def test_jitter_only_adds_delay():
    strategy = RetryStrategy(jitter=0.25, rng=random.Random(42))
    now = datetime(2024, 1, 1, tzinfo=UTC)

    for attempt in range(1, 10):
        delay = strategy.next_retry_time(attempt, now=now) - now
        base = strategy.delay_for(attempt)
        assert base <= delay < base * 1.25


def test_delay_is_capped():
    strategy = RetryStrategy(jitter=0)

    assert strategy.delay_for(16) < MAX_RETRY_INTERVAL
    assert strategy.delay_for(17) == MAX_RETRY_INTERVAL
    assert strategy.delay_for(1000) == MAX_RETRY_INTERVAL


def test_custom_cap():
    strategy = RetryStrategy(
        base_delay=timedelta(seconds=1), max_delay=timedelta(seconds=30), jitter=0
    )

    assert strategy.delay_for(4) == timedelta(seconds=16)
    assert strategy.delay_for(5) == timedelta(seconds=30)


@pytest.mark.parametrize("attempt", [0, -1])
def test_invalid_attempt_number(attempt):
    with pytest.raises(ValueError, match="attempt_number must be >= 1"):
        RetryStrategy().delay_for(attempt)


def test_invalid_arguments():
    with pytest.raises(ValueError, match="base_delay must be positive"):
        RetryStrategy(base_delay=timedelta(0))
    with pytest.raises(ValueError, match="max_delay"):
        RetryStrategy(base_delay=timedelta(seconds=10), max_delay=timedelta(seconds=5))
    with pytest.raises(ValueError, match="jitter"):
        RetryStrategy(jitter=1.0)


def test_from_settings():
    settings = Settings(
        job_backoff_base_s=2.0, job_max_backoff_s=60.0, job_backoff_jitter=0.0
    )

    strategy = RetryStrategy.from_settings(settings)

    assert strategy.base_delay == timedelta(seconds=2)
    assert strategy.max_delay == timedelta(seconds=60)
    assert strategy.delay_for(1) == timedelta(seconds=4)
