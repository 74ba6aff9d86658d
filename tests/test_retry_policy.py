import random

import pytest

from sri_client.config import SriConfig
from sri_client.retry import RetryPolicy


def test_backoff_without_jitter_is_exponential_and_capped():
    policy = RetryPolicy(max_attempts=6, base_delay=1.0, max_delay=5.0, jitter=0)

    assert [policy.backoff_delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_backoff_delays_count_and_monotonic_with_jitter():
    policy = RetryPolicy(max_attempts=8, base_delay=0.5, max_delay=3.0, jitter=1.0, rng=random.Random(7))

    delays = list(policy.backoff_delays())

    assert len(delays) == 7
    assert all(b >= a for a, b in zip(delays, delays[1:]))
    assert all(0.5 <= d <= 3.0 for d in delays)


def test_single_attempt_has_no_delays():
    assert list(RetryPolicy(max_attempts=1).backoff_delays()) == []


def test_next_poll_delay_bounded_by_remaining_time():
    policy = RetryPolicy(poll_interval=5, max_wait=20)

    assert policy.next_poll_delay(0) == 5
    assert policy.next_poll_delay(17) == 3
    assert policy.next_poll_delay(20) is None
    assert policy.next_poll_delay(25) is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"base_delay": -1},
        {"jitter": -0.1},
        {"poll_interval": 0},
        {"max_wait": -5},
    ],
)
def test_invalid_policy_values(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_from_config_reads_env(monkeypatch):
    monkeypatch.setenv("SRI_MAX_RETRIES", "5")
    monkeypatch.setenv("SRI_BACKOFF_BASE", "0.25")
    monkeypatch.setenv("SRI_POLL_INTERVAL", "3")
    monkeypatch.setenv("SRI_POLL_MAX_WAIT", "90")
    monkeypatch.setenv("SRI_POLL_INITIAL_DELAY", "0")

    policy = RetryPolicy.from_config(SriConfig("1"))

    assert policy.max_attempts == 5
    assert policy.base_delay == 0.25
    assert policy.poll_interval == 3
    assert policy.max_wait == 90
    assert policy.initial_poll_delay == 0
