"""
Tests for reconnect backoff policies.
"""

import pytest

from tradedesk.core.config import Settings
from tradedesk.realtime.backoff import ExponentialBackoff, LinearBackoff, build_backoff


def test_linear_delays_and_cap():
    policy = LinearBackoff(base_delay=1.0, max_attempts=5)
    assert [policy.delay(n) for n in range(1, 6)] == [1.0, 2.0, 3.0, 4.0, 5.0]
    assert policy.allows(5)
    assert not policy.allows(6)


def test_linear_rejects_bad_arguments():
    with pytest.raises(ValueError):
        LinearBackoff(base_delay=-1)
    with pytest.raises(ValueError):
        LinearBackoff(max_attempts=0)


def test_exponential_ceiling_without_jitter():
    policy = ExponentialBackoff(base_delay=0.5, max_delay=3.0, jitter=False)
    assert [policy.delay(n) for n in range(1, 6)] == [0.5, 1.0, 2.0, 3.0, 3.0]
    assert policy.allows(10_000)


def test_exponential_jitter_draws_below_ceiling():
    calls = []

    def fake_uniform(low, high):
        calls.append((low, high))
        return high / 2

    policy = ExponentialBackoff(base_delay=1.0, max_delay=30.0, rng=fake_uniform)
    assert policy.delay(3) == 2.0
    assert calls == [(0, 4.0)]


def test_exponential_attempt_cap():
    policy = ExponentialBackoff(max_attempts=3)
    assert policy.allows(3)
    assert not policy.allows(4)


def test_build_backoff_defaults_to_linear():
    policy = build_backoff(Settings())
    assert isinstance(policy, LinearBackoff)
    assert policy.max_attempts == 5
    assert policy.base_delay == 1.0


def test_build_backoff_exponential_uncapped():
    config = Settings(RECONNECT_STRATEGY="EXPONENTIAL", MAX_RECONNECT_ATTEMPTS=0, RECONNECT_MAX_DELAY=10.0)
    policy = build_backoff(config)
    assert isinstance(policy, ExponentialBackoff)
    assert policy.max_attempts is None
    assert policy.max_delay == 10.0
