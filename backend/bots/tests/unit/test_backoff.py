import random

import pytest
from pydantic import ValidationError

from bots.backoff import (
    LOGIN_RETRY_DELAY_SECONDS,
    MAX_DELAY_SECONDS,
    RECONNECT_DELAY_SECONDS,
    BackoffPolicy,
    FailureKind,
)


class TestBackoffPolicy:
    def test_defaults(self):
        policy = BackoffPolicy()
        assert policy.login_retry_delay == LOGIN_RETRY_DELAY_SECONDS == 30
        assert policy.reconnect_delay == RECONNECT_DELAY_SECONDS == 5
        assert policy.max_delay == MAX_DELAY_SECONDS
        assert policy.jitter == 0.1

    def test_base_delay_per_kind(self):
        policy = BackoffPolicy()
        assert policy.base_delay(FailureKind.LOGIN) == 30
        assert policy.base_delay(FailureKind.TRANSPORT) == 5

    def test_first_failure_uses_base_delay(self):
        policy = BackoffPolicy(jitter=0)
        assert policy.delay(FailureKind.TRANSPORT, 1) == 5
        assert policy.delay(FailureKind.LOGIN, 1) == 30

    def test_delay_doubles_per_consecutive_failure(self):
        policy = BackoffPolicy(jitter=0)
        assert [policy.delay(FailureKind.TRANSPORT, n) for n in range(1, 5)] == [5, 10, 20, 40]

    def test_delay_is_capped(self):
        policy = BackoffPolicy(jitter=0)
        assert policy.delay(FailureKind.LOGIN, 10) == MAX_DELAY_SECONDS
        assert policy.delay(FailureKind.LOGIN, 10_000) == MAX_DELAY_SECONDS

    def test_attempt_zero_treated_as_first(self):
        policy = BackoffPolicy(jitter=0)
        assert policy.delay(FailureKind.TRANSPORT, 0) == 5

    def test_jitter_never_goes_below_base(self):
        policy = BackoffPolicy(jitter=0.5)
        rng = random.Random(1234)
        delays = [policy.delay(FailureKind.TRANSPORT, 1, rng) for _ in range(200)]
        assert all(5 <= d <= 7.5 for d in delays)
        assert len(set(delays)) > 1

    def test_non_positive_delay_rejected(self):
        with pytest.raises(ValidationError):
            BackoffPolicy(reconnect_delay=0)

    def test_jitter_above_one_rejected(self):
        with pytest.raises(ValidationError):
            BackoffPolicy(jitter=1.5)

    def test_cap_below_base_rejected(self):
        with pytest.raises(ValidationError, match="max_delay"):
            BackoffPolicy(max_delay=10)

    def test_policy_is_immutable(self):
        policy = BackoffPolicy()
        with pytest.raises(ValidationError):
            policy.jitter = 0.5
