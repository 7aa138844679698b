"""
Tests for the retry delay policy.
"""

from datetime import timedelta

import pytest

from smarttodo.backoff import BackoffPolicy, retry_delay, suggested_retry_after
from smarttodo.errors import APIError

RATE_LIMIT = RuntimeError("429 Too Many Requests")
QUOTA = RuntimeError("insufficient_quota")
OTHER = RuntimeError("connection reset by peer")


class TestRateLimited:

    def test_first_retry(self):
        assert retry_delay(RATE_LIMIT, 0) == timedelta(seconds=60)

    def test_doubles(self):
        assert retry_delay(RATE_LIMIT, 1) == timedelta(seconds=120)
        assert retry_delay(RATE_LIMIT, 2) == timedelta(seconds=240)

    def test_capped(self):
        assert retry_delay(RATE_LIMIT, 5) == timedelta(seconds=900)
        assert retry_delay(RATE_LIMIT, 20) == timedelta(minutes=15)

    def test_larger_upstream_hint_wins(self):
        err = APIError("slow down", status_code=429, retry_after=timedelta(minutes=30))
        assert retry_delay(err, 0) == timedelta(minutes=30)

    def test_smaller_upstream_hint_ignored(self):
        err = APIError("slow down", status_code=429, retry_after=timedelta(seconds=5))
        assert retry_delay(err, 2) == timedelta(seconds=240)


class TestQuota:

    def test_first_retry(self):
        assert retry_delay(QUOTA, 0) == timedelta(hours=1)

    def test_capped_at_a_day(self):
        assert retry_delay(QUOTA, 4) == timedelta(hours=16)
        assert retry_delay(QUOTA, 5) == timedelta(hours=24)
        assert retry_delay(QUOTA, 20) == timedelta(hours=24)


class TestOther:

    def test_first_retry(self):
        assert retry_delay(OTHER, 0) == timedelta(seconds=5)

    def test_capped(self):
        assert retry_delay(OTHER, 6) == timedelta(minutes=5)

    def test_none_error(self):
        assert retry_delay(None, 0) == timedelta(seconds=5)


class TestAttemptClamping:

    def test_negative_attempt(self):
        assert retry_delay(RATE_LIMIT, -3) == retry_delay(RATE_LIMIT, 0)

    def test_huge_attempt(self):
        assert retry_delay(OTHER, 10_000) == timedelta(minutes=5)

    @pytest.mark.parametrize("err", [RATE_LIMIT, QUOTA, OTHER])
    def test_monotonic(self, err):
        delays = [retry_delay(err, n) for n in range(25)]
        assert delays == sorted(delays)


def test_custom_policy():
    policy = BackoffPolicy(default_base=timedelta(seconds=1), default_cap=timedelta(seconds=3))
    assert policy.delay(OTHER, 0) == timedelta(seconds=1)
    assert policy.delay(OTHER, 1) == timedelta(seconds=2)
    assert policy.delay(OTHER, 2) == timedelta(seconds=3)


def test_suggested_retry_after():
    assert suggested_retry_after(RATE_LIMIT) == timedelta(seconds=60)
    assert suggested_retry_after(OTHER) is None
