"""
Retry delay policy for failed upstream calls.

The delay grows exponentially with the attempt number, from a base and up
to a cap that depend on how the failure was classified:

    quota exhausted:  1h, 2h, 4h, ... up to 24h
    rate limited:     60s, 120s, 240s, ... up to 15min
    anything else:    5s, 10s, 20s, ... up to 5min

The policy only computes delays. Sleeping and retrying belong to the caller,
which should treat the delay as a minimum wait.
"""

from dataclasses import dataclass
from datetime import timedelta

from .errors import ErrorKind, classify_error, extract_api_error, find_api_error

MAX_ATTEMPT = 20
MAX_SHIFT = 10


def suggested_retry_after(err: BaseException | None) -> timedelta | None:
    """Retry delay suggested by the upstream, structured or recovered from the message."""
    api_err = find_api_error(err) or extract_api_error(err)
    if api_err is None:
        return None
    return api_err.retry_after


@dataclass(frozen=True)
class BackoffPolicy:
    quota_base: timedelta = timedelta(hours=1)
    quota_cap: timedelta = timedelta(hours=24)
    rate_limit_base: timedelta = timedelta(seconds=60)
    rate_limit_cap: timedelta = timedelta(minutes=15)
    default_base: timedelta = timedelta(seconds=5)
    default_cap: timedelta = timedelta(minutes=5)

    def delay(self, err: BaseException | None, attempt: int) -> timedelta:
        """
        Minimum wait before retrying after ``err``.

        Args:
            err: The failure from the previous attempt
            attempt: Number of retries already made (clamped to [0, 20])

        Returns:
            Delay before the next attempt
        """
        attempt = min(max(attempt, 0), MAX_ATTEMPT)
        factor = 2 ** min(attempt, MAX_SHIFT)

        kind = classify_error(err)
        if kind == ErrorKind.QUOTA_EXCEEDED:
            return min(self.quota_base * factor, self.quota_cap)

        if kind == ErrorKind.RATE_LIMITED:
            delay = min(self.rate_limit_base * factor, self.rate_limit_cap)
            hint = suggested_retry_after(err)
            if hint is not None and hint > delay:
                delay = hint
            return delay

        return min(self.default_base * factor, self.default_cap)


DEFAULT_POLICY = BackoffPolicy()


def retry_delay(err: BaseException | None, attempt: int) -> timedelta:
    """Delay before retrying, using the default policy."""
    return DEFAULT_POLICY.delay(err, attempt)
