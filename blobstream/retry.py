"""Retry policies consumed by the upload and download paths."""

from __future__ import annotations

import time
from typing import Protocol

from blobstream.const import (
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    MAX_RETRIES,
)
from blobstream.exceptions import TransferError, TransportError


class RetryPolicy(Protocol):
    """Decides whether a failed call may be attempted again."""

    def on_failure(self, error: TransferError) -> bool:
        """Record a failure; return True when another attempt is allowed."""
        ...

    def backoff(self) -> float:
        """Return the delay, in seconds, before the next attempt."""
        ...

    def clone(self) -> "RetryPolicy":
        """Return a fresh policy with the same limits."""
        ...


class LimitedErrorCountRetryPolicy:
    """Retry transport errors up to ``max_retries`` times.

    The delay grows as ``initial_backoff * 2**attempt``, capped at
    ``max_backoff``.
    """

    def __init__(
        self,
        max_retries: int = MAX_RETRIES,
        initial_backoff: float = INITIAL_BACKOFF_SECONDS,
        max_backoff: float = MAX_BACKOFF_SECONDS,
    ) -> None:
        """Initialise the policy.

        Args:
            max_retries: Number of failures tolerated before giving up.
            initial_backoff: Delay after the first failure, in seconds.
            max_backoff: Upper bound for any single delay, in seconds.
        """
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self._failures = 0

    def on_failure(self, error: TransferError) -> bool:
        """Count the failure; only transport errors are retryable."""
        if not isinstance(error, TransportError):
            return False
        self._failures += 1
        return self._failures <= self.max_retries

    def backoff(self) -> float:
        """Exponential delay for the failure just recorded."""
        attempt = max(self._failures - 1, 0)
        return min(self.initial_backoff * 2**attempt, self.max_backoff)

    def clone(self) -> "LimitedErrorCountRetryPolicy":
        """Return a policy with the same limits and no recorded failures."""
        return LimitedErrorCountRetryPolicy(
            self.max_retries, self.initial_backoff, self.max_backoff
        )


class NoRetryPolicy:
    """Never retries."""

    def on_failure(self, error: TransferError) -> bool:
        """Always give up."""
        return False

    def backoff(self) -> float:
        """No delay."""
        return 0.0

    def clone(self) -> "NoRetryPolicy":
        """Return a new instance."""
        return NoRetryPolicy()


def sleep_backoff(policy: RetryPolicy) -> None:
    """Block for the policy's current backoff delay."""
    delay = policy.backoff()
    if delay > 0:
        time.sleep(delay)
