"""Fixed-schedule retry policy used around flaky external tools."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from fantastic_probe.error_handling import ErrorCategory, FantasticProbeError

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOCAL_DELAYS = (30, 20, 10)
REMOTE_DELAYS = (60, 30, 15)


@dataclass(frozen=True)
class BackoffPolicy:
    """Attempt count plus the sleep before each retry.

    The delay before attempt ``n`` (1-based, n >= 2) is ``delays[n - 2]``.
    """

    attempts: int = 3
    delays: tuple[int, ...] = LOCAL_DELAYS

    @classmethod
    def for_path(cls, remote: bool) -> "BackoffPolicy":
        """Longer waits for remote mounts, whose directory caches refresh slowly."""
        return cls(attempts=3, delays=REMOTE_DELAYS if remote else LOCAL_DELAYS)

    def delay_before(self, attempt: int) -> int:
        if attempt < 2 or not self.delays:
            return 0
        return self.delays[min(attempt - 2, len(self.delays) - 1)]


class Deadline:
    """Wall-clock budget shared by every attempt on one item."""

    def __init__(self, seconds: float, *, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.expires_at = clock() + seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self.expires_at - self.clock())

    @property
    def expired(self) -> bool:
        return self.remaining <= 0


class RetryExhaustedError(FantasticProbeError):
    """Every attempt of a retried operation failed."""

    def __init__(self, message: str, attempts: int, last_error: Exception | None):
        super().__init__(
            message,
            ErrorCategory.EXTERNAL_TOOL,
            details=str(last_error) if last_error else None,
            original_error=last_error,
        )
        self.attempts = attempts
        self.last_error = last_error


def retry_call(
    func: Callable[[int], T],
    policy: BackoffPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    deadline: Deadline | None = None,
    retry_on: tuple[type[Exception], ...] = (FantasticProbeError,),
    label: str = "operation",
) -> tuple[T, int]:
    """Call ``func(attempt)`` until it succeeds; return ``(result, attempt)``.

    Exceptions outside ``retry_on`` propagate immediately.
    """
    last_error: Exception | None = None
    attempt = 0

    for attempt in range(1, policy.attempts + 1):
        if attempt > 1:
            wait = policy.delay_before(attempt)
            if deadline is not None and deadline.remaining <= wait:
                logger.warning(f"{label}: processing time budget exhausted, giving up")
                attempt -= 1
                break
            logger.warning(
                f"{label} failed (attempt {attempt - 1}/{policy.attempts}), "
                f"retrying in {wait}s",
            )
            sleep(wait)
        elif deadline is not None and deadline.expired:
            logger.warning(f"{label}: processing time budget exhausted, giving up")
            attempt = 0
            break

        try:
            return func(attempt), attempt
        except retry_on as e:
            last_error = e
            logger.debug(f"{label} attempt {attempt} failed: {e}")

    msg = f"{label} failed after {attempt} attempt(s)"
    raise RetryExhaustedError(msg, attempt, last_error)
