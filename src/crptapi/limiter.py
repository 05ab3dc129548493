import enum
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from .cancellation import CancellationToken
from .errors import AdmissionInterruptedError, InvalidConfigurationError

logger = logging.getLogger(__name__)

# Longest single wait while a cancel token is being watched
CANCEL_POLL_SECONDS = 0.05
# Floor for a wait that lands exactly on the window boundary
MIN_WAIT_SECONDS = 0.001


class TimeUnit(enum.Enum):
    """Length of one rate-limit window, in seconds."""

    MILLISECONDS = 0.001
    SECONDS = 1.0
    MINUTES = 60.0
    HOURS = 3600.0
    DAYS = 86400.0

    @property
    def seconds(self) -> float:
        return self.value


@dataclass(frozen=True)
class RefillWindowConfig:
    window_seconds: float = 1.0
    max_requests: int = 10

    def __post_init__(self) -> None:
        if self.max_requests <= 0:
            raise InvalidConfigurationError(
                f"Request limit must be positive, got {self.max_requests}"
            )
        if self.window_seconds <= 0:
            raise InvalidConfigurationError(
                f"Window length must be positive, got {self.window_seconds}"
            )

    @classmethod
    def from_time_unit(
        cls, time_unit: TimeUnit, request_limit: int
    ) -> "RefillWindowConfig":
        """Allow ``request_limit`` requests per one ``time_unit``."""
        return cls(window_seconds=time_unit.seconds, max_requests=request_limit)


class RefillWindowRateLimiter:
    """Thread-safe blocking limiter with a periodically refilled quota.

    The quota starts full. Each ``acquire()`` takes one permit; once the quota is
    empty, callers block until more than ``window_seconds`` have passed since the
    last refill, at which point the quota is reset to ``max_requests`` and every
    waiter is woken to compete for it. Waiters are not served in FIFO order.
    """

    def __init__(
        self,
        *,
        config: RefillWindowConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._clock = clock
        self._cond = threading.Condition(threading.Lock())
        self._tokens = config.max_requests
        self._window_start = clock()

    @property
    def capacity(self) -> int:
        return self._config.max_requests

    @property
    def window_seconds(self) -> float:
        return self._config.window_seconds

    @property
    def available_tokens(self) -> int:
        """Permits left in the current window, after applying any due refill."""
        with self._cond:
            self._refill()
            return self._tokens

    def _refill(self) -> float:
        # Caller must hold self._cond
        now = self._clock()
        if now - self._window_start > self._config.window_seconds:
            self._tokens = self._config.max_requests
            self._window_start = now
            logger.debug(f"Rate limit window refilled with {self._tokens} permits")
            self._cond.notify_all()
        return now

    def acquire(self, cancel_token: CancellationToken | None = None) -> None:
        """Take one permit, blocking until one is available.

        Args:
            cancel_token: Optional token; cancelling it aborts the wait

        Raises:
            AdmissionInterruptedError: If ``cancel_token`` is cancelled before a
                permit is granted. No permit is consumed in that case.
        """
        with self._cond:
            while True:
                if cancel_token is not None and cancel_token.is_cancelled():
                    raise AdmissionInterruptedError(
                        "Interrupted while waiting for an admission slot"
                    )

                now = self._refill()
                if self._tokens > 0:
                    self._tokens -= 1
                    return

                remaining = self._config.window_seconds - (now - self._window_start)
                timeout = max(remaining, MIN_WAIT_SECONDS)
                if cancel_token is not None:
                    timeout = min(timeout, CANCEL_POLL_SECONDS)
                logger.debug(f"Rate limit reached, waiting up to {timeout:.3f}s")
                # Releases the lock while blocked; the loop re-checks the clock
                # since wake-ups may be spurious
                self._cond.wait(timeout)
