import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor

import pytest
from crptapi.cancellation import CancellationToken
from crptapi.errors import AdmissionInterruptedError, InvalidConfigurationError
from crptapi.limiter import RefillWindowConfig, RefillWindowRateLimiter, TimeUnit


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class GrantRecordingLimiter(RefillWindowRateLimiter):
    """Counts permits handed out per refill window, keyed by window start."""

    def __init__(self, **kwargs):
        self.grants = Counter()
        super().__init__(**kwargs)

    @property
    def _tokens(self):
        return self._token_count

    @_tokens.setter
    def _tokens(self, value):
        # Decrements only happen under the limiter lock, right after a grant
        if value < getattr(self, "_token_count", value):
            self.grants[self._window_start] += 1
        self._token_count = value


def make_limiter(window_seconds=1.0, max_requests=3, clock=None):
    config = RefillWindowConfig(window_seconds=window_seconds, max_requests=max_requests)
    if clock is None:
        return RefillWindowRateLimiter(config=config)
    return RefillWindowRateLimiter(config=config, clock=clock)


@pytest.mark.parametrize("limit", [0, -1, -100])
def test_non_positive_limit_is_rejected(limit):
    with pytest.raises(InvalidConfigurationError):
        RefillWindowConfig(window_seconds=1.0, max_requests=limit)


def test_non_positive_window_is_rejected():
    with pytest.raises(InvalidConfigurationError):
        RefillWindowConfig(window_seconds=0, max_requests=1)


def test_invalid_configuration_is_a_value_error():
    with pytest.raises(ValueError):
        RefillWindowConfig.from_time_unit(TimeUnit.SECONDS, 0)


def test_config_from_time_unit():
    config = RefillWindowConfig.from_time_unit(TimeUnit.MINUTES, 5)
    assert config.window_seconds == 60.0
    assert config.max_requests == 5


def test_starts_with_full_quota():
    limiter = make_limiter(max_requests=4, clock=FakeClock())
    assert limiter.capacity == 4
    assert limiter.available_tokens == 4


def test_acquires_within_capacity_do_not_block():
    limiter = make_limiter(window_seconds=60, max_requests=5)

    start = time.monotonic()
    for _ in range(5):
        limiter.acquire()
    elapsed = time.monotonic() - start

    assert elapsed < 0.5
    assert limiter.available_tokens == 0


def test_acquire_over_capacity_blocks_until_next_window():
    start = time.monotonic()
    limiter = make_limiter(window_seconds=0.3, max_requests=2)
    limiter.acquire()
    limiter.acquire()

    limiter.acquire()
    elapsed = time.monotonic() - start

    assert elapsed > 0.3
    assert elapsed < 2.0
    assert limiter.available_tokens == 1


def test_refill_restores_exact_capacity():
    clock = FakeClock()
    limiter = make_limiter(window_seconds=1.0, max_requests=3, clock=clock)
    for _ in range(3):
        limiter.acquire()
    assert limiter.available_tokens == 0

    clock.now += 1.5
    assert limiter.available_tokens == 3

    # An idle window never pushes the quota above capacity
    clock.now += 5.0
    assert limiter.available_tokens == 3


def test_partial_use_is_topped_up_to_capacity():
    clock = FakeClock()
    limiter = make_limiter(window_seconds=1.0, max_requests=3, clock=clock)
    limiter.acquire()

    clock.now += 1.1
    assert limiter.available_tokens == 3


def test_refill_requires_strictly_more_than_one_window():
    clock = FakeClock()
    limiter = make_limiter(window_seconds=1.0, max_requests=1, clock=clock)
    limiter.acquire()

    clock.now += 1.0
    assert limiter.available_tokens == 0

    clock.now += 0.001
    assert limiter.available_tokens == 1


def test_new_window_starts_at_refill_time():
    clock = FakeClock()
    limiter = make_limiter(window_seconds=1.0, max_requests=1, clock=clock)
    limiter.acquire()

    clock.now += 1.5
    limiter.acquire()

    clock.now += 0.9
    assert limiter.available_tokens == 0
    clock.now += 0.2
    assert limiter.available_tokens == 1


def test_cancelled_token_aborts_immediately_without_consuming():
    limiter = make_limiter(max_requests=2, clock=FakeClock())
    token = CancellationToken()
    token.cancel()

    with pytest.raises(AdmissionInterruptedError):
        limiter.acquire(token)

    assert limiter.available_tokens == 2


def test_cancel_while_blocked_raises_and_leaves_state_consistent():
    clock = FakeClock()
    limiter = make_limiter(window_seconds=1.0, max_requests=1, clock=clock)
    limiter.acquire()
    token = CancellationToken()

    with ThreadPoolExecutor(max_workers=1) as ex:
        future = ex.submit(limiter.acquire, token)
        time.sleep(0.1)
        assert not future.done()

        token.cancel()
        assert isinstance(future.exception(timeout=2), AdmissionInterruptedError)

    assert limiter.available_tokens == 0

    # The lock was released and no permit was lost
    clock.now += 1.5
    assert limiter.available_tokens == 1
    limiter.acquire()
    assert limiter.available_tokens == 0


def test_concurrent_callers_are_all_admitted_at_most_capacity_per_window():
    capacity = 3
    window = 0.2
    callers = 12
    limiter = GrantRecordingLimiter(
        config=RefillWindowConfig(window_seconds=window, max_requests=capacity)
    )

    with ThreadPoolExecutor(max_workers=callers) as ex:
        list(ex.map(lambda _: limiter.acquire(), range(callers)))

    assert sum(limiter.grants.values()) == callers
    assert all(count <= capacity for count in limiter.grants.values())
    assert len(limiter.grants) >= callers // capacity

    starts = sorted(limiter.grants)
    for earlier, later in zip(starts, starts[1:]):
        assert later - earlier > window


def test_cancellation_token_reset_allows_reuse():
    limiter = make_limiter(max_requests=2, clock=FakeClock())
    token = CancellationToken()
    token.cancel()
    assert token.is_cancelled()
    assert token.wait(0)

    token.reset()

    assert not token.is_cancelled()
    assert not token.wait(0)
    limiter.acquire(token)
    assert limiter.available_tokens == 1
