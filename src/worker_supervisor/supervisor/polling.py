import time
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


def poll_until(
    predicate: Callable[[], Optional[T]],
    interval: float,
    timeout: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Optional[Callable[[], float]] = None,
) -> Optional[T]:
    """
    Calls `predicate` until it returns a truthy value or the deadline elapses.

    The first call happens immediately. Between calls the loop sleeps for
    `interval` seconds, clamped so it never sleeps past the deadline.

    :param predicate: A zero-argument callable; any truthy return ends the loop.
    :param interval: Seconds between calls.
    :param timeout: Overall deadline in seconds, measured from the first call.
    :param sleep: Sleep function, injectable for tests.
    :param clock: Monotonic clock, injectable for tests; defaults to time.monotonic.
    :return: The first truthy value returned by `predicate`, or None on timeout.
    """
    clock = clock or time.monotonic
    deadline = clock() + timeout
    while True:
        result = predicate()
        if result:
            return result
        remaining = deadline - clock()
        if remaining <= 0:
            return None
        sleep(min(interval, remaining))
