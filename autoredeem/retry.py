"""Exponential backoff with jitter, used for the discovery-feed fetch."""

import random
import time
from typing import Callable, Optional, TypeVar

from .errors import is_retryable_error
from .log import log_warning

T = TypeVar("T")


def with_retry(fn: Callable[[], T], max_attempts: int = 3, initial_delay: float = 1.0,
               max_delay: float = 10.0, backoff_factor: float = 2.0,
               is_retryable: Optional[Callable[[BaseException], bool]] = None,
               on_retry: Optional[Callable[[int, BaseException], None]] = None,
               sleep: Callable[[float], None] = time.sleep) -> T:
    """
    Call fn, retrying retryable failures with exponential backoff

    Args:
        fn: Zero-argument callable to invoke
        max_attempts: Total number of tries, including the first
        initial_delay: Delay in seconds before the first retry
        max_delay: Upper bound for any single delay
        backoff_factor: Multiplier applied to the delay after each retry
        is_retryable: Predicate deciding whether an error is worth retrying
        on_retry: Called with (attempt, error) before each sleep
        sleep: Sleep function, injectable for tests

    Returns:
        Whatever fn returns on its first successful call
    """
    check = is_retryable or is_retryable_error
    current_delay = initial_delay
    attempt = 1

    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= max_attempts or not check(e):
                raise

            if on_retry is not None:
                on_retry(attempt, e)
            else:
                log_warning(f"Attempt {attempt}/{max_attempts} failed: {e}")

            jitter = random.uniform(0, 0.3 * current_delay)
            sleep(min(current_delay + jitter, max_delay))
            current_delay = min(current_delay * backoff_factor, max_delay)
            attempt += 1
