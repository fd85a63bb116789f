# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cndeploy/utils/retry.py

import functools
import time
from typing import Callable, Optional

from ..errors import CndeployError


class RetryError(CndeployError):
    """Raised when every attempt failed. The last error is the __cause__."""

    def __init__(self, what: str, attempts: int, last_exc: Exception):
        self.attempts = attempts
        self.last_exc = last_exc
        super().__init__(f"{what} failed after {attempts} attempts: {last_exc}")


def retry(
    *,
    retries: int,
    delay: float,
    backoff: float = 1.0,
    max_delay: Optional[float] = None,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
):
    """
    Retry decorator for idempotent operations (SSH connects, mostly).

    retries:   total number of attempts
    delay:     seconds before the second attempt
    backoff:   multiplier applied to the delay after each failure
    max_delay: upper bound for the delay
    retry_on:  exception types that trigger another attempt, anything else
               propagates immediately
    on_retry:  callback(attempt, exception), called after each failure
    """
    if retries < 1:
        raise ValueError("retries must be at least 1")

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        raise RetryError(fn.__name__, retries, exc) from exc
                    time.sleep(wait)
                    wait = wait * backoff
                    if max_delay is not None:
                        wait = min(wait, max_delay)
        return wrapper
    return decorator
