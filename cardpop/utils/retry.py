#!/usr/bin/env python3
"""
Retry Logic with Exponential Backoff

Used for the catalog's JSON API calls. Page fetches do not go through it:
their one retry is the lightweight -> browser escalation in PageFetcher.

A retried call either returns, raises a non-retryable error straight away,
or re-raises its last retryable error once the attempts run out.
"""
import time
import random
from functools import wraps
from typing import Callable, Optional, Tuple, Type

import requests

from cardpop.errors import NetworkError
from cardpop.utils.logger import get_logger

logger = get_logger("retry")

# Status codes worth another attempt: throttling and upstream hiccups.
RETRYABLE_STATUS = (429, 500, 502, 503, 504)

NETWORK_ERRORS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    ConnectionError,
    TimeoutError,
    NetworkError,
)


class RetryableStatus(NetworkError):
    """An HTTP answer that should be retried (see RETRYABLE_STATUS)."""

    def __init__(self, response, url: Optional[str] = None):
        status = getattr(response, "status_code", None)
        super().__init__(f"Upstream returned {status}", url=url)
        self.response = response
        self.status_code = status


def raise_for_retryable(response, url: Optional[str] = None):
    """Turn a throttled or 5xx response into RetryableStatus; pass anything else through."""
    if getattr(response, "status_code", None) in RETRYABLE_STATUS:
        raise RetryableStatus(response, url=url)
    return response


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """Delay before retry number `attempt` (0-based), capped at max_delay, +/-20% jitter."""
    delay = min(base_delay * (exponential_base ** attempt), max_delay)
    if jitter:
        delay = max(0.0, delay + delay * random.uniform(-0.2, 0.2))
    return delay


def _retry_after(error: Exception) -> Optional[float]:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or {}
    value = headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retry_on: Tuple[Type[Exception], ...] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator to retry function calls with exponential backoff.

    Args:
        max_retries: Retries after the first attempt
        base_delay: Delay in seconds before the first retry
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor between retries
        jitter: Add +/-20% random jitter
        retry_on: Exception types to retry on (None = all exceptions)
        sleep: Sleep function (injectable for tests)

    A Retry-After header on the failed response wins over the computed
    delay, still capped at max_delay.

    Usage:
        @retry(max_retries=3, base_delay=1.0)
        def fetch_data():
            ...
    """
    if retry_on is None:
        retry_on = (Exception,)

    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= max_retries:
                        logger.error(
                            f"{func.__name__} gave up after {attempt + 1} attempts",
                            extra={"function_name": func.__name__, "error": str(e), "error_type": type(e).__name__},
                        )
                        raise

                    delay = backoff_delay(attempt, base_delay, max_delay, exponential_base, jitter)
                    hinted = _retry_after(e)
                    if hinted is not None:
                        delay = min(hinted, max_delay)

                    logger.warning(
                        f"{func.__name__} failed ({type(e).__name__}), retry {attempt + 1}/{max_retries} in {delay:.2f}s",
                        extra={"function_name": func.__name__, "delay_seconds": round(delay, 2), "error": str(e)},
                    )
                    sleep(delay)
                    attempt += 1

        return wrapper
    return decorator


def retry_on_network_error(
    max_retries: int = 3,
    base_delay: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
):
    """Retry on connection failures, timeouts and RetryableStatus answers."""
    return retry(max_retries=max_retries, base_delay=base_delay, retry_on=NETWORK_ERRORS, sleep=sleep)
