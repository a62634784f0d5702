#!/usr/bin/env python3
"""
Retry with exponential backoff.

Every call to an external surface (ledger, file storage, Shopify, Claude)
goes through with_retry, either directly or through a RetryPolicy held by
the adapter making the call.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

import requests

T = TypeVar("T")

DEFAULT_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_FACTOR = 3

TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}


def with_retry(
    operation: Callable[[], T],
    retries: int = DEFAULT_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    factor: float = DEFAULT_FACTOR,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
    should_retry: Optional[Callable[[Exception], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call operation until it returns or the retry budget runs out.

    Delay before retry n (1-indexed) is base_delay * factor ** (n - 1).
    On exhaustion, or when should_retry refuses, the original exception
    is re-raised unchanged.

    Args:
        operation: Zero-argument callable doing the work
        retries: Retries after the first attempt (total attempts = retries + 1)
        base_delay: Delay before the first retry, in seconds
        factor: Multiplier applied to the delay for each further retry
        on_retry: Hook called with (error, attempt_number) before sleeping
        should_retry: Predicate deciding whether an error is worth retrying
        sleep: Sleep function (injected by tests)
    """
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as exc:
            if attempt >= retries:
                raise
            if should_retry is not None and not should_retry(exc):
                raise
            attempt += 1
            if on_retry is not None:
                try:
                    on_retry(exc, attempt)
                except Exception:
                    logging.exception("on_retry hook failed (attempt %d)", attempt)
            sleep(base_delay * factor ** (attempt - 1))


def _status_code_of(exc: Exception) -> Optional[int]:
    """Best-effort HTTP status extraction across the client libraries we use."""
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status

    # requests.HTTPError
    response = getattr(exc, "response", None)
    if response is not None:
        code = getattr(response, "status_code", None)
        if isinstance(code, int):
            return code
        # botocore ClientError keeps a dict here
        if isinstance(response, dict):
            code = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if isinstance(code, int):
                return code

    # googleapiclient.errors.HttpError
    resp = getattr(exc, "resp", None)
    if resp is not None:
        code = getattr(resp, "status", None)
        try:
            return int(code)
        except (TypeError, ValueError):
            return None

    return None


def is_transient_error(exc: Exception) -> bool:
    """True for connection problems, timeouts and 408/429/5xx responses."""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout, ConnectionError, TimeoutError)):
        return True
    status = _status_code_of(exc)
    return status in TRANSIENT_STATUS_CODES


@dataclass(frozen=True)
class RetryPolicy:
    """Named retry settings for one external surface."""
    name: str = "external call"
    retries: int = DEFAULT_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    factor: float = DEFAULT_FACTOR
    should_retry: Optional[Callable[[Exception], bool]] = None
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def run(self, operation: Callable[[], T], label: str = "") -> T:
        what = f"{self.name} {label}".strip()

        def log_retry(error: Exception, attempt: int) -> None:
            logging.warning("Retrying %s (attempt %d/%d): %s", what, attempt, self.retries, error)

        return with_retry(
            operation,
            retries=self.retries,
            base_delay=self.base_delay,
            factor=self.factor,
            on_retry=log_retry,
            should_retry=self.should_retry,
            sleep=self.sleep,
        )
