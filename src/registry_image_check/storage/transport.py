"""
Retrying HTTP transport for registry calls.

Wraps an httpx transport so transient failures (network errors, 5xx, 429)
are retried with bounded attempts and exponential backoff. Anything else is
handed back to the caller on the first attempt, so permanent failures such
as rejected credentials or unknown manifests are never retried.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from ..settings import Settings

__all__ = ["RetryTransport", "is_retryable_response"]

logger = logging.getLogger(__name__)


def is_retryable_response(response: httpx.Response) -> bool:
    """True for responses worth another attempt: rate limits and server errors."""
    return response.status_code == 429 or response.status_code >= 500


def _last_outcome(retry_state: RetryCallState) -> httpx.Response:
    # Hand back the final response, or re-raise the final network error
    return retry_state.outcome.result()


class RetryTransport(httpx.BaseTransport):
    """
    httpx transport decorator adding retry with backoff.

    Delays follow ``backoff_min * 2**(n-1)`` clamped to
    ``[backoff_min, backoff_max]``, so they never decrease between attempts.
    """

    def __init__(
        self,
        transport: httpx.BaseTransport,
        *,
        attempts: int = 5,
        backoff_min: float = 1.0,
        backoff_max: float = 10.0,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Args:
            transport: Transport performing the actual round trips
            attempts: Total attempts per request, first try included
            backoff_min: Delay before the first retry, in seconds
            backoff_max: Upper bound for any delay, in seconds
            sleep: Sleep function (injectable for tests)
        """
        if attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {attempts}")
        self._transport = transport
        self.attempts = attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self._sleep = sleep or time.sleep

    @classmethod
    def from_settings(cls, transport: httpx.BaseTransport, settings: Settings,
                      sleep: Optional[Callable[[float], None]] = None) -> RetryTransport:
        """Build a retrying transport using the configured retry policy."""
        return cls(
            transport,
            attempts=settings.attempts,
            backoff_min=settings.backoff_min_s,
            backoff_max=settings.backoff_max_s,
            sleep=sleep,
        )

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.backoff_min or 1,
                                  min=self.backoff_min, max=self.backoff_max),
            retry=(retry_if_exception_type(httpx.TransportError)
                   | retry_if_result(is_retryable_response)),
            before_sleep=self._before_sleep,
            retry_error_callback=_last_outcome,
            sleep=self._sleep,
        )
        return retrying(self._transport.handle_request, request)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        """Release the discarded response and log the retry."""
        outcome = retry_state.outcome
        request = retry_state.args[0]
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0

        if outcome.failed:
            reason = f"{type(outcome.exception()).__name__}: {outcome.exception()}"
        else:
            response = outcome.result()
            reason = f"HTTP {response.status_code}"
            response.close()

        logger.warning(
            f"{request.method} {request.url} failed ({reason}); "
            f"retrying in {delay:.1f}s (attempt {retry_state.attempt_number}/{self.attempts})"
        )

    def close(self) -> None:
        self._transport.close()
