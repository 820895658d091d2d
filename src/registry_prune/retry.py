"""Retry with exponential backoff for registry delete calls."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import requests
from loguru import logger
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random_exponential,
)

from registry_prune.errors import DeleteError

T = TypeVar("T")


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


def _status(error: BaseException | None) -> int | None:
    response = getattr(error, "response", None)
    return response.status_code if response is not None else None


def _retry_after(response: requests.Response | None) -> float | None:
    if response is None:
        return None
    value = response.headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


@dataclass
class RetryPolicy:
    """Bounded retry of a single HTTP call.

    Retries only HTTP errors whose status satisfies `retryable`. Any other
    failure, or running out of attempts, raises DeleteError. A 429 waits at
    least as long as its Retry-After header asks, up to `max_delay`.
    """

    max_attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = False
    retryable: Callable[[int], bool] = is_retryable_status
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def _should_retry(self, error: BaseException) -> bool:
        status = _status(error)
        return (
            isinstance(error, requests.exceptions.HTTPError)
            and status is not None
            and self.retryable(status)
        )

    def _wait(self, retry_state: RetryCallState) -> float:
        if self.jitter:
            backoff = wait_random_exponential(multiplier=self.base_delay, max=self.max_delay)
        else:
            backoff = wait_exponential(multiplier=self.base_delay, max=self.max_delay)
        delay = backoff(retry_state)

        error = retry_state.outcome.exception() if retry_state.outcome else None
        response = getattr(error, "response", None)
        if response is not None and response.status_code == 429:
            retry_after = _retry_after(response)
            if retry_after is not None:
                delay = max(delay, retry_after)
        return min(delay, self.max_delay)

    def call(self, func: Callable[[], T], description: str = "request") -> T:
        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                f"{description}: HTTP {_status(error)}, retrying in {wait:.1f}s "
                f"(attempt {retry_state.attempt_number}/{self.max_attempts})"
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(self._should_retry),
            sleep=self.sleep,
            before_sleep=log_retry,
        )
        try:
            return retrying(func)
        except RetryError as e:
            last = e.last_attempt.exception()
            raise DeleteError(
                f"{description}: gave up after {self.max_attempts} attempts ({last})",
                _status(last),
            ) from last
        except requests.exceptions.RequestException as e:
            raise DeleteError(f"{description}: {e}", _status(e)) from e
