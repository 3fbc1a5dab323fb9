"""Bounded retry with error classification for outbound GitHub calls."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

import requests

from .config import DEFAULT_MAX_RETRIES
from .errors import ApiError, RateLimitedError, RetryExhaustedError, TerminalApiError

T = TypeVar("T")

DEFAULT_BASE_DELAY_SECONDS = 1.0
RATE_LIMIT_DELAY_MULTIPLIER = 10


class RetryableRequestExecutor:
    """Run a single outbound call with up to ``max_retries`` retries.

    Failure handling:
    - ``RateLimitedError``: wait ``base_delay * 10`` and retry.
    - ``TerminalApiError`` (401/403/404): re-raise immediately.
    - any other ``ApiError`` or ``requests.RequestException``: wait
      ``base_delay * attempt`` and retry.

    ``sleep`` is injectable so tests can run without real delays.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._max_retries = max_retries
        self._base_delay_seconds = base_delay_seconds
        self._sleep = sleep
        self._logger = logger or logging.getLogger(__name__)

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def execute(self, request: Callable[[], T], description: str = "request") -> T:
        """Invoke ``request`` until it succeeds or attempts run out.

        Raises:
            TerminalApiError: On authentication, permission or not-found failures.
            RetryExhaustedError: When all ``max_retries + 1`` attempts failed.
        """
        total_attempts = self._max_retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(1, total_attempts + 1):
            try:
                return request()
            except TerminalApiError:
                raise
            except RateLimitedError as exc:
                last_error = exc
                delay = self._base_delay_seconds * RATE_LIMIT_DELAY_MULTIPLIER
                self._logger.warning(
                    "Rate limited, waiting longer before retry",
                    extra={"request": description, "attempt": attempt, "delay_seconds": delay},
                )
            except (ApiError, requests.RequestException) as exc:
                last_error = exc
                delay = self._base_delay_seconds * attempt
                self._logger.info(
                    "Request failed, retrying",
                    extra={"request": description, "attempt": attempt, "error": str(exc)},
                )

            if attempt < total_attempts:
                self._sleep(delay)

        raise RetryExhaustedError(description, total_attempts, last_error)
