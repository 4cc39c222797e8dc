"""
Retry policy for summary executors.

Failures are split into retryable (rate limits, timeouts, 5xx, network) and
terminal (auth, malformed or missing input, anything unrecognized). Retryable
failures are rescheduled on a fixed escalating schedule with jitter.
"""

import asyncio
import random
import socket
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import httpx

from summaryq.config.settings import Settings
from summaryq.jobs.schemas import ErrorClassification

DEFAULT_SCHEDULE_S = (30, 120, 600, 3600, 21600)
DEFAULT_JITTER_RATIO = 0.2

RETRYABLE_CODES = frozenset(
    {"etimedout", "econnreset", "econnrefused", "eai_again", "enotfound"}
)
RETRYABLE_MESSAGE_HINTS = ("timeout", "network", "temporarily", "failed to fetch")
TERMINAL_MESSAGE_HINTS = ("api_key", "invalid", "not found")


def _error_status(error: BaseException) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _error_code(error: BaseException) -> str:
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code.strip().lower()
    return ""


class RetryPolicy:
    """Backoff schedule plus error classifier."""

    def __init__(
        self,
        schedule_s: Sequence[float] = DEFAULT_SCHEDULE_S,
        jitter_ratio: float = DEFAULT_JITTER_RATIO,
        rng: random.Random | None = None,
    ):
        if not schedule_s:
            raise ValueError("Retry schedule must contain at least one delay")
        self.schedule_s = tuple(float(delay) for delay in schedule_s)
        self.jitter_ratio = max(0.0, float(jitter_ratio))
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            schedule_s=settings.summary_retry_schedule_s,
            jitter_ratio=settings.summary_retry_jitter_ratio,
        )

    def base_delay(self, attempt_count: int) -> float:
        """Base delay in seconds for the attempt that just failed."""
        index = max(0, min(len(self.schedule_s) - 1, int(attempt_count or 1) - 1))
        return self.schedule_s[index]

    def compute_delay(self, attempt_count: int) -> timedelta:
        """Base delay plus uniform jitter of up to ``jitter_ratio`` of the base."""
        base = self.base_delay(attempt_count)
        jitter = self._rng.uniform(0, base * self.jitter_ratio)
        return timedelta(seconds=base + jitter)

    def next_run_at(self, attempt_count: int, now: datetime | None = None) -> datetime:
        now = now or datetime.now(UTC)
        return now + self.compute_delay(attempt_count)

    def classify(self, error: BaseException) -> ErrorClassification:
        """Map an executor failure to a retry decision. Unknown shapes fail closed."""
        code = _error_code(error)

        explicit = getattr(error, "retryable", None)
        if isinstance(explicit, bool):
            return ErrorClassification(retryable=explicit, error_code=code or "job_failed")

        status = _error_status(error)
        if status is not None and (status in (408, 429) or status >= 500):
            return ErrorClassification(retryable=True, error_code=f"http_{status}")

        if isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
            return ErrorClassification(retryable=True, error_code="timeout")

        if isinstance(error, (httpx.TransportError, ConnectionError, socket.gaierror)):
            return ErrorClassification(
                retryable=True, error_code=code or "transient_network"
            )

        message = str(error).lower()
        if code in RETRYABLE_CODES or any(
            hint in message for hint in RETRYABLE_MESSAGE_HINTS
        ):
            return ErrorClassification(
                retryable=True, error_code=code or "transient_network"
            )

        if status in (401, 403):
            return ErrorClassification(retryable=False, error_code=f"http_{status}")

        if any(hint in message for hint in TERMINAL_MESSAGE_HINTS):
            return ErrorClassification(retryable=False, error_code="invalid_request")

        return ErrorClassification(retryable=False, error_code=code or "job_failed")
