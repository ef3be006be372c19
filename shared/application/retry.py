"""
Retry Policy

One reusable policy object for every outbound call (payment intents,
payment confirmation, refunds, the reservation transaction). Failures are
retried with bounded exponential backoff only when the classifier reports
them as transient; everything else reaches the caller on first occurrence.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

import requests
from django.db import OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransientNetworkError(Exception):
    """No response was received, or the upstream failed with a 5xx."""

    def __init__(self, message: str = "", *, status_code: int | None = None):
        super().__init__(message or "Upstream service unavailable")
        self.status_code = status_code


def _status_code(exc: BaseException) -> int | None:
    status_code = getattr(exc, "status_code", None)
    if status_code is None:
        response = getattr(exc, "response", None)
        status_code = getattr(response, "status_code", None)
    return status_code if isinstance(status_code, int) else None


def is_transient(exc: BaseException) -> bool:
    """Default classifier: network failures, timeouts and 5xx responses."""
    if isinstance(exc, TransientNetworkError):
        return True
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, OperationalError):
        return True
    status_code = _status_code(exc)
    return status_code is not None and 500 <= status_code < 600


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff.

    The delay before attempt ``n + 1`` is
    ``min(base_delay * backoff_factor ** (n - 1), max_delay)`` seconds.
    On exhaustion the last error is re-raised as-is.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 10.0
    classifier: Callable[[BaseException], bool] = is_transient
    sleep: Callable[[float], Any] = field(default=time.sleep, compare=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Delays cannot be negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")

    @classmethod
    def from_settings(cls, **overrides) -> "RetryPolicy":
        from django.conf import settings

        conf = getattr(settings, "RETRY_POLICY", {})
        options = {
            "max_attempts": int(conf.get("MAX_ATTEMPTS", cls.max_attempts)),
            "base_delay": float(conf.get("BASE_DELAY", cls.base_delay)),
            "backoff_factor": float(conf.get("BACKOFF_FACTOR", cls.backoff_factor)),
            "max_delay": float(conf.get("MAX_DELAY", cls.max_delay)),
        }
        options.update(overrides)
        return cls(**options)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return min(self.base_delay * self.backoff_factor ** (attempt - 1), self.max_delay)

    def call(self, operation: Callable[..., T], *args, **kwargs) -> T:
        name = getattr(operation, "__qualname__", repr(operation))
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation(*args, **kwargs)
            except Exception as exc:
                if not self.classifier(exc):
                    raise
                if attempt == self.max_attempts:
                    logger.error(
                        f"{name} failed after {attempt} attempts: {type(exc).__name__}: {exc}"
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} of {name} failed "
                    f"({type(exc).__name__}: {exc}), retrying in {delay:.2f}s"
                )
                self.sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover


def with_retry(operation: Callable[..., T], *args, policy: RetryPolicy | None = None, **kwargs) -> T:
    """Run ``operation`` under ``policy`` (settings-configured by default)."""
    return (policy or RetryPolicy.from_settings()).call(operation, *args, **kwargs)
