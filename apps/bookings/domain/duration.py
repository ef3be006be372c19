"""
Duration Validator

Pure checks on a requested [start, end) window. The quote endpoint,
booking creation and the pricing calculator all run them.
The current instant is always passed in by the caller.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from .exceptions import InvalidBookingWindow

MIN_DURATION = timedelta(minutes=10)


class WindowRejection(Enum):
    INVALID_WINDOW = 'invalid_window'
    TOO_SHORT = 'too_short'
    IN_THE_PAST = 'in_the_past'

    def describe(self, min_duration: timedelta = MIN_DURATION) -> str:
        if self is WindowRejection.INVALID_WINDOW:
            return "End time must be after start time."
        if self is WindowRejection.TOO_SHORT:
            minutes = int(min_duration.total_seconds() // 60)
            return f"Minimum booking duration is {minutes} minutes."
        return "Start time must be in the future."


@dataclass(frozen=True)
class WindowCheck:
    valid: bool
    reason: WindowRejection | None = None

    @property
    def message(self) -> str | None:
        return self.reason.describe() if self.reason else None


VALID = WindowCheck(valid=True)


def check_window_shape(
    start: datetime,
    end: datetime,
    *,
    min_duration: timedelta = MIN_DURATION,
) -> WindowCheck:
    """Ordering and minimum length only; needs no clock."""
    if end <= start:
        return WindowCheck(False, WindowRejection.INVALID_WINDOW)
    if end - start < min_duration:
        return WindowCheck(False, WindowRejection.TOO_SHORT)
    return VALID


def validate_window(
    start: datetime,
    end: datetime,
    now: datetime,
    *,
    min_duration: timedelta = MIN_DURATION,
) -> WindowCheck:
    """
    Validate a booking window against the explicit ``now``.

    Checks run in order: ordering, minimum length, then past start.
    No upper bound is applied here; the API layer owns that policy.
    """
    shape = check_window_shape(start, end, min_duration=min_duration)
    if not shape.valid:
        return shape
    if start <= now:
        return WindowCheck(False, WindowRejection.IN_THE_PAST)
    return VALID


def ensure_valid_window(
    start: datetime,
    end: datetime,
    now: datetime | None = None,
    *,
    min_duration: timedelta = MIN_DURATION,
) -> None:
    """Raise InvalidBookingWindow for a rejected window.

    Without ``now`` only the shape checks run.
    """
    if now is None:
        result = check_window_shape(start, end, min_duration=min_duration)
    else:
        result = validate_window(start, end, now, min_duration=min_duration)
    if not result.valid:
        raise InvalidBookingWindow(result.reason, result.reason.describe(min_duration))
