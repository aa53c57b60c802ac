import numbers
from typing import Tuple
from utils.constants import PERIODS_PER_DAY, HOURS_PER_PERIOD, NIGHT_PERIODS
from exceptions.custom_errors import InvalidPeriodIndexError


def check_period(period: int) -> int:
    """Return `period` unchanged, or raise if it is not a valid slot index."""
    if not isinstance(period, numbers.Integral) or isinstance(period, bool):
        raise InvalidPeriodIndexError(f"Period index must be an integer, got {period!r}.")
    if period < 0 or period >= PERIODS_PER_DAY:
        raise InvalidPeriodIndexError(
            f"Period index {period} is outside [0, {PERIODS_PER_DAY - 1}]."
        )
    return period


def period_time_range(period: int) -> Tuple[int, int]:
    """Start and end hour of a period, e.g. period 3 -> (6, 8)."""
    check_period(period)
    start = period * HOURS_PER_PERIOD
    return start, start + HOURS_PER_PERIOD


def period_label(period: int) -> str:
    """Human readable range such as '06:00-08:00'."""
    start, end = period_time_range(period)
    return f"{start:02d}:00-{end:02d}:00"


def is_night_period(period: int) -> bool:
    return period in NIGHT_PERIODS
