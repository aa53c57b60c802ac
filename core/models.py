from dataclasses import dataclass, field
from datetime import date
from typing import FrozenSet, Optional, Tuple
from utils.constants import PERIODS_PER_DAY, WEEKEND_DAYS

"""
Input records of the guard roster engine. They are immutable: the engine reads
them, and only the persistence layer that owns them ever changes the fairness
counters after a roster is confirmed.
"""


@dataclass(frozen=True)
class Personnel:
    """A guard who can be placed on positions."""

    id: int
    name: str
    skill_ids: FrozenSet[int] = frozenset()
    is_available: bool = True
    is_retired: bool = False
    recent_shift_interval: Optional[int] = None
    """Slots elapsed since the person's last shift before the horizon, `None` if they never served."""
    recent_holiday_shift_interval: Optional[int] = None
    """Days since the person's last holiday shift, `None` if they never had one."""
    recent_period_shift_intervals: Tuple[Optional[int], ...] = (None,) * PERIODS_PER_DAY
    """Days since the person last held each of the 12 slots."""

    @property
    def is_active(self) -> bool:
        return self.is_available and not self.is_retired


@dataclass(frozen=True)
class Position:
    """A guard post. An empty `required_skill_ids` accepts anyone."""

    id: int
    name: str
    location: str = ""
    description: str = ""
    required_skill_ids: FrozenSet[int] = frozenset()
    available_personnel_ids: FrozenSet[int] = frozenset()
    is_active: bool = True


@dataclass(frozen=True)
class FixedPositionRule:
    """Restricts one person to some positions and/or slots. Empty sets mean unrestricted."""

    personnel_id: int
    allowed_position_ids: FrozenSet[int] = frozenset()
    allowed_periods: FrozenSet[int] = frozenset()
    is_enabled: bool = True
    description: str = ""

    def allows(self, position_id: int, period: int) -> bool:
        if self.allowed_position_ids and position_id not in self.allowed_position_ids:
            return False
        if self.allowed_periods and period not in self.allowed_periods:
            return False
        return True


@dataclass(frozen=True)
class ManualAssignment:
    """A pinned (position, slot, date) -> person decision made by a planner."""

    position_id: int
    period_index: int
    personnel_id: int
    date: date
    is_enabled: bool = True
    remarks: str = ""


@dataclass(frozen=True)
class HolidayConfig:
    enable_weekend_rule: bool = True
    weekend_days: FrozenSet[int] = frozenset(WEEKEND_DAYS)
    """Weekdays treated as rest days, Monday = 0."""
    legal_holidays: FrozenSet[date] = frozenset()
    custom_holidays: FrozenSet[date] = frozenset()
    excluded_dates: FrozenSet[date] = frozenset()
    """Dates forced to be workdays whatever the other rules say."""

    def is_holiday(self, day: date) -> bool:
        """
        Decide whether `day` is a rest day.

        Precedence, first match wins: excluded dates (workday), custom
        holidays, legal holidays, then the weekend rule.
        """
        if day in self.excluded_dates:
            return False
        if day in self.custom_holidays:
            return True
        if day in self.legal_holidays:
            return True
        if self.enable_weekend_rule:
            return day.weekday() in self.weekend_days
        return False
