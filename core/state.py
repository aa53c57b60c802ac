from bisect import bisect_left, insort
from dataclasses import dataclass, field
from datetime import date, timedelta
from functools import cached_property
from typing import Dict, List, Optional, Tuple
import numpy as np
from core.models import (
    FixedPositionRule,
    HolidayConfig,
    ManualAssignment,
    Personnel,
    Position,
)
from utils.constants import PERIODS_PER_DAY


@dataclass(frozen=True)
class SchedulingContext:
    """
    An immutable snapshot of everything a solve reads: who can be placed,
    where, when, and under which pinned decisions and rest-day policy.
    Inactive positions are dropped on construction.
    """

    positions: Tuple[Position, ...]
    """Guard positions to fill, in output order."""
    personnel: Tuple[Personnel, ...]
    """All personnel, including unavailable or retired people (they never get candidates)."""
    start_date: date
    """First day of the horizon."""
    end_date: date
    """Last day of the horizon, inclusive."""
    fixed_rules: Tuple[FixedPositionRule, ...] = ()
    """Fixed-position rules, enabled or not."""
    manual_assignments: Tuple[ManualAssignment, ...] = ()
    """Planner pins, enabled or not, possibly outside the horizon."""
    holiday_config: HolidayConfig = field(default_factory=HolidayConfig)
    """Rest-day policy used by the holiday balance score."""

    def __post_init__(self):
        object.__setattr__(
            self, "positions", tuple(p for p in self.positions if p.is_active)
        )
        object.__setattr__(self, "personnel", tuple(self.personnel))
        object.__setattr__(self, "fixed_rules", tuple(self.fixed_rules))
        object.__setattr__(self, "manual_assignments", tuple(self.manual_assignments))

    # ---- shape ----
    @property
    def num_days(self) -> int:
        return max((self.end_date - self.start_date).days + 1, 0)

    @property
    def num_positions(self) -> int:
        return len(self.positions)

    @property
    def num_personnel(self) -> int:
        return len(self.personnel)

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Shape of an assignment grid: (days, periods, positions)."""
        return self.num_days, PERIODS_PER_DAY, self.num_positions

    @property
    def total_slots(self) -> int:
        return self.num_days * PERIODS_PER_DAY * self.num_positions

    @cached_property
    def dates(self) -> List[date]:
        return [self.start_date + timedelta(days=i) for i in range(self.num_days)]

    def day_of(self, day: date) -> Optional[int]:
        """Day index of a date, or None outside the horizon."""
        offset = (day - self.start_date).days
        if 0 <= offset < self.num_days:
            return offset
        return None

    # ---- lookups ----
    @cached_property
    def person_index(self) -> Dict[int, int]:
        return {p.id: i for i, p in enumerate(self.personnel)}

    @cached_property
    def position_index(self) -> Dict[int, int]:
        return {p.id: i for i, p in enumerate(self.positions)}

    @cached_property
    def holiday_flags(self) -> np.ndarray:
        """Boolean array, one entry per day of the horizon."""
        return np.array(
            [self.holiday_config.is_holiday(d) for d in self.dates], dtype=bool
        )

    @cached_property
    def rules_by_person(self) -> Dict[int, List[FixedPositionRule]]:
        """Enabled fixed rules grouped by personnel index."""
        grouped: Dict[int, List[FixedPositionRule]] = {}
        for rule in self.fixed_rules:
            idx = self.person_index.get(rule.personnel_id)
            if rule.is_enabled and idx is not None:
                grouped.setdefault(idx, []).append(rule)
        return grouped

    @cached_property
    def active_manual_assignments(self) -> List[ManualAssignment]:
        """Enabled pins that fall inside the horizon, ordered by date then period."""
        pins = [
            m
            for m in self.manual_assignments
            if m.is_enabled
            and self.day_of(m.date) is not None
            and m.position_id in self.position_index
            and m.personnel_id in self.person_index
        ]
        return sorted(pins, key=lambda m: (m.date, m.period_index, m.position_id))

    @cached_property
    def manual_lookup(self) -> Dict[Tuple[int, int, int], int]:
        """
        (day, period, position index) -> personnel index, first pin wins.

        `validate_context` rejects contradicting pins before a search starts.
        """
        lookup: Dict[Tuple[int, int, int], int] = {}
        for m in self.active_manual_assignments:
            key = (self.day_of(m.date), m.period_index, self.position_index[m.position_id])
            lookup.setdefault(key, self.person_index[m.personnel_id])
        return lookup

    def empty_grid(self) -> np.ndarray:
        """An all-unassigned grid of shape (days, periods, positions)."""
        return np.full(self.shape, -1, dtype=np.int32)


class FairnessLedger:
    """
    Per-person assignment history used to rank candidates.

    Holds the historical baselines taken from the personnel counters plus the
    slots assigned during the current solve. Entries can be removed again so
    the ledger follows the backtracking solver when it undoes decisions.
    """

    def __init__(self, context: SchedulingContext):
        self.context = context
        n = context.num_personnel
        self._timestamps: List[List[int]] = [[] for _ in range(n)]
        self._period_days: List[List[List[int]]] = [
            [[] for _ in range(PERIODS_PER_DAY)] for _ in range(n)
        ]
        self._holiday_days: List[List[int]] = [[] for _ in range(n)]

    def add(self, person: int, day: int, period: int):
        insort(self._timestamps[person], day * PERIODS_PER_DAY + period)
        insort(self._period_days[person][period], day)
        if self.context.holiday_flags[day]:
            insort(self._holiday_days[person], day)

    def remove(self, person: int, day: int, period: int):
        self._timestamps[person].remove(day * PERIODS_PER_DAY + period)
        self._period_days[person][period].remove(day)
        if self.context.holiday_flags[day]:
            self._holiday_days[person].remove(day)

    def shift_count(self, person: int) -> int:
        return len(self._timestamps[person])

    @staticmethod
    def _previous(values: List[int], current: int, baseline: Optional[int]) -> Optional[int]:
        idx = bisect_left(values, current)
        if idx > 0:
            return values[idx - 1]
        return baseline

    def rest_interval(self, person: int, day: int, period: int) -> Optional[int]:
        """Slots since the person's previous shift, None if they never served."""
        ts = day * PERIODS_PER_DAY + period
        history = self.context.personnel[person].recent_shift_interval
        baseline = None if history is None else -history
        prev = self._previous(self._timestamps[person], ts, baseline)
        return None if prev is None else ts - prev

    def slot_interval(self, person: int, day: int, period: int) -> Optional[int]:
        """Days since the person last held this slot index."""
        history = self.context.personnel[person].recent_period_shift_intervals
        raw = history[period] if period < len(history) else None
        baseline = None if raw is None else -raw
        prev = self._previous(self._period_days[person][period], day, baseline)
        return None if prev is None else day - prev

    def holiday_interval(self, person: int, day: int) -> Optional[int]:
        """Days since the person's previous holiday shift."""
        history = self.context.personnel[person].recent_holiday_shift_interval
        baseline = None if history is None else -history
        prev = self._previous(self._holiday_days[person], day, baseline)
        return None if prev is None else day - prev
