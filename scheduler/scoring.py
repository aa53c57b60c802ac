import logging
from typing import Iterable, List, Optional, Tuple
import numpy as np
from core.results import SoftConstraintScores
from core.state import FairnessLedger, SchedulingContext
from utils.constants import *

logger = logging.getLogger(__name__)


def rest_component(interval_slots: Optional[float]) -> float:
    """Rest adequacy: slots since the previous shift, normalised to MAX_REST_DAYS."""
    if interval_slots is None:
        return NEVER_ASSIGNED_SCORE
    return min(interval_slots / PERIODS_PER_DAY / MAX_REST_DAYS, 1.0)


def time_slot_component(interval_days: Optional[float]) -> float:
    """Per-slot balance: days since the person last held the same slot."""
    if interval_days is None:
        return NEVER_ASSIGNED_SCORE
    return min(interval_days / MAX_TIME_SLOT_DAYS, 1.0)


def holiday_component(is_holiday: bool, interval_days: Optional[float]) -> float:
    """Holiday balance: only holidays are scored, workdays get a neutral value."""
    if not is_holiday:
        return NON_HOLIDAY_SCORE
    if interval_days is None:
        return NEVER_ASSIGNED_SCORE
    return min(interval_days / MAX_HOLIDAY_DAYS, 1.0)


def workload_component(shift_count: int) -> float:
    return 1.0 / (1.0 + shift_count)


class ScoreCalculator:
    """
    Soft constraint scoring shared by the greedy, backtracking and genetic stages.

    Nothing here mutates its inputs, so the same instance is safe to call from
    the GA's evaluation threads.
    """

    def __init__(self, context: SchedulingContext):
        self.context = context
        self.rest_weight = REST_WEIGHT
        self.holiday_weight = HOLIDAY_WEIGHT
        self.time_slot_weight = TIME_SLOT_WEIGHT
        self.workload_weight = WORKLOAD_WEIGHT
        self._active = np.array([p.is_active for p in context.personnel], dtype=bool)
        self._rest_baseline = np.array(
            [
                np.nan if p.recent_shift_interval is None else -p.recent_shift_interval
                for p in context.personnel
            ],
            dtype=float,
        )
        self._holiday_baseline = np.array(
            [
                np.nan if p.recent_holiday_shift_interval is None else -p.recent_holiday_shift_interval
                for p in context.personnel
            ],
            dtype=float,
        )
        self._slot_baseline = np.array(
            [
                [np.nan if v is None else -v for v in _pad_periods(p.recent_period_shift_intervals)]
                for p in context.personnel
            ],
            dtype=float,
        ).reshape(context.num_personnel, PERIODS_PER_DAY)

    # ---- candidate ranking ----
    def score_candidate(self, ledger: FairnessLedger, person: int, day: int, period: int) -> float:
        is_holiday = bool(self.context.holiday_flags[day])
        return (
            self.rest_weight * rest_component(ledger.rest_interval(person, day, period))
            + self.time_slot_weight * time_slot_component(ledger.slot_interval(person, day, period))
            + self.holiday_weight * holiday_component(is_holiday, ledger.holiday_interval(person, day))
            + self.workload_weight * workload_component(ledger.shift_count(person))
        )

    def rank_candidates(self, ledger: FairnessLedger, candidates: Iterable[int], day: int, period: int) -> List[Tuple[int, float]]:
        """Candidates with their scores, best first; equal scores keep the lower personnel index first."""
        scored = [(int(n), self.score_candidate(ledger, int(n), day, period)) for n in candidates]
        scored.sort(key=lambda item: (-item[1], item[0]))
        return scored

    # ---- whole-grid scoring ----
    def workload_counts(self, grid: np.ndarray) -> np.ndarray:
        people = grid[grid >= 0]
        return np.bincount(people, minlength=self.context.num_personnel)

    def soft_scores(self, grid: np.ndarray) -> SoftConstraintScores:
        """
        Average component scores over every assignment in the grid.

        Assignments are replayed per person in time order, starting from the
        historical counters, exactly as candidate ranking sees them.

        Args:
            grid (np.ndarray): Assignment grid (days, periods, positions).

        Returns:
            SoftConstraintScores: Mean rest, slot and holiday scores, the
                workload balance, and their weighted total.
        """
        days, periods, positions = np.nonzero(grid >= 0)
        if days.size == 0:
            return SoftConstraintScores()
        people = grid[days, periods, positions].astype(np.int64)
        ts = days * PERIODS_PER_DAY + periods

        rest = self._rest_scores(people, ts)
        slot = self._slot_scores(people, periods, days)
        holiday = self._holiday_scores(people, days)
        workload = self._workload_balance(people)

        rest_mean = float(rest.mean())
        slot_mean = float(slot.mean())
        holiday_mean = float(holiday.mean())
        total = (
            self.rest_weight * rest_mean
            + self.time_slot_weight * slot_mean
            + self.holiday_weight * holiday_mean
            + self.workload_weight * workload
        )
        return SoftConstraintScores(
            total_score=total,
            rest_score=rest_mean,
            time_slot_balance_score=slot_mean,
            holiday_balance_score=holiday_mean,
            workload_balance_score=workload,
        )

    def per_assignment_components(self, grid: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """(cells, rest, slot, holiday) for diagnostics; `cells` is an (k, 3) array of (day, period, position)."""
        days, periods, positions = np.nonzero(grid >= 0)
        people = grid[days, periods, positions].astype(np.int64)
        ts = days * PERIODS_PER_DAY + periods
        cells = np.stack([days, periods, positions], axis=1)
        if days.size == 0:
            empty = np.zeros(0)
            return cells, empty, empty, empty
        return (
            cells,
            self._rest_scores(people, ts),
            self._slot_scores(people, periods, days),
            self._holiday_scores(people, days),
        )

    def _rest_scores(self, people: np.ndarray, ts: np.ndarray) -> np.ndarray:
        order = np.lexsort((ts, people))
        interval = _intervals(people[order], ts[order], self._rest_baseline[people[order]])
        scores = np.where(
            np.isnan(interval),
            NEVER_ASSIGNED_SCORE,
            np.minimum(np.nan_to_num(interval) / PERIODS_PER_DAY / MAX_REST_DAYS, 1.0),
        )
        return _unsort(scores, order)

    def _slot_scores(self, people: np.ndarray, periods: np.ndarray, days: np.ndarray) -> np.ndarray:
        key = people * PERIODS_PER_DAY + periods
        order = np.lexsort((days, key))
        baseline = self._slot_baseline[people[order], periods[order]]
        interval = _intervals(key[order], days[order], baseline)
        scores = np.where(
            np.isnan(interval),
            NEVER_ASSIGNED_SCORE,
            np.minimum(np.nan_to_num(interval) / MAX_TIME_SLOT_DAYS, 1.0),
        )
        return _unsort(scores, order)

    def _holiday_scores(self, people: np.ndarray, days: np.ndarray) -> np.ndarray:
        scores = np.full(people.shape, NON_HOLIDAY_SCORE, dtype=float)
        on_holiday = self.context.holiday_flags[days]
        if not on_holiday.any():
            return scores
        h_people, h_days = people[on_holiday], days[on_holiday]
        order = np.lexsort((h_days, h_people))
        interval = _intervals(h_people[order], h_days[order], self._holiday_baseline[h_people[order]])
        h_scores = np.where(
            np.isnan(interval),
            NEVER_ASSIGNED_SCORE,
            np.minimum(np.nan_to_num(interval) / MAX_HOLIDAY_DAYS, 1.0),
        )
        scores[on_holiday] = _unsort(h_scores, order)
        return scores

    def _workload_balance(self, people: np.ndarray) -> float:
        """1 minus the coefficient of variation of shifts across active personnel."""
        counts = np.bincount(people, minlength=self.context.num_personnel)[self._active]
        if counts.size == 0 or counts.mean() == 0:
            return 0.0
        cv = counts.std() / counts.mean()
        return float(1.0 - min(cv, 1.0))


def _pad_periods(values) -> list:
    values = list(values or [])
    return (values + [None] * PERIODS_PER_DAY)[:PERIODS_PER_DAY]


def _intervals(keys: np.ndarray, times: np.ndarray, baseline: np.ndarray) -> np.ndarray:
    """Gap to the previous entry with the same key; the first entry of a key uses `baseline` (NaN = never)."""
    prev = np.empty(times.shape, dtype=float)
    prev[0] = baseline[0]
    if times.size > 1:
        same = keys[1:] == keys[:-1]
        prev[1:] = np.where(same, times[:-1], baseline[1:])
    return times - prev


def _unsort(sorted_values: np.ndarray, order: np.ndarray) -> np.ndarray:
    out = np.empty_like(sorted_values)
    out[order] = sorted_values
    return out
