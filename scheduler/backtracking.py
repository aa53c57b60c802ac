import gc
import hashlib
import logging
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Tuple
import numpy as np
import psutil
from core.results import BacktrackingStatistics, SchedulingStage
from core.state import FairnessLedger, SchedulingContext
from exceptions.custom_errors import BacktrackDepthExceededError
from schemas.schedule.generate import BacktrackingConfig
from scheduler.feasibility import FeasibilityIndex
from scheduler.greedy import Decision, GreedyAssigner
from scheduler.progress import ProgressReporter
from scheduler.scoring import ScoreCalculator
from utils.constants import HISTORY_LIMIT, MEMORY_PRESSURE_STREAK

logger = logging.getLogger(__name__)

MemorySampler = Callable[[], float]


class SearchState(str, Enum):
    SEARCHING = "Searching"
    BACKTRACKING = "Backtracking"
    DEAD_END = "DeadEnd"
    SUCCESS = "Success"
    EXHAUSTED = "Exhausted"


def process_memory_mb() -> float:
    """Resident set size of this process in MB."""
    return psutil.Process().memory_info().rss / (1024 ** 2)


class PathMemo:
    """Bounded LRU set of abandoned day-grid fingerprints."""

    def __init__(self, max_entries: int):
        self.max_entries = max_entries
        self.enabled = True
        self._entries: "OrderedDict[bytes, None]" = OrderedDict()

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key: bytes) -> bool:
        if not self.enabled or key not in self._entries:
            return False
        self._entries.move_to_end(key)
        return True

    def add(self, key: Optional[bytes]):
        if not self.enabled or key is None:
            return
        self._entries[key] = None
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self):
        self._entries.clear()

    def disable(self):
        self.enabled = False
        self.clear()


class MemoryMonitor:
    """
    Samples process memory every `interval` decisions.

    A run of MEMORY_PRESSURE_STREAK samples above the threshold is one
    pressure event; the first sample over the line triggers a garbage
    collection. Dropping back below the threshold ends the episode.
    """

    def __init__(self, interval: int, threshold_mb: float, stats: BacktrackingStatistics, sampler: Optional[MemorySampler] = None):
        self.interval = interval
        self.threshold_mb = threshold_mb
        self.stats = stats
        self.sampler = sampler or process_memory_mb
        self.under_pressure = False
        self._decisions = 0
        self._streak = 0

    def tick(self) -> bool:
        """Count one decision. Returns True when this decision started a pressure event."""
        self._decisions += 1
        if self._decisions % self.interval:
            return False
        current = self.sampler()
        self.stats.update_memory_usage(current)
        if current <= self.threshold_mb:
            self._streak = 0
            self.under_pressure = False
            return False
        self._streak += 1
        if self._streak == 1:
            gc.collect()
        if self._streak >= MEMORY_PRESSURE_STREAK and not self.under_pressure:
            self.under_pressure = True
            self.stats.record_memory_pressure()
            logger.warning(f"⚠️ Memory pressure: {current:.1f}MB above {self.threshold_mb}MB")
            return True
        return False


@dataclass
class DayOutcome:
    day: int
    state: SearchState
    reason: Optional[str] = None
    start_counts: Optional[np.ndarray] = field(default=None, repr=False)
    """Candidate counts (periods, positions) before the first decision of the day."""


class BacktrackingSolver:
    """
    Greedy assignment with chronological repair, one day at a time.

    Each day is first filled greedily. When a triple that had candidates at
    the start of the day has run out of them, the solver pops decisions off
    the stack until it finds one with an untried alternative, rolls the
    feasibility index back to that decision and continues greedily from the
    alternative. Manual pins sit below the index's frozen base and are never
    undone.
    """

    def __init__(
        self,
        context: SchedulingContext,
        index: FeasibilityIndex,
        ledger: FairnessLedger,
        scorer: ScoreCalculator,
        config: Optional[BacktrackingConfig] = None,
        stats: Optional[BacktrackingStatistics] = None,
        progress: Optional[ProgressReporter] = None,
        cancel_event=None,
        memory_sampler: Optional[MemorySampler] = None,
    ):
        self.context = context
        self.index = index
        self.ledger = ledger
        self.scorer = scorer
        self.config = config or BacktrackingConfig()
        self.stats = stats or BacktrackingStatistics()
        self.progress = progress or ProgressReporter()
        self.cancel_event = cancel_event
        self.memo = PathMemo(self.config.max_memo_entries)
        if not self.config.enable_path_memory:
            self.memo.disable()
        self.monitor = MemoryMonitor(
            self.config.memory_check_interval, self.config.memory_threshold_mb, self.stats, memory_sampler
        )
        self.history: Deque[str] = deque(maxlen=HISTORY_LIMIT)
        self.outcomes: Dict[int, DayOutcome] = {}
        self.stack: List[Decision] = []
        self.cancelled = False
        self._deadline: Optional[float] = None
        self._day_backtracks = 0
        self.greedy = GreedyAssigner(
            index,
            ledger,
            scorer,
            max_candidates=self.config.max_candidates_per_decision if self.config.enable_backtracking else 1,
            progress=self.progress,
            cancel_event=cancel_event,
            on_decision=self._on_decision,
            fingerprint=self.fingerprint,
        )

    # ---- hooks ----
    def fingerprint(self, day: int) -> Optional[bytes]:
        if not self.memo.enabled:
            return None
        return hashlib.blake2b(self.index.grid[day].tobytes(), digest_size=16).digest()

    def _on_decision(self, decision: Decision):
        self.stats.record_snapshot()
        if self.monitor.tick():
            self._relieve_memory()

    def _relieve_memory(self):
        """Stop memoising and keep a single alternative per open decision."""
        self.memo.disable()
        self.greedy.max_candidates = 2
        for frame in self.stack:
            del frame.alternatives[1:]
            frame.fingerprint = None

    def is_cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    # ---- driver ----
    def solve(self) -> Dict[int, DayOutcome]:
        """
        Fill every day of the horizon in chronological order.

        Returns:
            Dict[int, DayOutcome]: Final search state per day. Days after a
                cancellation are missing.
        """
        started = time.monotonic()
        self._deadline = started + self.config.time_budget_seconds
        logger.info(
            f"🚀 Solving {self.context.num_days} day(s) x {self.context.num_positions} position(s), "
            f"backtracking {'on' if self.config.enable_backtracking else 'off'}"
        )
        for day in range(self.context.num_days):
            outcome = self.solve_day(day)
            self.outcomes[day] = outcome
            if self.cancelled:
                logger.warning(f"⚠️ Cancelled on {self.context.dates[day]}")
                break
        self.stats.backtracking_time_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"✅ Search finished: {self.stats.summary()}")
        return self.outcomes

    def solve_day(self, day: int) -> DayOutcome:
        self.stack = []
        self.memo.clear()
        self._day_backtracks = 0
        counts = self.index.counts_for_day(day)
        # triples without a candidate now can never be filled today
        skip = (self.index.grid[day] == -1) & (counts == 0)
        day_mark = self.index.mark()
        best_filled = -1
        best_placements: List[tuple] = []

        outcome = DayOutcome(day, SearchState.SEARCHING, start_counts=counts)
        state = SearchState.SEARCHING
        while True:
            if state == SearchState.SEARCHING:
                if not self.greedy.fill_day(day, self.stack, skip):
                    self.cancelled = True
                    break
                filled = int(np.count_nonzero(self.index.grid[day] >= 0))
                if filled > best_filled:
                    best_filled = filled
                    best_placements = self.index.placements_since(day_mark)
                if not self._dead_ends(day, skip):
                    state = SearchState.SUCCESS
                    break
                self.stats.record_dead_end()
                state = SearchState.DEAD_END

            elif state == SearchState.DEAD_END:
                reason = self._budget_exhausted()
                if reason:
                    outcome.reason = reason
                    state = SearchState.EXHAUSTED
                    break
                state = SearchState.BACKTRACKING

            elif state == SearchState.BACKTRACKING:
                try:
                    resumed = self._backtrack(day)
                except BacktrackDepthExceededError as e:
                    outcome.reason = str(e)
                    state = SearchState.EXHAUSTED
                    break
                if self.cancelled:
                    break
                if not resumed:
                    outcome.reason = "no decision left to revise"
                    state = SearchState.EXHAUSTED
                    break
                state = SearchState.SEARCHING

        filled = int(np.count_nonzero(self.index.grid[day] >= 0))
        if state != SearchState.SUCCESS and filled < best_filled:
            self._restore(day_mark, best_placements)
        outcome.state = state
        if state == SearchState.EXHAUSTED:
            logger.info(f"⚠️ {self.context.dates[day]}: search exhausted ({outcome.reason})")
        return outcome

    def _dead_ends(self, day: int, skip: np.ndarray) -> List[Tuple[int, int]]:
        periods, positions = np.nonzero((self.index.grid[day] == -1) & ~skip)
        return list(zip(periods.tolist(), positions.tolist()))

    def _budget_exhausted(self) -> Optional[str]:
        if not self.config.enable_backtracking:
            return "backtracking disabled"
        if self._day_backtracks >= self.config.max_total_backtracks:
            return f"backtrack budget of {self.config.max_total_backtracks} used up"
        if self._deadline is not None and time.monotonic() > self._deadline:
            return f"time budget of {self.config.time_budget_seconds}s used up"
        if self.monitor.under_pressure:
            return "memory pressure"
        return None

    # ---- backtracking ----
    def _backtrack(self, day: int) -> bool:
        """
        Revise the most recent decision that still has an alternative.

        Returns:
            bool: True when an alternative was placed, False when the stack
                ran out or the search was cancelled.

        Raises:
            BacktrackDepthExceededError: If more than `max_backtrack_depth`
                frames had to be popped.
        """
        self._day_backtracks += 1
        depth = 0
        while self.stack:
            if self.is_cancelled():
                self.cancelled = True
                return False
            frame = self.stack.pop()
            depth += 1
            self._undo_to(frame.mark)
            self.memo.add(frame.fingerprint)
            if depth > self.config.max_backtrack_depth:
                self._record(day, frame, depth, None)
                raise BacktrackDepthExceededError(depth, self.config.max_backtrack_depth)
            if not frame.alternatives:
                if self.config.enable_smart_backtrack_selection:
                    self.stats.record_smart_selection()
                else:
                    self._record_skip(day, frame, depth)
                continue
            placed = self._try_alternatives(frame)
            if placed is not None:
                self._record(day, frame, depth, placed)
                return True
        if depth:
            self._record(day, None, depth, None)
        return False

    def _try_alternatives(self, frame: Decision) -> Optional[int]:
        day, period, position = frame.slot
        while frame.alternatives:
            person = frame.alternatives.pop(0)
            self.stats.record_candidates_tried()
            if not self.index.tensor[day, period, position, person]:
                continue
            mark = self.index.mark()
            self.index.assign(day, period, position, person)
            self.ledger.add(person, day, period)
            fp = self.fingerprint(day)
            if fp is not None and fp in self.memo:
                self.stats.record_avoided_path()
                self._undo_to(mark)
                continue
            decision = Decision(
                day=day,
                period=period,
                position=position,
                chosen=person,
                alternatives=frame.alternatives,
                mark=mark,
                depth=len(self.stack) + 1,
                fingerprint=fp,
            )
            self.stack.append(decision)
            self._on_decision(decision)
            return person
        return None

    def _undo_to(self, mark: int):
        for entry in self.index.rollback(mark):
            day, period, _ = entry.slot
            self.ledger.remove(entry.person, day, period)
        self.stats.record_restore()

    def _restore(self, day_mark: int, placements: List[tuple]):
        """Return the day to its best partial assignment."""
        self._undo_to(day_mark)
        for (day, period, position), person in placements:
            self.index.assign(day, period, position, person)
            self.ledger.add(person, day, period)
        self.stack = []

    def _record_skip(self, day: int, frame: Decision, depth: int):
        """A popped frame without alternatives, counted apart from backtracks."""
        self.stats.record_skipped_frame()
        position = self.context.positions[frame.position].name
        entry = f"{self.context.dates[day]:%Y-%m-%d} period {frame.period} {position}: depth {depth}, skipped"
        self.history.append(entry)
        if self.config.log_backtracking:
            logger.debug(f"⏭️ {entry}")

    def _record(self, day: int, frame: Optional[Decision], depth: int, placed: Optional[int]):
        success = placed is not None
        self.stats.record_backtrack(depth, success)
        date = self.context.dates[day]
        if frame is None:
            entry = f"{date:%Y-%m-%d}: backtrack of depth {depth} found no alternative"
        else:
            position = self.context.positions[frame.position].name
            if success:
                entry = (
                    f"{date:%Y-%m-%d} period {frame.period} {position}: depth {depth}, "
                    f"{self.context.personnel[frame.chosen].name} -> {self.context.personnel[placed].name}"
                )
            else:
                entry = f"{date:%Y-%m-%d} period {frame.period} {position}: depth {depth}, no alternative"
        self.history.append(entry)
        if self.config.log_backtracking:
            logger.debug(f"↩️ {entry}")
        self.progress.report(
            SchedulingStage.BACKTRACKING,
            10 + 80 * (day + 1) / max(self.context.num_days, 1),
            f"Backtracking on {date:%Y-%m-%d}",
            backtracking_stats=self.stats.snapshot(),
            current_backtrack_depth=depth,
            current_date=date,
        )

    # ---- checks ----
    def verify_consistency(self) -> List[Tuple[int, int, int]]:
        """Triples whose assignment breaks a hard rule; empty when the grid is consistent."""
        bad = self.index.validator.gene_violation_mask(self.index.grid, self.index.locked)
        cells = [tuple(int(v) for v in cell) for cell in np.argwhere(bad)]
        if cells:
            logger.error(f"❌ Consistency check failed for {len(cells)} assignment(s): {cells[:5]}")
        else:
            logger.debug("✅ Consistency check passed")
        return cells
