import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple
import numpy as np
from core.results import SchedulingStage
from core.state import FairnessLedger
from scheduler.feasibility import FeasibilityIndex
from scheduler.progress import ProgressReporter
from scheduler.scoring import ScoreCalculator
from utils.constants import MAX_CANDIDATES_PER_DECISION

logger = logging.getLogger(__name__)


@dataclass
class Decision:
    """A placement on the decision stack together with the ways it could have gone instead."""
    day: int
    period: int
    position: int
    chosen: int
    alternatives: List[int]
    mark: int
    """Delta-log mark taken just before the placement."""
    depth: int
    fingerprint: Optional[bytes] = field(default=None, repr=False)

    @property
    def slot(self) -> Tuple[int, int, int]:
        return self.day, self.period, self.position


class GreedyAssigner:
    """
    Most-constrained-first assignment of one day at a time.

    Repeatedly takes the open triple with the fewest candidates, ranks the
    candidates by fairness score and places the best one. Every placement is
    pushed onto the decision stack (when one is given) so the backtracking
    solver can revisit it.
    """

    def __init__(
        self,
        index: FeasibilityIndex,
        ledger: FairnessLedger,
        scorer: ScoreCalculator,
        max_candidates: int = MAX_CANDIDATES_PER_DECISION,
        progress: Optional[ProgressReporter] = None,
        cancel_event=None,
        on_decision: Optional[Callable[[Decision], None]] = None,
        fingerprint: Optional[Callable[[int], bytes]] = None,
    ):
        self.index = index
        self.ledger = ledger
        self.scorer = scorer
        self.max_candidates = max(1, max_candidates)
        self.progress = progress or ProgressReporter()
        self.cancel_event = cancel_event
        self.on_decision = on_decision
        self.fingerprint = fingerprint
        self.placements = 0

    def is_cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def place(self, day: int, period: int, position: int, ranked: List[int], stack: Optional[list]) -> Decision:
        """Place `ranked[0]` and keep the next best as alternatives."""
        mark = self.index.mark()
        person = ranked[0]
        self.index.assign(day, period, position, person)
        self.ledger.add(person, day, period)
        self.placements += 1
        decision = Decision(
            day=day,
            period=period,
            position=position,
            chosen=person,
            alternatives=list(ranked[1:self.max_candidates]),
            mark=mark,
            depth=(len(stack) + 1) if stack is not None else 0,
            fingerprint=self.fingerprint(day) if self.fingerprint else None,
        )
        if stack is not None:
            stack.append(decision)
        if self.on_decision is not None:
            self.on_decision(decision)
        return decision

    def fill_day(self, day: int, stack: Optional[list] = None, skip: Optional[np.ndarray] = None) -> bool:
        """
        Fill every open triple of `day` that still has a candidate.

        Returns:
            bool: False when cancelled part way, True otherwise.
        """
        while True:
            if self.is_cancelled():
                return False
            slot = self.index.most_constrained(day, skip)
            if slot is None:
                return True
            period, position = slot
            candidates = self.index.candidates(day, period, position)
            ranked = [n for n, _ in self.scorer.rank_candidates(self.ledger, candidates, day, period)]
            self.place(day, period, position, ranked, stack)
            self._report(day, period, position)

    def _report(self, day: int, period: int, position: int):
        if not self.progress.enabled:
            return
        ctx = self.index.context
        total = ctx.total_slots
        filled = int(np.count_nonzero(self.index.grid >= 0))
        # days are the coarse unit of progress, slots inside a day the fine one
        day_share = (day + filled_fraction(self.index.grid[day])) / max(ctx.num_days, 1)
        self.progress.report(
            SchedulingStage.GREEDY_ASSIGNMENT,
            10 + 80 * day_share,
            f"Assigning {ctx.dates[day]:%Y-%m-%d}",
            completed_assignments=filled,
            total_slots_to_assign=total,
            remaining_slots=total - filled,
            current_position_name=ctx.positions[position].name,
            current_period_index=period,
            current_date=ctx.dates[day],
        )


def filled_fraction(day_grid: np.ndarray) -> float:
    if day_grid.size == 0:
        return 1.0
    return float(np.count_nonzero(day_grid >= 0)) / day_grid.size
