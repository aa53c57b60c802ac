import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
import numpy as np
from core.constraint_manager import ConstraintManager
from core.state import SchedulingContext
from exceptions.custom_errors import StateRestorationError
from scheduler.rules import (
    apply_availability,
    apply_fixed_position_rules,
    apply_manual_assignments,
    apply_position_allowlist,
    apply_skill_requirements,
)
from scheduler.validator import ConstraintValidator
from utils.constants import NIGHT_PERIODS, PERIODS_PER_DAY

logger = logging.getLogger(__name__)


@dataclass
class DeltaEntry:
    """One placement and the tensor regions it switched off."""
    slot: Tuple[int, int, int]
    person: int
    regions: List[Tuple[tuple, np.ndarray]]


class FeasibilityIndex:
    """
    Candidate personnel for every (day, period, position) triple.

    `tensor[d, p, pos, n]` is True while person n may still take the triple.
    Each placement switches off the cells it rules out and records their
    previous values in an append-only delta log, so `rollback` restores an
    earlier state in time proportional to what changed.
    """

    def __init__(self, context: SchedulingContext, validator: Optional[ConstraintValidator] = None):
        self.context = context
        self.validator = validator or ConstraintValidator(context)
        self.options = self.validator.options
        self.tensor = np.ones(
            (context.num_days, PERIODS_PER_DAY, context.num_positions, context.num_personnel),
            dtype=bool,
        )
        self.grid = context.empty_grid()
        self.locked = np.zeros(context.shape, dtype=bool)
        self._log: List[DeltaEntry] = []
        self._floor = 0

    # ---- construction ----
    def apply_constraints(self) -> dict:
        """Run the registered eligibility and fixed rules, without manual pins."""
        manager = ConstraintManager(self, self.context)
        manager.add_rule(apply_availability)
        manager.add_rule(apply_position_allowlist)
        manager.add_rule(apply_skill_requirements)
        manager.add_rule(apply_fixed_position_rules, condition=bool(self.context.rules_by_person))
        return manager.apply_all()

    def reserve_manual_slots(self):
        manager = ConstraintManager(self, self.context)
        manager.add_rule(apply_manual_assignments, condition=bool(self.context.manual_lookup))
        manager.apply_all()

    def freeze_base(self):
        """Everything logged so far (manual pins) can no longer be rolled back."""
        self._floor = len(self._log)

    def feasible_cells(self) -> int:
        return int(self.tensor.sum())

    # ---- queries ----
    def candidates(self, day: int, period: int, position: int) -> np.ndarray:
        return np.flatnonzero(self.tensor[day, period, position])

    def count(self, day: int, period: int, position: int) -> int:
        return int(self.tensor[day, period, position].sum())

    def counts_for_day(self, day: int) -> np.ndarray:
        """Candidate counts of shape (periods, positions)."""
        return self.tensor[day].sum(axis=2)

    def unfilled(self, day: int) -> List[Tuple[int, int]]:
        periods, positions = np.nonzero(self.grid[day] == -1)
        return list(zip(periods.tolist(), positions.tolist()))

    def most_constrained(self, day: int, skip: Optional[np.ndarray] = None) -> Optional[Tuple[int, int]]:
        """
        The unfilled (period, position) of `day` with the fewest candidates.

        Triples without any candidate are ignored; ties go to the earlier
        period, then the lower position index.
        """
        counts = self.counts_for_day(day)
        open_mask = (self.grid[day] == -1) & (counts > 0)
        if skip is not None:
            open_mask &= ~skip
        if not open_mask.any():
            return None
        masked = np.where(open_mask, counts, np.iinfo(np.int64).max)
        period, position = np.unravel_index(int(np.argmin(masked)), masked.shape)
        return int(period), int(position)

    # ---- mutation ----
    def assign(self, day: int, period: int, position: int, person: int, manual: bool = False) -> DeltaEntry:
        """
        Place `person` on the triple and propagate.

        The triple is closed to everyone else, the person is removed from the
        other positions of the same slot, and the spacing rules remove them
        from adjacent slots and other night slots of the date.
        """
        if self.grid[day, period, position] != -1:
            raise ValueError(f"Slot {(day, period, position)} is already filled")
        regions = [
            (day, period, position, slice(None)),
            (day, period, slice(None), person),
        ]
        # pins propagate spacing as well
        if self.options.enforce_non_consecutive:
            for d, p in self.validator.neighbours(day, period):
                regions.append((d, p, slice(None), person))
        if self.options.enforce_night_uniqueness and period in NIGHT_PERIODS:
            for q in NIGHT_PERIODS:
                if q != period:
                    regions.append((day, q, slice(None), person))

        saved = []
        for region in regions:
            view = self.tensor[region]
            if view.any():
                saved.append((region, view.copy()))
                self.tensor[region] = False

        self.grid[day, period, position] = person
        self.locked[day, period, position] = manual
        entry = DeltaEntry((day, period, position), person, saved)
        self._log.append(entry)
        return entry

    def mark(self) -> int:
        return len(self._log)

    def rollback(self, mark: int) -> List[DeltaEntry]:
        """
        Undo every placement made after `mark`, newest first.

        Returns:
            List[DeltaEntry]: The undone entries, newest first.

        Raises:
            StateRestorationError: If `mark` lies below the frozen base or beyond the log.
        """
        if mark < self._floor or mark > len(self._log):
            raise StateRestorationError(
                f"Cannot roll back to mark {mark} (base {self._floor}, log size {len(self._log)})"
            )
        undone = []
        while len(self._log) > mark:
            entry = self._log.pop()
            for region, values in reversed(entry.regions):
                self.tensor[region] = values
            self.grid[entry.slot] = -1
            self.locked[entry.slot] = False
            undone.append(entry)
        return undone

    def placements_since(self, mark: int) -> List[Tuple[Tuple[int, int, int], int]]:
        """(slot, person) of every placement after `mark`, oldest first."""
        return [(e.slot, e.person) for e in self._log[mark:]]


def build_feasibility_index(context: SchedulingContext, validator: Optional[ConstraintValidator] = None) -> FeasibilityIndex:
    """Index with all static rules applied and manual slots reserved, but nothing placed."""
    index = FeasibilityIndex(context, validator)
    pruned = index.apply_constraints()
    index.reserve_manual_slots()
    logger.info(f"📋 Feasibility index ready: {index.feasible_cells()} open placements ({pruned})")
    return index
