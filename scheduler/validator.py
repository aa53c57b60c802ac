import logging
from functools import cached_property
from typing import List, Optional
import numpy as np
from core.hard_rules import define_hard_rules
from core.state import SchedulingContext
from schemas.schedule.generate import EngineOptions
from utils.constants import NIGHT_PERIODS, PERIODS_PER_DAY
from utils.shift_utils import check_period

logger = logging.getLogger(__name__)


class ConstraintValidator:
    """
    Hard constraint predicates over a scheduling context.

    Person and position arguments are indices into `context.personnel` and
    `context.positions`; days are offsets from `context.start_date`. The
    grid-aware checks read an assignment grid of shape (days, 12, positions)
    holding personnel indices or -1.
    """

    def __init__(self, context: SchedulingContext, options: Optional[EngineOptions] = None):
        self.context = context
        self.options = options or EngineOptions()
        self.hard_rules = define_hard_rules(self)

    # ---- static predicates ----
    def validate_personnel_availability(self, person: int) -> bool:
        return self.context.personnel[person].is_active

    def validate_position_allowlist(self, person: int, position: int) -> bool:
        allowed = self.context.positions[position].available_personnel_ids
        return not allowed or self.context.personnel[person].id in allowed

    def validate_skill_match(self, person: int, position: int) -> bool:
        required = self.context.positions[position].required_skill_ids
        return required <= self.context.personnel[person].skill_ids

    def validate_fixed_assignment(self, person: int, position: int, period: int) -> bool:
        """A person without enabled rules is unrestricted; otherwise any rule may allow the pair."""
        check_period(period)
        rules = self.context.rules_by_person.get(person)
        if not rules:
            return True
        position_id = self.context.positions[position].id
        return any(rule.allows(position_id, period) for rule in rules)

    def validate_manual_assignment(self, person: int, position: int, day: int, period: int) -> bool:
        check_period(period)
        pinned = self.context.manual_lookup.get((day, period, position))
        return pinned is None or pinned == person

    # ---- grid-aware predicates ----
    def validate_single_person_per_shift(self, grid: np.ndarray, person: int, position: int, day: int, period: int) -> bool:
        holder = grid[day, period, position]
        return holder == -1 or holder == person

    def validate_person_time_slot_uniqueness(self, grid: np.ndarray, person: int, position: int, day: int, period: int) -> bool:
        row = grid[day, period]
        others = np.delete(row, position)
        return not np.any(others == person)

    def validate_night_shift_uniqueness(self, grid: np.ndarray, person: int, day: int, period: int) -> bool:
        if not self.options.enforce_night_uniqueness or period not in NIGHT_PERIODS:
            return True
        others = [q for q in NIGHT_PERIODS if q != period]
        return not np.any(grid[day, others] == person)

    def validate_non_consecutive_shifts(self, grid: np.ndarray, person: int, day: int, period: int) -> bool:
        if not self.options.enforce_non_consecutive:
            return True
        for d, p in self.neighbours(day, period):
            if np.any(grid[d, p] == person):
                return False
        return True

    def neighbours(self, day: int, period: int) -> List[tuple]:
        """Adjacent (day, period) pairs, crossing midnight between days."""
        result = []
        if period > 0:
            result.append((day, period - 1))
        elif day > 0:
            result.append((day - 1, PERIODS_PER_DAY - 1))
        if period < PERIODS_PER_DAY - 1:
            result.append((day, period + 1))
        elif day < self.context.num_days - 1:
            result.append((day + 1, 0))
        return result

    # ---- combined ----
    def is_statically_feasible(self, person: int, position: int, day: int, period: int) -> bool:
        """Checks that do not depend on other assignments. Manual pins override the rest."""
        pinned = self.context.manual_lookup.get((day, period, position))
        if pinned is not None:
            return pinned == person
        return (
            self.validate_personnel_availability(person)
            and self.validate_position_allowlist(person, position)
            and self.validate_skill_match(person, position)
            and self.validate_fixed_assignment(person, position, period)
        )

    def is_feasible(self, person: int, position: int, day: int, period: int, grid: np.ndarray) -> bool:
        check_period(period)
        return (
            self.is_statically_feasible(person, position, day, period)
            and self.validate_single_person_per_shift(grid, person, position, day, period)
            and self.validate_person_time_slot_uniqueness(grid, person, position, day, period)
            and self.validate_night_shift_uniqueness(grid, person, day, period)
            and self.validate_non_consecutive_shifts(grid, person, day, period)
        )

    def get_constraint_violations(self, person: int, position: int, day: int, period: int, grid: np.ndarray) -> List[str]:
        """Messages of every hard rule the placement would break."""
        check_period(period)
        return [
            rule.message
            for rule in self.hard_rules.values()
            if not rule.check(person, position, day, period, grid)
        ]

    # ---- vectorised masks ----
    def availability_mask(self) -> np.ndarray:
        """Shape (personnel,)."""
        return np.array([p.is_active for p in self.context.personnel], dtype=bool)

    def allowlist_mask(self) -> np.ndarray:
        """Shape (positions, personnel)."""
        ids = [p.id for p in self.context.personnel]
        return np.array(
            [
                [not pos.available_personnel_ids or pid in pos.available_personnel_ids for pid in ids]
                for pos in self.context.positions
            ],
            dtype=bool,
        ).reshape(self.context.num_positions, self.context.num_personnel)

    def skill_mask(self) -> np.ndarray:
        """Shape (positions, personnel)."""
        return np.array(
            [
                [pos.required_skill_ids <= person.skill_ids for person in self.context.personnel]
                for pos in self.context.positions
            ],
            dtype=bool,
        ).reshape(self.context.num_positions, self.context.num_personnel)

    def fixed_rule_mask(self) -> np.ndarray:
        """Shape (periods, positions, personnel)."""
        mask = np.ones(
            (PERIODS_PER_DAY, self.context.num_positions, self.context.num_personnel), dtype=bool
        )
        for person, rules in self.context.rules_by_person.items():
            for p in range(PERIODS_PER_DAY):
                for pos, position in enumerate(self.context.positions):
                    mask[p, pos, person] = any(r.allows(position.id, p) for r in rules)
        return mask

    @cached_property
    def static_mask(self) -> np.ndarray:
        """Shape (days, periods, positions, personnel): placements allowed before any assignment."""
        ctx = self.context
        mask = np.broadcast_to(
            self.availability_mask()[None, None, :]
            & self.allowlist_mask()[None, :, :]
            & self.skill_mask()[None, :, :]
            & self.fixed_rule_mask(),
            (ctx.num_days, PERIODS_PER_DAY, ctx.num_positions, ctx.num_personnel),
        ).copy()
        for (d, p, pos), person in ctx.manual_lookup.items():
            mask[d, p, pos, :] = False
            mask[d, p, pos, person] = True
        return mask

    def gene_violation_mask(self, grid: np.ndarray, locked: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Flag every assigned cell of `grid` that breaks a hard rule.

        Locked (manual) cells are never flagged themselves; a free cell that
        clashes with a locked one is.

        Args:
            grid (np.ndarray): Assignment grid (days, periods, positions).
            locked (np.ndarray, optional): Boolean grid of manual cells.

        Returns:
            np.ndarray: Boolean grid, True where the cell violates a rule.
        """
        ctx = self.context
        n_people = ctx.num_personnel
        assigned = grid >= 0
        if locked is None:
            locked = np.zeros(grid.shape, dtype=bool)
        days, periods, positions = np.nonzero(assigned)
        people = grid[days, periods, positions]

        bad = np.zeros(grid.shape, dtype=bool)
        if people.size == 0:
            return bad

        # static rules
        static_ok = self.static_mask[days, periods, positions, people]

        # occupancy per (day, period, person)
        occ = np.zeros((grid.shape[0], PERIODS_PER_DAY, n_people), dtype=np.int32)
        np.add.at(occ, (days, periods, people), 1)
        conflict = occ[days, periods, people] > 1

        if self.options.enforce_non_consecutive:
            timeline = occ.reshape(-1, n_people) > 0
            ts = days * PERIODS_PER_DAY + periods
            prev_busy = np.zeros(ts.shape, dtype=bool)
            next_busy = np.zeros(ts.shape, dtype=bool)
            has_prev = ts > 0
            has_next = ts < timeline.shape[0] - 1
            prev_busy[has_prev] = timeline[ts[has_prev] - 1, people[has_prev]]
            next_busy[has_next] = timeline[ts[has_next] + 1, people[has_next]]
            conflict |= prev_busy | next_busy

        if self.options.enforce_night_uniqueness:
            night_counts = occ[:, list(NIGHT_PERIODS), :].sum(axis=1)
            is_night = np.isin(periods, NIGHT_PERIODS)
            conflict |= is_night & (night_counts[days, people] > 1)

        bad[days, periods, positions] = ~static_ok | conflict
        return bad & ~locked

    def count_hard_violations(self, grid: np.ndarray, locked: Optional[np.ndarray] = None) -> int:
        return int(self.gene_violation_mask(grid, locked).sum())
