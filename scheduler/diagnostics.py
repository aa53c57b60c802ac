import logging
from collections import Counter
from datetime import datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
import numpy as np
from core.results import (
    BacktrackingDiagnosticReport,
    BacktrackingStatistics,
    ConflictInfo,
    FailureReason,
    UnassignedSlotInfo,
)
from core.state import SchedulingContext
from schemas.schedule.conflicts import ConflictDto, ConflictSubType
from scheduler.scoring import ScoreCalculator
from scheduler.validator import ConstraintValidator
from utils.constants import *
from utils.shift_utils import is_night_period, period_label, period_time_range

logger = logging.getLogger(__name__)


def failure_reason(candidate_count: int) -> FailureReason:
    if candidate_count == 0:
        return FailureReason.NO_CANDIDATES
    if candidate_count <= FEW_CANDIDATES_THRESHOLD:
        return FailureReason.FEW_CANDIDATES
    return FailureReason.CONSTRAINT_CONFLICT


class DiagnosticsCollector:
    """
    Read-only analysis of a finished grid: unassigned triples, the
    backtracking report and display-ready conflicts.
    """

    def __init__(self, context: SchedulingContext, validator: ConstraintValidator, scorer: ScoreCalculator):
        self.context = context
        self.validator = validator
        self.scorer = scorer
        self._ids = Counter()

    # ---- unassigned triples ----
    def constraint_details(self, position: int, period: int) -> str:
        pos = self.context.positions[position]
        details = []
        if pos.required_skill_ids:
            details.append(f"required skills: {', '.join(str(s) for s in sorted(pos.required_skill_ids))}")
        if pos.available_personnel_ids:
            details.append(f"restricted to {len(pos.available_personnel_ids)} personnel")
        if is_night_period(period):
            details.append("night slot (one night slot per person per date)")
        return "; ".join(details) if details else "no specific constraint identified"

    def unassigned_slots(self, grid: np.ndarray, start_counts: Optional[Dict[int, np.ndarray]] = None) -> List[UnassignedSlotInfo]:
        """
        Every unfilled triple in chronological order.

        Args:
            grid (np.ndarray): Final assignment grid.
            start_counts (Dict[int, np.ndarray], optional): Candidate counts per
                day taken before the search touched that day. Days without an
                entry fall back to the static candidate count.

        Returns:
            List[UnassignedSlotInfo]: One record per unfilled triple.
        """
        start_counts = start_counts or {}
        static_counts = None
        slots = []
        for day, period, position in np.argwhere(grid == -1).tolist():
            counts = start_counts.get(day)
            if counts is None:
                if static_counts is None:
                    static_counts = self.validator.static_mask.sum(axis=3)
                count = int(static_counts[day, period, position])
            else:
                count = int(counts[period, position])
            slots.append(
                UnassignedSlotInfo(
                    position_idx=position,
                    position_name=self.context.positions[position].name,
                    period_idx=period,
                    date=self.context.dates[day],
                    candidate_count=count,
                    failure_reason=failure_reason(count),
                    constraint_details=self.constraint_details(position, period),
                )
            )
        return slots

    # ---- report ----
    def build_report(
        self,
        grid: np.ndarray,
        unassigned: List[UnassignedSlotInfo],
        stats: Optional[BacktrackingStatistics] = None,
        history: Iterable[str] = (),
        exhaustion_reasons: Iterable[str] = (),
        max_backtrack_depth: int = MAX_BACKTRACK_DEPTH,
    ) -> BacktrackingDiagnosticReport:
        total = grid.size
        assigned = int(np.count_nonzero(grid >= 0))
        by_position = Counter(slot.position_name for slot in unassigned)
        by_reason = Counter(slot.failure_reason.value for slot in unassigned)
        completion = assigned / total * 100.0 if total else 0.0
        report = BacktrackingDiagnosticReport(
            has_complete_solution=not unassigned,
            total_slots=total,
            assigned_slots=assigned,
            unassigned_slots=tuple(unassigned),
            backtrack_history=tuple(history)[-10:],
            failure_analysis=self._failure_analysis(unassigned, by_position, stats, exhaustion_reasons),
            recommendations=tuple(self._recommendations(unassigned, completion, stats, max_backtrack_depth)),
            statistics=stats.snapshot() if stats is not None else None,
            unassigned_by_position=dict(by_position),
            unassigned_by_reason=dict(by_reason),
        )
        if unassigned:
            logger.info(f"📋 Diagnostic report: {len(unassigned)} unassigned slot(s), {report.completion_rate:.1f}% complete")
        return report

    def _failure_analysis(self, unassigned, by_position: Counter, stats, exhaustion_reasons) -> str:
        lines = ["Failure analysis:"]
        if not unassigned:
            lines.append("  Every slot was assigned.")
            return "\n".join(lines)
        lines.append(f"  Unassigned slots: {len(unassigned)}")
        lines.append(f"  Positions affected: {len(by_position)}")
        lines.append("  By position:")
        for name, count in by_position.most_common():
            lines.append(f"    {name}: {count} slot(s)")

        none = sum(1 for s in unassigned if s.candidate_count == 0)
        if none:
            lines.append(f"  Slots without any candidate: {none}")
            lines.append("    Possible causes: skill mismatch, unavailable personnel, rule conflicts")
        few = sum(1 for s in unassigned if 0 < s.candidate_count <= FEW_CANDIDATES_THRESHOLD)
        if few:
            lines.append(f"  Slots with few candidates (<= {FEW_CANDIDATES_THRESHOLD}): {few}")
            lines.append("    Possible causes: tight staffing, strict rules")

        if stats is not None:
            lines.append("  Backtracking:")
            lines.append(f"    Total backtracks: {stats.total_backtracks}")
            lines.append(f"    Max depth: {stats.max_depth_reached}")
            lines.append(f"    Success rate: {stats.success_rate:.1f}%")

        reasons = sorted(set(exhaustion_reasons))
        frequent_dead_ends = stats is not None and stats.dead_end_detections > stats.total_backtracks * 2
        if reasons or frequent_dead_ends:
            lines.append("  Why no complete solution was found:")
            lines += [f"    - {reason}" for reason in reasons]
            if frequent_dead_ends:
                lines.append("    - frequent dead ends, the rules may conflict structurally")
        return "\n".join(lines)

    def _recommendations(self, unassigned, completion: float, stats, max_backtrack_depth: int) -> List[str]:
        if not unassigned:
            return ["The roster is complete, no adjustment needed."]
        recs = []
        none = sum(1 for s in unassigned if s.candidate_count == 0)
        if none:
            recs += [
                f"{none} slot(s) have no candidate:",
                "  - review the skill requirements of the positions",
                "  - add personnel with the required skills",
                "  - relax fixed-position rules or manual assignments",
            ]
        if stats is not None and stats.total_backtracks and stats.max_depth_reached >= 0.8 * max_backtrack_depth:
            recs += [
                "Backtracking came close to its depth limit:",
                "  - raise max_backtrack_depth",
                "  - rebalance personnel and positions",
            ]
        if completion < 50:
            recs += [
                "Completion is low:",
                "  - add personnel",
                "  - reduce positions or covered slots",
                "  - check whether the rules are too strict",
            ]
        elif completion < 90:
            recs += [
                "Completion is moderate:",
                "  - fine-tune personnel skills",
                "  - adjust soft constraint weights",
            ]
        if stats is not None and stats.memory_pressure_events:
            recs += [
                "Memory pressure was detected:",
                "  - lower max_backtrack_depth",
                "  - lower max_candidates_per_decision",
                "  - disable path memory",
            ]
        return recs

    # ---- conflicts ----
    def _next_id(self, sub_type: ConflictSubType) -> str:
        self._ids[sub_type] += 1
        return f"{sub_type.value}-{self._ids[sub_type]}"

    def _times(self, day: int, period: int) -> Tuple[datetime, datetime]:
        start_hour, _ = period_time_range(period)
        start = datetime.combine(self.context.dates[day], time(hour=start_hour))
        return start, start + timedelta(hours=HOURS_PER_PERIOD)

    def _cell_conflict(self, sub_type: ConflictSubType, kind: str, severity: int, message: str, day: int, period: int, position: int, person: Optional[int] = None, **extra) -> ConflictDto:
        start, end = self._times(day, period)
        pos = self.context.positions[position]
        who = self.context.personnel[person] if person is not None else None
        return ConflictDto(
            id=self._next_id(sub_type),
            type=kind,
            sub_type=sub_type,
            message=message[:500],
            position_id=pos.id,
            position_name=pos.name,
            personnel_id=who.id if who else None,
            personnel_name=who.name if who else None,
            start_time=start,
            end_time=end,
            period_index=period,
            severity=severity,
            **extra,
        )

    def build_conflicts(self, grid: np.ndarray, locked: np.ndarray, unassigned: Iterable[UnassignedSlotInfo] = ()) -> List[ConflictDto]:
        """
        Conflicts of a finished grid, hard ones first.

        Args:
            grid (np.ndarray): Final assignment grid.
            locked (np.ndarray): Boolean grid of manual cells.
            unassigned (Iterable[UnassignedSlotInfo]): Output of `unassigned_slots`.

        Returns:
            List[ConflictDto]: Conflicts with deterministic ids such as
                "UnassignedSlot-1".
        """
        self._ids = Counter()
        conflicts = self._hard_conflicts(grid, locked)
        conflicts += self._manual_overrides(grid, locked)
        conflicts += self._unassigned_conflicts(unassigned)
        conflicts += self._rest_conflicts(grid)
        conflicts += self._workload_conflicts(grid)
        conflicts += self._suboptimal_conflicts(grid, locked)
        return conflicts

    def _hard_conflicts(self, grid, locked) -> List[ConflictDto]:
        conflicts = []
        bad = self.validator.gene_violation_mask(grid, locked)
        for day, period, position in np.argwhere(bad).tolist():
            person = int(grid[day, period, position])
            if not self.validator.validate_personnel_availability(person):
                sub_type, text = ConflictSubType.PERSONNEL_UNAVAILABLE, "is not available"
            elif not self.validator.validate_skill_match(person, position):
                sub_type, text = ConflictSubType.SKILL_MISMATCH, "lacks the required skills"
            else:
                sub_type, text = ConflictSubType.DUPLICATE_ASSIGNMENT, "clashes with another shift"
            violations = self.validator.get_constraint_violations(person, position, day, period, _without(grid, day, period, position))
            conflicts.append(
                self._cell_conflict(
                    sub_type, "hard", 5,
                    f"{self.context.personnel[person].name} {text}",
                    day, period, position, person,
                    detailed_message="; ".join(violations) or None,
                )
            )
        return conflicts

    def _manual_overrides(self, grid, locked) -> List[ConflictDto]:
        """Manual pins that bypass availability or skills are reported, not rejected."""
        conflicts = []
        for day, period, position in np.argwhere(locked).tolist():
            person = int(grid[day, period, position])
            if not self.validator.validate_personnel_availability(person):
                sub_type, text = ConflictSubType.PERSONNEL_UNAVAILABLE, "is pinned while unavailable"
            elif not self.validator.validate_skill_match(person, position):
                sub_type, text = ConflictSubType.SKILL_MISMATCH, "is pinned without the required skills"
            else:
                continue
            conflicts.append(
                self._cell_conflict(
                    sub_type, "info", 2,
                    f"{self.context.personnel[person].name} {text}",
                    day, period, position, person,
                    detailed_message="Manual assignment overrides the rule",
                    is_fixable=False,
                )
            )
        return conflicts

    def _unassigned_conflicts(self, unassigned) -> List[ConflictDto]:
        conflicts = []
        for slot in unassigned:
            day = self.context.day_of(slot.date)
            conflicts.append(
                self._cell_conflict(
                    ConflictSubType.UNASSIGNED_SLOT, "unassigned",
                    5 if slot.candidate_count == 0 else 4,
                    f"{slot.position_name} {period_label(slot.period_idx)} on {slot.date:%Y-%m-%d} is unassigned",
                    day, slot.period_idx, slot.position_idx,
                    detailed_message=f"{slot.failure_reason.value}; {slot.constraint_details}",
                    is_fixable=slot.candidate_count > 0,
                )
            )
        return conflicts

    def _rest_conflicts(self, grid) -> List[ConflictDto]:
        conflicts = []
        days, periods, positions = np.nonzero(grid >= 0)
        people = grid[days, periods, positions]
        ts = days * PERIODS_PER_DAY + periods
        order = np.lexsort((ts, people))
        for a, b in zip(order[:-1], order[1:]):
            if people[a] != people[b]:
                continue
            gap = int(ts[b] - ts[a])
            if gap < MIN_REST_PERIODS:
                conflicts.append(
                    self._cell_conflict(
                        ConflictSubType.INSUFFICIENT_REST, "soft", 2,
                        f"{self.context.personnel[people[b]].name} rests only {gap * HOURS_PER_PERIOD}h before this shift",
                        int(days[b]), int(periods[b]), int(positions[b]), int(people[b]),
                    )
                )
        return conflicts

    def _workload_conflicts(self, grid) -> List[ConflictDto]:
        conflicts = []
        counts = self.scorer.workload_counts(grid)
        active = self.validator.availability_mask()
        if not active.any():
            return conflicts
        active_counts = counts[active]
        mean = float(active_counts.mean())
        if mean > 0:
            for person in np.flatnonzero(active & (counts > mean * EXCESSIVE_WORKLOAD_RATIO)).tolist():
                who = self.context.personnel[person]
                conflicts.append(
                    ConflictDto(
                        id=self._next_id(ConflictSubType.EXCESSIVE_WORKLOAD),
                        type="soft",
                        sub_type=ConflictSubType.EXCESSIVE_WORKLOAD,
                        message=f"{who.name} has {int(counts[person])} shifts, average is {mean:.1f}",
                        personnel_id=who.id,
                        personnel_name=who.name,
                        severity=3,
                    )
                )
            cv = float(active_counts.std() / mean)
            if cv > WORKLOAD_IMBALANCE_CV:
                conflicts.append(
                    ConflictDto(
                        id=self._next_id(ConflictSubType.WORKLOAD_IMBALANCE),
                        type="soft",
                        sub_type=ConflictSubType.WORKLOAD_IMBALANCE,
                        message=f"Shift counts vary widely (coefficient of variation {cv:.2f})",
                        severity=2,
                    )
                )

        per_day = np.zeros((grid.shape[0], self.context.num_personnel), dtype=np.int32)
        days, _, _ = np.nonzero(grid >= 0)
        np.add.at(per_day, (days, grid[grid >= 0]), 1)
        for day, person in np.argwhere(per_day > MAX_SHIFTS_PER_DAY).tolist():
            who = self.context.personnel[person]
            conflicts.append(
                ConflictDto(
                    id=self._next_id(ConflictSubType.CONSECUTIVE_OVERTIME),
                    type="soft",
                    sub_type=ConflictSubType.CONSECUTIVE_OVERTIME,
                    message=f"{who.name} has {int(per_day[day, person])} shifts on {self.context.dates[day]:%Y-%m-%d}",
                    personnel_id=who.id,
                    personnel_name=who.name,
                    start_time=datetime.combine(self.context.dates[day], time()),
                    end_time=datetime.combine(self.context.dates[day], time()) + timedelta(days=1),
                    severity=3,
                )
            )
        return conflicts

    def _suboptimal_conflicts(self, grid, locked) -> List[ConflictDto]:
        conflicts = []
        cells, _, slot_scores, _ = self.scorer.per_assignment_components(grid)
        for (day, period, position), score in zip(cells.tolist(), slot_scores.tolist()):
            if locked[day, period, position] or score >= SUBOPTIMAL_SLOT_SCORE:
                continue
            person = int(grid[day, period, position])
            conflicts.append(
                self._cell_conflict(
                    ConflictSubType.SUBOPTIMAL_ASSIGNMENT, "info", 1,
                    f"{self.context.personnel[person].name} held this slot very recently",
                    day, period, position, person,
                    detailed_message=f"time slot balance score {score:.2f}",
                )
            )
        return conflicts

    @staticmethod
    def conflict_infos(conflicts: Iterable[ConflictDto]) -> List[ConflictInfo]:
        return [
            ConflictInfo(
                conflict_type=c.sub_type.value,
                description=c.message,
                position_id=c.position_id,
                position_name=c.position_name,
                period_index=c.period_index,
                date=c.start_time.date() if c.start_time else None,
            )
            for c in conflicts
        ]


def _without(grid: np.ndarray, day: int, period: int, position: int) -> np.ndarray:
    """Copy of `grid` with one cell cleared, so a cell is not compared with itself."""
    other = grid.copy()
    other[day, period, position] = -1
    return other
