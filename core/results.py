"""
Value types produced by a solve: assignments, diagnostics, statistics and
progress records. Everything except the running BacktrackingStatistics
counter is frozen; a solve hands back new objects instead of mutating
anything a caller may be observing.
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from utils.shift_utils import period_label


class SchedulingStage(str, Enum):
    """Stages reported through the progress channel, in execution order."""
    INITIALIZING = "Initializing"
    LOADING_DATA = "LoadingData"
    BUILDING_CONTEXT = "BuildingContext"
    INITIALIZING_TENSOR = "InitializingTensor"
    APPLYING_CONSTRAINTS = "ApplyingConstraints"
    APPLYING_MANUAL_ASSIGNMENTS = "ApplyingManualAssignments"
    GREEDY_ASSIGNMENT = "GreedyAssignment"
    BACKTRACKING = "Backtracking"
    UPDATING_SCORES = "UpdatingScores"
    FINALIZING = "Finalizing"
    GENETIC_OPTIMIZING = "GeneticOptimizing"
    COMPLETED = "Completed"
    FAILED = "Failed"


class FailureReason(str, Enum):
    """Why a triple was left unassigned"""
    NO_CANDIDATES = "no candidates"
    FEW_CANDIDATES = "few candidates, backtracking failed"
    CONSTRAINT_CONFLICT = "all candidates failed"


@dataclass(frozen=True)
class Assignment:
    position_id: int
    personnel_id: int
    date: date
    period: int
    is_manual: bool = False


@dataclass(frozen=True)
class UnassignedSlotInfo:
    """A (position, slot, date) triple the search could not fill."""
    position_idx: int
    position_name: str
    period_idx: int
    date: date
    candidate_count: int
    failure_reason: FailureReason
    constraint_details: Optional[str] = None

    @property
    def time_range(self) -> str:
        return period_label(self.period_idx)

    def __str__(self):
        return (
            f"Position: {self.position_name}, period: {self.period_idx} ({self.time_range}), "
            f"date: {self.date:%Y-%m-%d}, candidates: {self.candidate_count}, "
            f"reason: {self.failure_reason.value}"
        )


@dataclass(frozen=True)
class ConflictInfo:
    conflict_type: str
    description: str
    position_id: Optional[int] = None
    position_name: Optional[str] = None
    period_index: Optional[int] = None
    date: Optional[date] = None


@dataclass(frozen=True)
class SoftConstraintScores:
    total_score: float = 0.0
    rest_score: float = 0.0
    time_slot_balance_score: float = 0.0
    holiday_balance_score: float = 0.0
    workload_balance_score: float = 0.0


@dataclass(frozen=True)
class PersonnelWorkload:
    personnel_id: int
    personnel_name: str
    total_shifts: int
    holiday_shifts: int
    night_shifts: int
    period_counts: Tuple[int, ...]


@dataclass(frozen=True)
class PositionCoverage:
    position_id: int
    position_name: str
    total_slots: int
    assigned_slots: int

    @property
    def coverage_rate(self) -> float:
        if self.total_slots == 0:
            return 0.0
        return self.assigned_slots / self.total_slots * 100.0


@dataclass(frozen=True)
class GeneticProgressInfo:
    current_generation: int
    max_generations: int
    best_fitness: float
    average_fitness: float
    best_hard_constraint_violations: int
    best_unassigned_slots: int


@dataclass(frozen=True)
class GeneticRunSummary:
    generations_run: int
    initial_best_fitness: float
    final_best_fitness: float
    best_fitness_history: Tuple[float, ...]
    converged_early: bool = False
    cancelled: bool = False


@dataclass
class BacktrackingStatistics:
    """Counters accumulated over one solve call."""
    total_backtracks: int = 0
    successful_backtracks: int = 0
    failed_backtracks: int = 0
    max_depth_reached: int = 0
    average_backtrack_depth: float = 0.0
    backtracking_time_ms: int = 0
    avoided_duplicate_paths: int = 0
    total_candidates_tried: int = 0
    dead_end_detections: int = 0
    smart_backtrack_selections: int = 0
    skipped_frames: int = 0
    snapshots_created: int = 0
    state_restores: int = 0
    peak_memory_usage_mb: float = 0.0
    current_memory_usage_mb: float = 0.0
    memory_pressure_events: int = 0
    _depth_sum: int = field(default=0, repr=False)

    def record_backtrack(self, depth: int, success: bool):
        self.total_backtracks += 1
        self.max_depth_reached = max(self.max_depth_reached, depth)
        if success:
            self.successful_backtracks += 1
        else:
            self.failed_backtracks += 1
        self._depth_sum += depth
        self.average_backtrack_depth = self._depth_sum / self.total_backtracks

    def record_dead_end(self):
        self.dead_end_detections += 1

    def record_smart_selection(self):
        self.smart_backtrack_selections += 1

    def record_skipped_frame(self):
        self.skipped_frames += 1

    def record_snapshot(self):
        self.snapshots_created += 1

    def record_restore(self):
        self.state_restores += 1

    def record_avoided_path(self):
        self.avoided_duplicate_paths += 1

    def record_candidates_tried(self, count: int = 1):
        self.total_candidates_tried += count

    def update_memory_usage(self, current_mb: float):
        self.current_memory_usage_mb = current_mb
        self.peak_memory_usage_mb = max(self.peak_memory_usage_mb, current_mb)

    def record_memory_pressure(self):
        self.memory_pressure_events += 1

    @property
    def success_rate(self) -> float:
        if self.total_backtracks == 0:
            return 0.0
        return self.successful_backtracks / self.total_backtracks * 100.0

    def snapshot(self) -> "BacktrackingStatistics":
        """Detached copy for reports."""
        return replace(self)

    def summary(self) -> str:
        return (
            f"Backtracks: total={self.total_backtracks}, successful={self.successful_backtracks} "
            f"({self.success_rate:.1f}%), failed={self.failed_backtracks}, "
            f"max depth={self.max_depth_reached}, avg depth={self.average_backtrack_depth:.2f}, "
            f"time={self.backtracking_time_ms}ms, dead ends={self.dead_end_detections}, "
            f"smart selections={self.smart_backtrack_selections}, skipped frames={self.skipped_frames}, "
            f"avoided paths={self.avoided_duplicate_paths}, candidates tried={self.total_candidates_tried}, "
            f"snapshots={self.snapshots_created}, restores={self.state_restores}, "
            f"peak memory={self.peak_memory_usage_mb:.2f}MB, "
            f"memory pressure events={self.memory_pressure_events}"
        )


@dataclass(frozen=True)
class BacktrackingDiagnosticReport:
    has_complete_solution: bool
    total_slots: int
    assigned_slots: int
    unassigned_slots: Tuple[UnassignedSlotInfo, ...]
    backtrack_history: Tuple[str, ...]
    failure_analysis: str
    recommendations: Tuple[str, ...]
    statistics: Optional[BacktrackingStatistics]
    unassigned_by_position: Dict[str, int] = field(default_factory=dict)
    unassigned_by_reason: Dict[str, int] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def completion_rate(self) -> float:
        if self.total_slots == 0:
            return 0.0
        return self.assigned_slots / self.total_slots * 100.0

    def formatted(self, max_slots: int = 10, max_history: int = 10) -> str:
        lines = [
            "=== Backtracking diagnostic report ===",
            f"Generated: {self.generated_at:%Y-%m-%d %H:%M:%S}",
            f"Status: {'complete' if self.has_complete_solution else 'partial'}",
            f"Completion: {self.completion_rate:.1f}% ({self.assigned_slots}/{self.total_slots})",
            "",
        ]
        if self.failure_analysis:
            lines += [self.failure_analysis, ""]
        if self.unassigned_slots:
            lines.append("Unassigned slots:")
            lines += [f"  - {slot}" for slot in self.unassigned_slots[:max_slots]]
            if len(self.unassigned_slots) > max_slots:
                lines.append(f"  ... {len(self.unassigned_slots) - max_slots} more")
            lines.append("")
        if self.backtrack_history:
            lines.append(f"Backtrack history (last {max_history}):")
            lines += [f"  - {entry}" for entry in self.backtrack_history[-max_history:]]
            lines.append("")
        if self.statistics is not None:
            lines += [self.statistics.summary(), ""]
        if self.recommendations:
            lines.append("Recommendations:")
            lines += [f"  {rec}" for rec in self.recommendations]
        return "\n".join(lines)

    def __str__(self):
        return self.formatted()


@dataclass(frozen=True)
class SchedulingProgressReport:
    progress_percentage: float
    current_stage: SchedulingStage
    stage_description: str = ""
    completed_assignments: int = 0
    total_slots_to_assign: int = 0
    remaining_slots: int = 0
    current_position_name: Optional[str] = None
    current_period_index: Optional[int] = None
    current_date: Optional[date] = None
    elapsed_time: timedelta = timedelta(0)
    warnings: Tuple[str, ...] = ()
    has_errors: bool = False
    error_message: Optional[str] = None
    genetic_progress_info: Optional[GeneticProgressInfo] = None
    backtracking_stats: Optional[BacktrackingStatistics] = None
    current_backtrack_depth: int = 0


@dataclass(frozen=True)
class SchedulingStatistics:
    total_assignments: int
    manual_assignments: int
    unassigned_slots: int
    total_slots: int
    personnel_workloads: Dict[int, PersonnelWorkload]
    position_coverages: Dict[int, PositionCoverage]
    soft_scores: SoftConstraintScores
    hard_constraint_violations: int = 0
    backtracking: Optional[BacktrackingStatistics] = None
    genetic: Optional[GeneticRunSummary] = None


@dataclass(frozen=True)
class SchedulingResult:
    is_success: bool
    assignments: Tuple[Assignment, ...] = ()
    statistics: Optional[SchedulingStatistics] = None
    conflicts: Tuple[ConflictInfo, ...] = ()
    conflict_details: Tuple[Any, ...] = ()
    """ConflictDto records for UI consumption."""
    diagnostic_report: Optional[BacktrackingDiagnosticReport] = None
    is_partial_result: bool = False
    is_cancelled: bool = False
    error_message: Optional[str] = None
    total_duration: timedelta = timedelta(0)
