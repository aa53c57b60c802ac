import logging
import time
from datetime import timedelta
from typing import Dict, List, Optional
import numpy as np
from core.results import *
from core.state import FairnessLedger, SchedulingContext
from exceptions.custom_errors import InvalidSchedulingInputError
from schemas.schedule.generate import (
    BacktrackingConfig,
    EngineOptions,
    GeneticAlgorithmConfigDto,
    SchedulingMode,
)
from scheduler.backtracking import BacktrackingSolver, MemorySampler, SearchState
from scheduler.diagnostics import DiagnosticsCollector
from scheduler.feasibility import FeasibilityIndex, build_feasibility_index
from scheduler.genetic import GeneticOptimizer
from scheduler.progress import ProgressCallback, ProgressReporter
from scheduler.scoring import ScoreCalculator
from scheduler.validator import ConstraintValidator
from utils.constants import NIGHT_PERIODS
from utils.validate import validate_context

logger = logging.getLogger(__name__)


def place_manual_assignments(context: SchedulingContext, index: FeasibilityIndex, ledger: FairnessLedger) -> int:
    """
    Put every active manual pin on the grid and freeze it below the rollback floor.

    Contradicting pins are rejected earlier by `validate_context`, so every
    active pin lands on the grid.

    Returns:
        int: Number of pins placed.
    """
    placed = 0
    for (day, period, position), person in sorted(context.manual_lookup.items()):
        index.assign(day, period, position, person, manual=True)
        ledger.add(person, day, period)
        placed += 1
    index.freeze_base()
    if placed:
        logger.info(f"📌 Placed {placed} manual assignment(s)")
    return placed


def build_statistics(
    context: SchedulingContext,
    grid: np.ndarray,
    locked: np.ndarray,
    scorer: ScoreCalculator,
    validator: ConstraintValidator,
    stats: Optional[BacktrackingStatistics] = None,
    genetic: Optional[GeneticRunSummary] = None,
) -> SchedulingStatistics:
    """Per-person workload, per-position coverage and overall scores of a grid."""
    assigned = grid >= 0
    workloads: Dict[int, PersonnelWorkload] = {}
    holidays = context.holiday_flags
    for n, person in enumerate(context.personnel):
        mine = grid == n
        per_period = mine.sum(axis=(0, 2))
        workloads[person.id] = PersonnelWorkload(
            personnel_id=person.id,
            personnel_name=person.name,
            total_shifts=int(mine.sum()),
            holiday_shifts=int(mine[holidays].sum()),
            night_shifts=int(per_period[list(NIGHT_PERIODS)].sum()),
            period_counts=tuple(int(c) for c in per_period),
        )
    coverages: Dict[int, PositionCoverage] = {}
    per_position = assigned.sum(axis=(0, 1))
    for pos, position in enumerate(context.positions):
        coverages[position.id] = PositionCoverage(
            position_id=position.id,
            position_name=position.name,
            total_slots=grid.shape[0] * grid.shape[1],
            assigned_slots=int(per_position[pos]),
        )
    return SchedulingStatistics(
        total_assignments=int(assigned.sum()),
        manual_assignments=int((locked & assigned).sum()),
        unassigned_slots=int((~assigned).sum()),
        total_slots=int(grid.size),
        personnel_workloads=workloads,
        position_coverages=coverages,
        soft_scores=scorer.soft_scores(grid),
        hard_constraint_violations=validator.count_hard_violations(grid, locked),
        backtracking=stats.snapshot() if stats is not None else None,
        genetic=genetic,
    )


def grid_to_assignments(context: SchedulingContext, grid: np.ndarray, locked: np.ndarray) -> List[Assignment]:
    return [
        Assignment(
            position_id=context.positions[pos].id,
            personnel_id=context.personnel[int(grid[day, period, pos])].id,
            date=context.dates[day],
            period=period,
            is_manual=bool(locked[day, period, pos]),
        )
        for day, period, pos in np.argwhere(grid >= 0).tolist()
    ]


def build_schedule(
    context: SchedulingContext,
    mode: SchedulingMode = SchedulingMode.GREEDY_ONLY,
    ga_config: Optional[GeneticAlgorithmConfigDto] = None,
    backtracking_config: Optional[BacktrackingConfig] = None,
    options: Optional[EngineOptions] = None,
    progress: Optional[ProgressCallback] = None,
    cancel_event=None,
    memory_sampler: Optional[MemorySampler] = None,
) -> SchedulingResult:
    """
    Build a guard roster for the whole horizon of `context`.

    Manual pins go on first, then each day is filled greedily with
    backtracking repair. In hybrid mode the result seeds a genetic pass.

    Args:
        context (SchedulingContext): Personnel, positions, horizon and pins.
        mode (SchedulingMode): Greedy only, or greedy followed by the GA.
        ga_config (GeneticAlgorithmConfigDto, optional): GA settings for hybrid mode.
        backtracking_config (BacktrackingConfig, optional): Repair search settings.
        options (EngineOptions, optional): Spacing rule switches.
        progress (ProgressCallback, optional): Receives SchedulingProgressReport records.
        cancel_event (optional): Anything with `is_set()`; checked cooperatively.
        memory_sampler (MemorySampler, optional): Replaces the psutil RSS probe.

    Returns:
        SchedulingResult: The roster with statistics, conflicts and, when
            slots stay empty, a diagnostic report.

    Raises:
        InvalidSchedulingInputError: If the context is rejected before the search.
    """
    started = time.monotonic()
    reporter = ProgressReporter(progress)
    hybrid = mode == SchedulingMode.HYBRID
    search_progress = reporter.scaled(0, 0.5) if hybrid else reporter
    search_progress.report(SchedulingStage.INITIALIZING, 0, "Starting")

    try:
        search_progress.report(SchedulingStage.LOADING_DATA, 2, "Checking input")
        validate_context(context)
    except InvalidSchedulingInputError as e:
        logger.error(f"❌ {e}")
        reporter.fail(str(e))
        raise

    search_progress.report(SchedulingStage.BUILDING_CONTEXT, 4, "Building context")
    logger.info(
        f"📋 Scheduling {context.num_days} day(s), {context.num_positions} position(s), "
        f"{context.num_personnel} personnel, mode {mode.value}"
    )
    options = options or EngineOptions()
    validator = ConstraintValidator(context, options)
    scorer = ScoreCalculator(context)
    ledger = FairnessLedger(context)

    search_progress.report(SchedulingStage.INITIALIZING_TENSOR, 6, "Initialising feasibility index")
    search_progress.report(SchedulingStage.APPLYING_CONSTRAINTS, 8, "Applying constraints")
    index = build_feasibility_index(context, validator)

    search_progress.report(SchedulingStage.APPLYING_MANUAL_ASSIGNMENTS, 9, "Applying manual assignments")
    place_manual_assignments(context, index, ledger)

    stats = BacktrackingStatistics()
    solver = BacktrackingSolver(
        context,
        index,
        ledger,
        scorer,
        config=backtracking_config,
        stats=stats,
        progress=search_progress,
        cancel_event=cancel_event,
        memory_sampler=memory_sampler,
    )
    outcomes = solver.solve()
    cancelled = solver.cancelled
    if solver.config.enable_consistency_verification:
        solver.verify_consistency()

    search_progress.report(SchedulingStage.UPDATING_SCORES, 92, "Scoring")
    search_progress.report(SchedulingStage.FINALIZING, 96, "Collecting diagnostics")
    grid = index.grid.copy()
    locked = index.locked.copy()

    genetic = None
    if hybrid and not cancelled:
        optimizer = GeneticOptimizer(
            context,
            validator,
            scorer,
            config=ga_config,
            progress=reporter.scaled(50, 0.5),
            cancel_event=cancel_event,
        )
        grid, genetic = optimizer.optimize(grid, locked)
        cancelled = genetic.cancelled

    diagnostics = DiagnosticsCollector(context, validator, scorer)
    start_counts = {day: o.start_counts for day, o in outcomes.items() if o.start_counts is not None}
    unassigned = diagnostics.unassigned_slots(grid, start_counts)
    conflicts = diagnostics.build_conflicts(grid, locked, unassigned)
    report = None
    if unassigned:
        reasons = [o.reason for o in outcomes.values() if o.state == SearchState.EXHAUSTED and o.reason]
        report = diagnostics.build_report(
            grid,
            unassigned,
            stats,
            solver.history,
            reasons,
            solver.config.max_backtrack_depth,
        )
        logger.debug(report.formatted())

    statistics = build_statistics(context, grid, locked, scorer, validator, stats, genetic)
    error_message = None
    if cancelled:
        error_message = "Scheduling was cancelled; the result is partial."
    elif unassigned:
        error_message = f"{len(unassigned)} slot(s) could not be assigned."

    duration = timedelta(seconds=time.monotonic() - started)
    if cancelled:
        reporter.report(SchedulingStage.FAILED, 100, "Cancelled", force=True, has_errors=True, error_message=error_message)
    else:
        reporter.report(
            SchedulingStage.COMPLETED,
            100,
            "Completed",
            force=True,
            completed_assignments=statistics.total_assignments,
            total_slots_to_assign=statistics.total_slots,
            remaining_slots=statistics.unassigned_slots,
            backtracking_stats=stats.snapshot(),
        )
    logger.info(
        f"✅ Schedule built in {duration.total_seconds():.2f}s: "
        f"{statistics.total_assignments}/{statistics.total_slots} slot(s) assigned, "
        f"{len(unassigned)} unassigned, {len(conflicts)} conflict(s)"
    )
    return SchedulingResult(
        is_success=not cancelled,
        assignments=tuple(grid_to_assignments(context, grid, locked)),
        statistics=statistics,
        conflicts=tuple(diagnostics.conflict_infos(conflicts)),
        conflict_details=tuple(conflicts),
        diagnostic_report=report,
        is_partial_result=bool(unassigned) or cancelled,
        is_cancelled=cancelled,
        error_message=error_message,
        total_duration=duration,
    )
