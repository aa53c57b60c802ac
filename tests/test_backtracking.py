"""
Tests for the backtracking solver, its path memo and the memory monitor.

Most tests use a trap day: three positions in period 0 only, where the
greedy choice for the first position (X) starves the third one, and one
backtrack to Y on the first position resolves it.

    A accepts {X, Y}, B accepts {X, Z}, C accepts {X, Z}
"""
import pytest

from core.results import BacktrackingStatistics
from core.state import FairnessLedger
from schemas.schedule.generate import BacktrackingConfig
from scheduler.backtracking import (
    BacktrackingSolver,
    MemoryMonitor,
    PathMemo,
    SearchState,
)
from scheduler.feasibility import build_feasibility_index
from scheduler.scoring import ScoreCalculator

X, Y, Z = 0, 1, 2
A, B, C = 0, 1, 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _trap_context(make_context, make_person, make_position):
    positions = [
        make_position(10, "A", allow={1, 2}),
        make_position(20, "B", allow={1, 3}),
        make_position(30, "C", allow={1, 3}),
    ]
    personnel = [make_person(1, "X"), make_person(2, "Y"), make_person(3, "Z")]
    return make_context(positions, personnel)


def _make_solver(context, config=None, only_period_zero=False, **kwargs):
    index = build_feasibility_index(context)
    if only_period_zero:
        index.tensor[:, 1:] = False
    index.freeze_base()
    ledger = FairnessLedger(context)
    solver = BacktrackingSolver(context, index, ledger, ScoreCalculator(context), config=config, **kwargs)
    return solver, index


def _assert_counters_consistent(stats: BacktrackingStatistics):
    assert stats.successful_backtracks + stats.failed_backtracks == stats.total_backtracks


@pytest.fixture
def trap(make_context, make_person, make_position):
    """Context of the trap day."""
    return _trap_context(make_context, make_person, make_position)


# ---------------------------------------------------------------------------
# Solver
# ---------------------------------------------------------------------------

def test_backtrack_resolves_trap(trap):
    solver, index = _make_solver(trap, only_period_zero=True)
    outcomes = solver.solve()
    assert outcomes[0].state == SearchState.SUCCESS
    assert index.grid[0, 0].tolist() == [Y, X, Z]

    stats = solver.stats
    assert stats.total_backtracks == 1
    assert stats.successful_backtracks == 1
    assert stats.max_depth_reached == 2
    assert stats.dead_end_detections == 1
    assert stats.smart_backtrack_selections == 1
    assert stats.total_candidates_tried == 1
    assert stats.snapshots_created == 5
    assert stats.state_restores == 2
    assert stats.success_rate == 100.0
    _assert_counters_consistent(stats)
    assert len(solver.history) == 1
    assert "X -> Y" in solver.history[0]


def test_ledger_follows_undo(trap):
    solver, _ = _make_solver(trap, only_period_zero=True)
    solver.solve()
    assert [solver.ledger.shift_count(n) for n in (X, Y, Z)] == [1, 1, 1]


def test_greedy_only_keeps_first_fill(trap):
    config = BacktrackingConfig(enable_backtracking=False)
    solver, index = _make_solver(trap, config, only_period_zero=True)
    outcomes = solver.solve()
    assert outcomes[0].state == SearchState.EXHAUSTED
    assert outcomes[0].reason == "backtracking disabled"
    assert index.grid[0, 0].tolist() == [X, Z, -1]
    assert solver.stats.total_backtracks == 0
    assert solver.stats.dead_end_detections == 1


def test_depth_limit_exhausts_and_restores_best_partial(trap):
    config = BacktrackingConfig(max_backtrack_depth=1)
    solver, index = _make_solver(trap, config, only_period_zero=True)
    outcomes = solver.solve()
    assert outcomes[0].state == SearchState.EXHAUSTED
    assert "exceeds the maximum of 1" in outcomes[0].reason
    # best partial fill is put back
    assert index.grid[0, 0].tolist() == [X, Z, -1]
    assert solver.stats.failed_backtracks == 1
    _assert_counters_consistent(solver.stats)


def test_non_smart_selection_records_skipped_frames(trap):
    config = BacktrackingConfig(enable_smart_backtrack_selection=False)
    solver, index = _make_solver(trap, config, only_period_zero=True)
    solver.solve()
    stats = solver.stats
    assert index.grid[0, 0].tolist() == [Y, X, Z]
    # the skipped frame counts towards the depth of the one backtrack
    assert stats.total_backtracks == 1
    assert stats.successful_backtracks == 1
    assert stats.skipped_frames == 1
    assert stats.smart_backtrack_selections == 0
    assert stats.max_depth_reached == 2
    assert "skipped" in solver.history[0]
    assert "X -> Y" in solver.history[1]
    _assert_counters_consistent(stats)


def test_depth_limit_applies_without_smart_selection(trap):
    config = BacktrackingConfig(enable_smart_backtrack_selection=False, max_backtrack_depth=1)
    solver, index = _make_solver(trap, config, only_period_zero=True)
    outcomes = solver.solve()
    assert outcomes[0].state == SearchState.EXHAUSTED
    assert "exceeds the maximum of 1" in outcomes[0].reason
    assert index.grid[0, 0].tolist() == [X, Z, -1]
    assert solver.stats.skipped_frames == 1
    _assert_counters_consistent(solver.stats)


def test_start_of_day_empty_triples_are_not_dead_ends(trap):
    solver, index = _make_solver(trap, only_period_zero=True)
    outcomes = solver.solve()
    counts = outcomes[0].start_counts
    assert counts[0].tolist() == [2, 2, 2]
    assert not counts[1:].any()
    # periods 1-11 stay empty without triggering extra backtracks
    assert (index.grid[0, 1:] == -1).all()
    assert solver.stats.dead_end_detections == 1


def test_backtrack_budget_exhausts(skilled_context):
    config = BacktrackingConfig(max_total_backtracks=3)
    solver, index = _make_solver(skilled_context, config)
    outcomes = solver.solve()
    assert outcomes[0].state == SearchState.EXHAUSTED
    assert "budget of 3" in outcomes[0].reason
    assert solver.stats.total_backtracks <= 3 + 1
    _assert_counters_consistent(solver.stats)
    assert not solver.verify_consistency()


def test_cancellation_stops_the_search(week_context, cancel_event):
    cancel_event.set()
    solver, index = _make_solver(week_context, cancel_event=cancel_event)
    outcomes = solver.solve()
    assert solver.cancelled
    assert list(outcomes) == [0]
    assert (index.grid == -1).all()


def test_solver_fills_feasible_week(week_context):
    solver, index = _make_solver(week_context)
    outcomes = solver.solve()
    assert all(o.state == SearchState.SUCCESS for o in outcomes.values())
    assert (index.grid >= 0).all()
    assert solver.stats.total_backtracks == 0
    assert solver.verify_consistency() == []


# ---------------------------------------------------------------------------
# Memory pressure
# ---------------------------------------------------------------------------

def test_memory_pressure_degrades_search(trap):
    config = BacktrackingConfig(memory_check_interval=1, memory_threshold_mb=500)
    solver, index = _make_solver(trap, config, only_period_zero=True, memory_sampler=lambda: 1000.0)
    solver.solve()
    stats = solver.stats
    # the third decision completes the streak
    assert stats.memory_pressure_events == 1
    assert stats.peak_memory_usage_mb == 1000.0
    assert not solver.memo.enabled
    assert solver.greedy.max_candidates == 2
    assert index.grid[0, 0].tolist() == [Y, X, Z]


def test_memory_monitor_samples_on_interval():
    stats = BacktrackingStatistics()
    samples = iter([100.0, 900.0, 900.0, 900.0, 900.0, 100.0])
    monitor = MemoryMonitor(2, 500, stats, sampler=lambda: next(samples))
    events = [monitor.tick() for _ in range(12)]
    # samples taken on every second tick
    assert events.count(True) == 1
    assert events[7]
    assert stats.memory_pressure_events == 1
    assert stats.peak_memory_usage_mb == 900.0
    assert stats.current_memory_usage_mb == 100.0
    assert not monitor.under_pressure


# ---------------------------------------------------------------------------
# Path memo
# ---------------------------------------------------------------------------

def test_path_memo_evicts_least_recent():
    memo = PathMemo(2)
    memo.add(b"a")
    memo.add(b"b")
    assert b"a" in memo
    memo.add(b"c")
    assert b"b" not in memo
    assert b"a" in memo and b"c" in memo
    assert len(memo) == 2


def test_disabled_memo_remembers_nothing():
    memo = PathMemo(10)
    memo.add(b"a")
    memo.disable()
    memo.add(b"b")
    assert len(memo) == 0
    assert b"a" not in memo


def test_memo_remembers_abandoned_states(trap):
    solver, _ = _make_solver(trap, only_period_zero=True)
    fingerprint = solver.fingerprint(0)
    assert isinstance(fingerprint, bytes) and len(fingerprint) == 16
    solver.solve()
    # both popped states are remembered
    assert len(solver.memo) == 2


def test_config_non_positive_values_fall_back_to_defaults():
    config = BacktrackingConfig(max_backtrack_depth=0, memory_threshold_mb=-5, max_candidates_per_decision=3)
    default = BacktrackingConfig()
    assert config.max_backtrack_depth == default.max_backtrack_depth
    assert config.memory_threshold_mb == default.memory_threshold_mb
    assert config.max_candidates_per_decision == 3
    assert BacktrackingConfig.model_validate({"maxBacktrackDepth": -1}).max_backtrack_depth == default.max_backtrack_depth
