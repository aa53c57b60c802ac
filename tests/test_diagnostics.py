"""
Tests for unassigned-slot analysis, the diagnostic report and conflict records.
"""
import numpy as np

from core.results import BacktrackingStatistics, FailureReason
from schemas.schedule.conflicts import ConflictSubType
from scheduler.diagnostics import DiagnosticsCollector, failure_reason
from scheduler.scoring import ScoreCalculator
from scheduler.validator import ConstraintValidator

ALICE, BOB, CAROL = 0, 1, 2
GATE, PATROL = 0, 1


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_collector(context):
    validator = ConstraintValidator(context)
    return DiagnosticsCollector(context, validator, ScoreCalculator(context))


def _no_locks(context):
    return np.zeros(context.shape, dtype=bool)


def _of_type(conflicts, sub_type):
    return [c for c in conflicts if c.sub_type == sub_type]


# ---------------------------------------------------------------------------
# Unassigned slots
# ---------------------------------------------------------------------------

def test_failure_reason_by_candidate_count():
    assert failure_reason(0) == FailureReason.NO_CANDIDATES
    assert failure_reason(0).value == "no candidates"
    assert failure_reason(2) == FailureReason.FEW_CANDIDATES
    assert failure_reason(3) == FailureReason.CONSTRAINT_CONFLICT


def test_unassigned_slots_fall_back_to_static_counts(skilled_context):
    collector = _make_collector(skilled_context)
    slots = collector.unassigned_slots(skilled_context.empty_grid())
    assert len(slots) == 24
    gate = [s for s in slots if s.position_idx == GATE]
    patrol = [s for s in slots if s.position_idx == PATROL]
    assert {s.candidate_count for s in gate} == {1}
    assert {s.failure_reason for s in gate} == {FailureReason.FEW_CANDIDATES}
    assert {s.candidate_count for s in patrol} == {3}
    assert "required skills: 1" in gate[0].constraint_details
    # chronological order
    assert [s.period_idx for s in slots[:4]] == [0, 0, 1, 1]


def test_unassigned_slots_use_start_of_day_counts(skilled_context):
    collector = _make_collector(skilled_context)
    counts = np.zeros((12, 2), dtype=int)
    slots = collector.unassigned_slots(skilled_context.empty_grid(), {0: counts})
    assert all(s.candidate_count == 0 for s in slots)
    assert all(s.failure_reason == FailureReason.NO_CANDIDATES for s in slots)
    assert "night slot" in slots[0].constraint_details
    assert "Gate" in str(slots[0]) and "00:00-02:00" in str(slots[0])


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

def test_report_for_complete_roster(skilled_context):
    collector = _make_collector(skilled_context)
    grid = skilled_context.empty_grid()
    grid[:] = 0
    report = collector.build_report(grid, [])
    assert report.has_complete_solution
    assert report.completion_rate == 100.0
    assert report.recommendations == ("The roster is complete, no adjustment needed.",)


def test_report_explains_missing_candidates(skilled_context):
    collector = _make_collector(skilled_context)
    grid = skilled_context.empty_grid()
    slots = collector.unassigned_slots(grid, {0: np.zeros((12, 2), dtype=int)})
    stats = BacktrackingStatistics()
    stats.record_backtrack(45, False)
    stats.record_memory_pressure()
    history = [f"entry {i}" for i in range(15)]
    report = collector.build_report(grid, slots, stats, history, ["memory pressure"], max_backtrack_depth=50)

    assert not report.has_complete_solution
    assert report.completion_rate == 0.0
    assert report.unassigned_by_position == {"Gate": 12, "Patrol": 12}
    assert report.unassigned_by_reason == {"no candidates": 24}
    assert report.backtrack_history == tuple(history[-10:])
    assert "Slots without any candidate: 24" in report.failure_analysis
    assert "memory pressure" in report.failure_analysis
    recs = "\n".join(report.recommendations)
    assert "24 slot(s) have no candidate:" in recs
    assert "depth limit" in recs
    assert "Completion is low:" in recs
    assert "Memory pressure was detected:" in recs
    # report keeps a detached copy of the counters
    stats.record_backtrack(1, True)
    assert report.statistics.total_backtracks == 1

    text = report.formatted()
    assert "Status: partial" in text
    assert "... 14 more" in text


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------

def test_unassigned_conflicts_have_deterministic_ids(skilled_context):
    collector = _make_collector(skilled_context)
    grid = skilled_context.empty_grid()
    slots = collector.unassigned_slots(grid)
    first = collector.build_conflicts(grid, _no_locks(skilled_context), slots)
    second = collector.build_conflicts(grid, _no_locks(skilled_context), slots)
    assert [c.id for c in first] == [c.id for c in second]
    assert first[0].id == "UnassignedSlot-1"
    assert len(_of_type(first, ConflictSubType.UNASSIGNED_SLOT)) == 24
    assert {c.severity for c in first} == {4}
    assert all(c.type == "unassigned" and c.is_fixable for c in first)


def test_zero_candidate_slots_are_severity_five(skilled_context):
    collector = _make_collector(skilled_context)
    grid = skilled_context.empty_grid()
    slots = collector.unassigned_slots(grid, {0: np.zeros((12, 2), dtype=int)})
    conflicts = collector.build_conflicts(grid, _no_locks(skilled_context), slots)
    assert {c.severity for c in conflicts} == {5}
    assert not any(c.is_fixable for c in conflicts)


def test_hard_conflict_for_skill_mismatch(skilled_context):
    collector = _make_collector(skilled_context)
    grid = skilled_context.empty_grid()
    grid[0, 5, GATE] = BOB
    conflicts = collector.build_conflicts(grid, _no_locks(skilled_context))
    hard = _of_type(conflicts, ConflictSubType.SKILL_MISMATCH)
    assert len(hard) == 1
    assert hard[0].type == "hard" and hard[0].severity == 5
    assert hard[0].personnel_name == "Bob"
    assert hard[0].period_index == 5
    assert hard[0].start_time.hour == 10 and hard[0].end_time.hour == 12
    assert "lacks a skill" in hard[0].detailed_message


def test_manual_override_is_informational(skilled_context):
    collector = _make_collector(skilled_context)
    grid = skilled_context.empty_grid()
    grid[0, 3, GATE] = BOB
    locked = _no_locks(skilled_context)
    locked[0, 3, GATE] = True
    conflicts = collector.build_conflicts(grid, locked)
    assert not [c for c in conflicts if c.type == "hard"]
    pinned = _of_type(conflicts, ConflictSubType.SKILL_MISMATCH)
    assert len(pinned) == 1
    assert pinned[0].type == "info" and pinned[0].severity == 2
    assert not pinned[0].is_fixable


def test_rest_and_workload_conflicts(skilled_context):
    collector = _make_collector(skilled_context)
    grid = skilled_context.empty_grid()
    for period in (0, 3, 5, 7, 9):
        grid[0, period, PATROL] = CAROL
    conflicts = collector.build_conflicts(grid, _no_locks(skilled_context))

    rest = _of_type(conflicts, ConflictSubType.INSUFFICIENT_REST)
    assert [c.period_index for c in rest] == [5, 7, 9]
    assert all(c.severity == 2 and c.type == "soft" for c in rest)
    assert "4h" in rest[0].message
    assert len(_of_type(conflicts, ConflictSubType.EXCESSIVE_WORKLOAD)) == 1
    assert len(_of_type(conflicts, ConflictSubType.WORKLOAD_IMBALANCE)) == 1
    overtime = _of_type(conflicts, ConflictSubType.CONSECUTIVE_OVERTIME)
    assert len(overtime) == 1 and overtime[0].severity == 3
    assert not _of_type(conflicts, ConflictSubType.DUPLICATE_ASSIGNMENT)


def test_recently_held_slot_is_suboptimal(week_context):
    collector = _make_collector(week_context)
    grid = week_context.empty_grid()
    grid[0, 4, GATE] = 0
    grid[1, 4, GATE] = 0
    conflicts = collector.build_conflicts(grid, _no_locks(week_context))
    sub = _of_type(conflicts, ConflictSubType.SUBOPTIMAL_ASSIGNMENT)
    assert len(sub) == 1
    assert sub[0].severity == 1 and sub[0].type == "info"
    assert sub[0].start_time.day == 7


def test_conflict_infos_mirror_conflicts(skilled_context):
    collector = _make_collector(skilled_context)
    grid = skilled_context.empty_grid()
    grid[0, 5, GATE] = BOB
    conflicts = collector.build_conflicts(grid, _no_locks(skilled_context))
    infos = collector.conflict_infos(conflicts)
    assert len(infos) == len(conflicts)
    assert infos[0].conflict_type == "SkillMismatch"
    assert infos[0].position_name == "Gate"
    assert infos[0].date == skilled_context.start_date
