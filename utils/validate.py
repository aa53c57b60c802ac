from collections import Counter
from typing import List, Tuple, Type
from core.state import SchedulingContext
from exceptions.custom_errors import (
    InvalidDateRangeError,
    InvalidPeriodIndexError,
    InvalidSchedulingInputError,
    UnknownReferenceError,
)
from utils.constants import PERIODS_PER_DAY


def validate_context(context: SchedulingContext):
    """
    Reject a scheduling context before any search work starts.

    Every problem is collected first and reported together as a bullet list.

    Args:
        context (SchedulingContext): The context to check.

    Raises:
        InvalidDateRangeError: If the only problem is an end date before the start date.
        InvalidPeriodIndexError: If the only problems are slot indices outside [0, 11].
        UnknownReferenceError: If the only problems are ids that point nowhere.
        InvalidSchedulingInputError: For anything else, or a mix of the above.
    """
    problems: List[Tuple[Type[InvalidSchedulingInputError], str]] = []
    problems += validate_horizon(context)
    problems += validate_ids(context)
    problems += validate_periods(context)
    problems += validate_references(context)
    problems += validate_manual_pins(context)
    if not problems:
        return

    kinds = {kind for kind, _ in problems}
    error = kinds.pop() if len(kinds) == 1 else InvalidSchedulingInputError
    msg = [f"⚠️ Invalid scheduling input ({len(problems)} problem(s)):\n"]
    msg += [f"     • {text}\n" for _, text in problems]
    raise error("".join(msg))


def validate_horizon(context: SchedulingContext):
    problems = []
    if not context.personnel:
        problems.append((InvalidSchedulingInputError, "No personnel were provided."))
    if not context.positions:
        problems.append((InvalidSchedulingInputError, "No active positions were provided."))
    if context.end_date < context.start_date:
        problems.append(
            (
                InvalidDateRangeError,
                f"End date {context.end_date} is before start date {context.start_date}.",
            )
        )
    return problems


def validate_ids(context: SchedulingContext):
    problems = []
    for label, items in (("personnel", context.personnel), ("position", context.positions)):
        dupes = sorted(i for i, n in Counter(x.id for x in items).items() if n > 1)
        if dupes:
            problems.append(
                (InvalidSchedulingInputError, f"Duplicate {label} ids: {', '.join(map(str, dupes))}.")
            )
    return problems


def validate_periods(context: SchedulingContext):
    """Slot indices of manual assignments and fixed rules, enabled or not."""
    problems = []
    for m in context.manual_assignments:
        if not 0 <= m.period_index < PERIODS_PER_DAY:
            problems.append(
                (
                    InvalidPeriodIndexError,
                    f"Manual assignment of personnel {m.personnel_id} on {m.date} uses period "
                    f"{m.period_index}, expected 0-{PERIODS_PER_DAY - 1}.",
                )
            )
    for rule in context.fixed_rules:
        bad = sorted(p for p in rule.allowed_periods if not 0 <= p < PERIODS_PER_DAY)
        if bad:
            problems.append(
                (
                    InvalidPeriodIndexError,
                    f"Fixed rule of personnel {rule.personnel_id} allows periods {bad}, "
                    f"expected 0-{PERIODS_PER_DAY - 1}.",
                )
            )
    return problems


def validate_references(context: SchedulingContext):
    """Enabled rules and pins must point at known personnel and active positions."""
    problems = []
    people = {p.id for p in context.personnel}
    positions = {p.id for p in context.positions}
    for m in context.manual_assignments:
        if not m.is_enabled:
            continue
        if m.personnel_id not in people:
            problems.append(
                (UnknownReferenceError, f"Manual assignment on {m.date} refers to unknown personnel {m.personnel_id}.")
            )
        if m.position_id not in positions:
            problems.append(
                (UnknownReferenceError, f"Manual assignment on {m.date} refers to unknown position {m.position_id}.")
            )
    for rule in context.fixed_rules:
        if not rule.is_enabled:
            continue
        if rule.personnel_id not in people:
            problems.append(
                (UnknownReferenceError, f"Fixed rule refers to unknown personnel {rule.personnel_id}.")
            )
        unknown = sorted(rule.allowed_position_ids - positions)
        if unknown:
            problems.append(
                (
                    UnknownReferenceError,
                    f"Fixed rule of personnel {rule.personnel_id} refers to unknown positions {unknown}.",
                )
            )
    for pos in context.positions:
        unknown = sorted(pos.available_personnel_ids - people)
        if unknown:
            problems.append(
                (UnknownReferenceError, f"Position {pos.name} lists unknown personnel {unknown}.")
            )
    return problems


def validate_manual_pins(context: SchedulingContext):
    """
    Enabled pins inside the horizon must not contradict each other: one person
    per pinned slot, and one pinned position per person and slot.
    """
    problems = []
    slot_holder = {}
    person_post = {}
    for m in context.active_manual_assignments:
        holder = slot_holder.setdefault((m.date, m.period_index, m.position_id), m.personnel_id)
        if holder != m.personnel_id:
            problems.append(
                (
                    InvalidSchedulingInputError,
                    f"Position {m.position_id} on {m.date} period {m.period_index} is pinned to both "
                    f"personnel {holder} and {m.personnel_id}.",
                )
            )
            continue
        post = person_post.setdefault((m.date, m.period_index, m.personnel_id), m.position_id)
        if post != m.position_id:
            problems.append(
                (
                    InvalidSchedulingInputError,
                    f"Personnel {m.personnel_id} is pinned to both position {post} and {m.position_id} "
                    f"on {m.date} period {m.period_index}.",
                )
            )
    return problems
