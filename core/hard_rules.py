from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from scheduler.validator import ConstraintValidator


@dataclass
class HardRule:
    check: Callable[..., bool]
    """Called as check(person, position, day, period, grid); True when the rule holds."""
    message: str


def define_hard_rules(validator: "ConstraintValidator") -> dict[str, HardRule]:
    v = validator
    return {
        "Availability": HardRule(
            lambda n, pos, d, p, grid: v.validate_personnel_availability(n),
            "Personnel is unavailable or retired.",
        ),
        "Position allow-list": HardRule(
            lambda n, pos, d, p, grid: v.validate_position_allowlist(n, pos),
            "Personnel is not on the position's allow-list.",
        ),
        "Skill match": HardRule(
            lambda n, pos, d, p, grid: v.validate_skill_match(n, pos),
            "Personnel lacks a skill the position requires.",
        ),
        "Single person per shift": HardRule(
            lambda n, pos, d, p, grid: v.validate_single_person_per_shift(grid, n, pos, d, p),
            "Slot is already held by someone else.",
        ),
        "Time slot uniqueness": HardRule(
            lambda n, pos, d, p, grid: v.validate_person_time_slot_uniqueness(grid, n, pos, d, p),
            "Personnel already holds another position in this slot.",
        ),
        "Night uniqueness": HardRule(
            lambda n, pos, d, p, grid: v.validate_night_shift_uniqueness(grid, n, d, p),
            "Personnel already holds another night slot on this date.",
        ),
        "Non-consecutive": HardRule(
            lambda n, pos, d, p, grid: v.validate_non_consecutive_shifts(grid, n, d, p),
            "Personnel holds an adjacent slot.",
        ),
        "Fixed position rule": HardRule(
            lambda n, pos, d, p, grid: v.validate_fixed_assignment(n, pos, p),
            "Fixed position rule does not allow this position or slot.",
        ),
        "Manual assignment": HardRule(
            lambda n, pos, d, p, grid: v.validate_manual_assignment(n, pos, d, p),
            "Slot is pinned to someone else by a manual assignment.",
        ),
    }
