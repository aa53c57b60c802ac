"""
Tests for up-front input validation.
"""
from dataclasses import replace
from datetime import date

import pytest

from core.models import FixedPositionRule, ManualAssignment
from exceptions.custom_errors import (
    InvalidDateRangeError,
    InvalidPeriodIndexError,
    InvalidSchedulingInputError,
    UnknownReferenceError,
)
from utils.validate import validate_context


def test_valid_context_passes(skilled_context):
    assert validate_context(skilled_context) is None


def test_end_before_start(skilled_context):
    context = replace(skilled_context, end_date=date(2025, 1, 5))
    with pytest.raises(InvalidDateRangeError, match="before start date"):
        validate_context(context)


def test_empty_inputs(make_context, make_person, make_position):
    with pytest.raises(InvalidSchedulingInputError, match="No personnel"):
        validate_context(make_context([make_position(10)], []))
    # inactive positions do not count
    with pytest.raises(InvalidSchedulingInputError, match="No active positions"):
        validate_context(make_context([make_position(10, is_active=False)], [make_person(1)]))


def test_manual_period_outside_day(skilled_context):
    pin = ManualAssignment(position_id=20, period_index=12, personnel_id=1, date=date(2025, 1, 6))
    with pytest.raises(InvalidPeriodIndexError, match="period 12"):
        validate_context(replace(skilled_context, manual_assignments=(pin,)))


def test_fixed_rule_period_outside_day(skilled_context):
    rule = FixedPositionRule(personnel_id=1, allowed_periods=frozenset({-1, 4}))
    with pytest.raises(InvalidPeriodIndexError, match=r"\[-1\]"):
        validate_context(replace(skilled_context, fixed_rules=(rule,)))


def test_unknown_references(skilled_context):
    pin = ManualAssignment(position_id=99, period_index=3, personnel_id=1, date=date(2025, 1, 6))
    rule = FixedPositionRule(personnel_id=77)
    with pytest.raises(UnknownReferenceError) as err:
        validate_context(replace(skilled_context, manual_assignments=(pin,), fixed_rules=(rule,)))
    assert "unknown position 99" in str(err.value)
    assert "unknown personnel 77" in str(err.value)
    assert "(2 problem(s))" in str(err.value)


def test_disabled_references_are_ignored(skilled_context):
    pin = ManualAssignment(position_id=99, period_index=3, personnel_id=1, date=date(2025, 1, 6), is_enabled=False)
    validate_context(replace(skilled_context, manual_assignments=(pin,)))


def test_mixed_problems_are_reported_together(make_context, make_person, make_position):
    context = make_context(
        [make_position(10), make_position(10)],
        [make_person(1)],
        end=date(2025, 1, 1),
        fixed_rules=(FixedPositionRule(personnel_id=5),),
    )
    with pytest.raises(InvalidSchedulingInputError) as err:
        validate_context(context)
    # several kinds of problem, so the base class is raised
    assert type(err.value) is InvalidSchedulingInputError
    message = str(err.value)
    assert "(3 problem(s))" in message
    assert message.count("•") == 3
    assert "Duplicate position ids: 10" in message


def test_person_pinned_to_two_posts_in_one_slot(skilled_context):
    pins = (
        ManualAssignment(position_id=10, period_index=3, personnel_id=2, date=date(2025, 1, 6)),
        ManualAssignment(position_id=20, period_index=3, personnel_id=2, date=date(2025, 1, 6)),
    )
    with pytest.raises(InvalidSchedulingInputError, match="pinned to both position 10 and 20") as err:
        validate_context(replace(skilled_context, manual_assignments=pins))
    assert type(err.value) is InvalidSchedulingInputError


def test_two_people_pinned_to_one_slot(skilled_context):
    pins = (
        ManualAssignment(position_id=20, period_index=5, personnel_id=2, date=date(2025, 1, 6)),
        ManualAssignment(position_id=20, period_index=5, personnel_id=3, date=date(2025, 1, 6)),
    )
    with pytest.raises(InvalidSchedulingInputError, match="pinned to both personnel 2 and 3"):
        validate_context(replace(skilled_context, manual_assignments=pins))


def test_repeated_and_disabled_pins_do_not_contradict(skilled_context):
    pin = ManualAssignment(position_id=20, period_index=5, personnel_id=2, date=date(2025, 1, 6))
    other = replace(pin, personnel_id=3, is_enabled=False)
    validate_context(replace(skilled_context, manual_assignments=(pin, pin, other)))
