"""
Pytest configuration and fixtures for the guard roster engine tests.

This module provides shared fixtures for:
- Factories for personnel, positions and scheduling contexts
- A small default context (one weekday, two positions, three people)
- A cancellation event
"""
import threading
from datetime import date

import pytest

from core.models import Personnel, Position
from core.state import SchedulingContext

# A Monday, so the default horizon has no rest day
MONDAY = date(2025, 1, 6)


def _make_person(pid, name=None, skills=(), **kwargs):
    """Create an available, non-retired person."""
    return Personnel(id=pid, name=name or f"Guard {pid}", skill_ids=frozenset(skills), **kwargs)


def _make_position(pid, name=None, skills=(), allow=(), **kwargs):
    """Create an active position."""
    return Position(
        id=pid,
        name=name or f"Post {pid}",
        required_skill_ids=frozenset(skills),
        available_personnel_ids=frozenset(allow),
        **kwargs,
    )


def _make_context(positions, personnel, start=MONDAY, end=None, **kwargs):
    """Create a context covering start..end (one day by default)."""
    return SchedulingContext(
        positions=tuple(positions),
        personnel=tuple(personnel),
        start_date=start,
        end_date=end or start,
        **kwargs,
    )


@pytest.fixture
def make_person():
    """Factory for Personnel records."""
    return _make_person


@pytest.fixture
def make_position():
    """Factory for Position records."""
    return _make_position


@pytest.fixture
def make_context():
    """Factory for SchedulingContext objects."""
    return _make_context


@pytest.fixture
def skilled_context():
    """
    One day, two positions: "Gate" requires skill 1, "Patrol" accepts anyone.

    Only the first of the three guards holds skill 1.
    """
    positions = [_make_position(10, "Gate", skills={1}), _make_position(20, "Patrol")]
    personnel = [_make_person(1, "Alice", skills={1}), _make_person(2, "Bob"), _make_person(3, "Carol")]
    return _make_context(positions, personnel)


@pytest.fixture
def week_context():
    """Seven days (ending on a weekend), two open positions, ten guards without skills."""
    positions = [_make_position(10, "Gate"), _make_position(20, "Patrol")]
    personnel = [_make_person(i) for i in range(1, 11)]
    return _make_context(positions, personnel, end=date(2025, 1, 12))


@pytest.fixture
def cancel_event():
    """A cancellation token that tests can set."""
    return threading.Event()
