from core.state import SchedulingContext

"""
Rules about who may stand on which position at all, independent of the date,
slot, or any other assignment.
"""


def apply_availability(index, context: SchedulingContext):
    """Unavailable and retired personnel get no placements."""
    mask = index.validator.availability_mask()
    index.tensor &= mask[None, None, None, :]


def apply_position_allowlist(index, context: SchedulingContext):
    """Positions with an allow-list only accept the listed personnel."""
    mask = index.validator.allowlist_mask()
    index.tensor &= mask[None, None, :, :]


def apply_skill_requirements(index, context: SchedulingContext):
    """
    Personnel must hold every skill a position requires. A position with no
    required skills accepts anyone.
    """
    mask = index.validator.skill_mask()
    index.tensor &= mask[None, None, :, :]
