import logging
from core.state import SchedulingContext
from utils.shift_utils import check_period

"""
This module contains the rules for fixed position rules and manual
assignments. Manual pins win over every other rule: the pinned person stays a
candidate for the pinned slot even if they lack the skills.
"""

logger = logging.getLogger(__name__)


def apply_fixed_position_rules(index, context: SchedulingContext):
    """
    Restrict personnel with enabled fixed rules to the positions and slots the
    rules allow. A person passes when any one of their rules allows the pair.
    """
    if not context.rules_by_person:
        return
    mask = index.validator.fixed_rule_mask()
    index.tensor &= mask[None, :, :, :]


def apply_manual_assignments(index, context: SchedulingContext):
    """
    Reserve each pinned slot for its pinned person.

    The slot keeps only the pinned person as candidate, overriding the
    eligibility rules. The actual placement happens later through
    `FeasibilityIndex.assign`, which also blocks the person elsewhere.
    """
    for (day, period, position), person in context.manual_lookup.items():
        check_period(period)
        index.tensor[day, period, position, :] = False
        index.tensor[day, period, position, person] = True
    if context.manual_lookup:
        logger.debug(f"Reserved {len(context.manual_lookup)} manually pinned slots")
