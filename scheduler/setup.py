import logging
from core.models import (
    FixedPositionRule,
    HolidayConfig,
    ManualAssignment,
    Personnel,
    Position,
)
from core.state import SchedulingContext
from schemas.schedule.generate import (
    FixedPositionRuleModel,
    HolidayConfigModel,
    ManualAssignmentModel,
    PersonnelModel,
    PositionModel,
    ScheduleRequest,
)
from utils.constants import PERIODS_PER_DAY

logger = logging.getLogger(__name__)


def to_personnel(model: PersonnelModel) -> Personnel:
    intervals = model.recentPeriodShiftIntervals or [None] * PERIODS_PER_DAY
    return Personnel(
        id=model.id,
        name=model.name,
        skill_ids=frozenset(model.skillIds),
        is_available=model.isAvailable,
        is_retired=model.isRetired,
        recent_shift_interval=model.recentShiftInterval,
        recent_holiday_shift_interval=model.recentHolidayShiftInterval,
        recent_period_shift_intervals=tuple(intervals),
    )


def to_position(model: PositionModel) -> Position:
    return Position(
        id=model.id,
        name=model.name,
        location=model.location,
        description=model.description,
        required_skill_ids=frozenset(model.requiredSkillIds),
        available_personnel_ids=frozenset(model.availablePersonnelIds),
        is_active=model.isActive,
    )


def to_fixed_rule(model: FixedPositionRuleModel) -> FixedPositionRule:
    return FixedPositionRule(
        personnel_id=model.personnelId,
        allowed_position_ids=frozenset(model.allowedPositionIds),
        allowed_periods=frozenset(model.allowedPeriods),
        is_enabled=model.isEnabled,
        description=model.description,
    )


def to_manual_assignment(model: ManualAssignmentModel) -> ManualAssignment:
    return ManualAssignment(
        position_id=model.positionId,
        period_index=model.periodIndex,
        personnel_id=model.personnelId,
        date=model.date,
        is_enabled=model.isEnabled,
        remarks=model.remarks,
    )


def to_holiday_config(model: HolidayConfigModel) -> HolidayConfig:
    return HolidayConfig(
        enable_weekend_rule=model.enableWeekendRule,
        weekend_days=frozenset(model.weekendDays),
        legal_holidays=frozenset(model.legalHolidays),
        custom_holidays=frozenset(model.customHolidays),
        excluded_dates=frozenset(model.excludedDates),
    )


def build_context(request: ScheduleRequest) -> SchedulingContext:
    """
    Convert an API request into the engine's immutable context.

    Args:
        request (ScheduleRequest): Validated request payload.

    Returns:
        SchedulingContext: Context with inactive positions dropped.
    """
    context = SchedulingContext(
        positions=tuple(to_position(p) for p in request.positions),
        personnel=tuple(to_personnel(p) for p in request.personnel),
        start_date=request.startDate,
        end_date=request.endDate,
        fixed_rules=tuple(to_fixed_rule(r) for r in request.fixedRules),
        manual_assignments=tuple(to_manual_assignment(m) for m in request.manualAssignments),
        holiday_config=to_holiday_config(request.holidayConfig),
    )
    logger.info(
        f"📋 Context: {context.num_personnel} personnel, {context.num_positions} active position(s), "
        f"{request.startDate} to {request.endDate}"
    )
    return context
