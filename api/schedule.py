from schemas.schedule.generate import ScheduleRequest
from dataclasses import asdict
from fastapi import APIRouter, HTTPException
from scheduler.builder import build_schedule
from scheduler.extractor import extract_coverage, extract_schedule_and_summary
from scheduler.setup import build_context
from core.results import SchedulingStatistics
from exceptions.custom_errors import *
from utils.logger import logger
import traceback
from docs.schedule.roster import schedule_roster_description

router = APIRouter(prefix="/schedule", tags=["Roster"])


def statistics_payload(stats: SchedulingStatistics) -> dict:
    payload = {
        "totalAssignments": stats.total_assignments,
        "manualAssignments": stats.manual_assignments,
        "unassignedSlots": stats.unassigned_slots,
        "totalSlots": stats.total_slots,
        "hardConstraintViolations": stats.hard_constraint_violations,
        "softScores": asdict(stats.soft_scores),
        "backtracking": None,
        "genetic": None,
    }
    if stats.backtracking is not None:
        payload["backtracking"] = {
            k: v for k, v in asdict(stats.backtracking).items() if not k.startswith("_")
        }
        payload["backtracking"]["success_rate"] = stats.backtracking.success_rate
    if stats.genetic is not None:
        payload["genetic"] = asdict(stats.genetic)
    return payload


# generate roster
@router.post(
    "/generate",
    response_model=dict,
    description=schedule_roster_description,
    summary="Generate Roster",
)
async def generate_schedule(request: ScheduleRequest):
    try:
        context = build_context(request)
        result = build_schedule(
            context,
            mode=request.mode,
            ga_config=request.geneticConfig,
            backtracking_config=request.backtrackingConfig,
            options=request.options,
        )

        schedule, summary = extract_schedule_and_summary(result, context)
        coverage = extract_coverage(result)
        report = result.diagnostic_report

        # ==== final response ====
        response = {
            "schedule": schedule.reset_index().to_dict(orient="records"),
            "summary": summary.to_dict(orient="records"),
            "coverage": coverage.to_dict(orient="records"),
            "statistics": statistics_payload(result.statistics),
            "conflicts": [
                c.model_dump(mode="json", by_alias=True) for c in result.conflict_details
            ],
            "unassigned": [str(slot) for slot in report.unassigned_slots] if report else [],
            "report": report.formatted() if report else None,
            "isPartialResult": result.is_partial_result,
            "message": result.error_message,
        }
        logger.info(
            f"📤 Roster {request.startDate} to {request.endDate}: "
            f"{result.statistics.total_assignments}/{result.statistics.total_slots} slots assigned"
        )
        return response

    except tuple(CUSTOM_ERRORS) as e:
        logger.warning(f"⚠️ Rejected roster request: {e}")
        raise HTTPException(status_code=CUSTOM_ERRORS[type(e)], detail=str(e))
    except Exception as e:
        tb = traceback.format_exc()
        logger.error(f"❌ Roster generation failed: {e}")
        raise HTTPException(status_code=500, detail=f"{str(e)}\n\nTraceback:\n{tb}")
