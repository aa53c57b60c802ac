import logging
from typing import Tuple
import pandas as pd
from core.results import SchedulingResult
from core.state import SchedulingContext
from utils.constants import PERIODS_PER_DAY
from utils.shift_utils import period_label

logger = logging.getLogger(__name__)


def extract_schedule(result: SchedulingResult, context: SchedulingContext) -> pd.DataFrame:
    """
    Roster grid with one row per (date, period) and one column per position.

    Cells hold personnel names; manual assignments are marked with '*' and
    unassigned slots are left empty.
    """
    names = {p.id: p.name for p in context.personnel}
    columns = [p.name for p in context.positions]
    position_names = {p.id: p.name for p in context.positions}
    index = pd.MultiIndex.from_product(
        [[d.strftime("%a %Y-%m-%d") for d in context.dates], [period_label(p) for p in range(PERIODS_PER_DAY)]],
        names=["Date", "Period"],
    )
    schedule = pd.DataFrame("", index=index, columns=columns)
    for a in result.assignments:
        label = names[a.personnel_id] + ("*" if a.is_manual else "")
        schedule.loc[(a.date.strftime("%a %Y-%m-%d"), period_label(a.period)), position_names[a.position_id]] = label
    return schedule


def extract_summary(result: SchedulingResult) -> pd.DataFrame:
    """Per-person workload table, busiest first."""
    if result.statistics is None:
        return pd.DataFrame(columns=["id", "name", "Total Shifts", "Holiday Shifts", "Night Shifts"])
    rows = [
        {
            "id": w.personnel_id,
            "name": w.personnel_name,
            "Total Shifts": w.total_shifts,
            "Holiday Shifts": w.holiday_shifts,
            "Night Shifts": w.night_shifts,
        }
        for w in result.statistics.personnel_workloads.values()
    ]
    summary = pd.DataFrame(rows)
    return summary.sort_values(by=["Total Shifts", "id"], ascending=[False, True]).reset_index(drop=True)


def extract_coverage(result: SchedulingResult) -> pd.DataFrame:
    if result.statistics is None:
        return pd.DataFrame(columns=["id", "name", "Assigned", "Total", "Coverage %"])
    return pd.DataFrame(
        [
            {
                "id": c.position_id,
                "name": c.position_name,
                "Assigned": c.assigned_slots,
                "Total": c.total_slots,
                "Coverage %": round(c.coverage_rate, 1),
            }
            for c in result.statistics.position_coverages.values()
        ]
    )


def extract_schedule_and_summary(result: SchedulingResult, context: SchedulingContext) -> Tuple[pd.DataFrame, pd.DataFrame]:
    schedule = extract_schedule(result, context)
    summary = extract_summary(result)
    logger.debug(f"Extracted schedule {schedule.shape} and summary {summary.shape}")
    return schedule, summary
