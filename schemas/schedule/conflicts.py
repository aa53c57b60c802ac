from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional
from datetime import datetime
from enum import Enum
import uuid


class ConflictSubType(str, Enum):
    # hard constraint conflicts
    SKILL_MISMATCH = "SkillMismatch"
    PERSONNEL_UNAVAILABLE = "PersonnelUnavailable"
    DUPLICATE_ASSIGNMENT = "DuplicateAssignment"
    # soft constraint conflicts
    INSUFFICIENT_REST = "InsufficientRest"
    EXCESSIVE_WORKLOAD = "ExcessiveWorkload"
    WORKLOAD_IMBALANCE = "WorkloadImbalance"
    CONSECUTIVE_OVERTIME = "ConsecutiveOvertime"
    # informational
    UNASSIGNED_SLOT = "UnassignedSlot"
    SUBOPTIMAL_ASSIGNMENT = "SuboptimalAssignment"
    UNKNOWN = "Unknown"


class ConflictDto(BaseModel):
    """A conflict found in a finished roster, shaped for display."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: Literal["hard", "soft", "info", "unassigned"]
    sub_type: ConflictSubType = ConflictSubType.UNKNOWN
    message: str = Field(min_length=1, max_length=500)
    detailed_message: Optional[str] = None
    position_id: Optional[int] = None
    position_name: Optional[str] = None
    personnel_id: Optional[int] = None
    personnel_name: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    period_index: Optional[int] = Field(default=None, ge=0, le=11)
    related_shift_ids: List[int] = []
    severity: int = Field(default=3, ge=1, le=5)
    is_ignored: bool = False
    is_fixable: bool = True
