from pydantic import BaseModel, model_validator, field_validator, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import List, Optional, Any
from datetime import date
from enum import Enum
from utils.constants import *


class SchedulingMode(str, Enum):
    GREEDY_ONLY = "GreedyOnly"
    HYBRID = "Hybrid"


class SelectionStrategyType(str, Enum):
    ROULETTE_WHEEL = "RouletteWheel"
    TOURNAMENT = "Tournament"


class CrossoverStrategyType(str, Enum):
    UNIFORM = "Uniform"
    SINGLE_POINT = "SinglePoint"


class MutationStrategyType(str, Enum):
    SWAP = "Swap"


# Engine configuration
class GeneticAlgorithmConfigDto(BaseModel):
    """Settings of the genetic refinement pass. Out-of-range values are rejected."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    population_size: int = Field(default=POPULATION_SIZE, ge=10, le=200)
    max_generations: int = Field(default=MAX_GENERATIONS, ge=10, le=500)
    crossover_rate: float = Field(default=CROSSOVER_RATE, ge=0.0, le=1.0)
    mutation_rate: float = Field(default=MUTATION_RATE, ge=0.0, le=1.0)
    elite_count: int = Field(default=ELITE_COUNT, ge=0, le=10)
    selection_strategy: SelectionStrategyType = SelectionStrategyType.TOURNAMENT
    crossover_strategy: CrossoverStrategyType = CrossoverStrategyType.UNIFORM
    mutation_strategy: MutationStrategyType = MutationStrategyType.SWAP
    tournament_size: int = Field(default=TOURNAMENT_SIZE, ge=2, le=20)
    hard_constraint_penalty_weight: float = Field(default=HARD_CONSTRAINT_PENALTY, ge=0.0)
    unassigned_penalty_weight: float = Field(default=UNASSIGNED_PENALTY, ge=0.0)
    # stop early when the best fitness has not improved for this many generations
    convergence_patience: Optional[int] = Field(default=None, ge=1)
    evaluation_workers: int = Field(default=1, ge=1, le=32)
    seed: int = GA_SEED

    @model_validator(mode="after")
    def check_elites_fit(self) -> "GeneticAlgorithmConfigDto":
        if self.elite_count >= self.population_size:
            raise ValueError(
                f"eliteCount ({self.elite_count}) must be smaller than populationSize ({self.population_size})."
            )
        return self


class BacktrackingConfig(BaseModel):
    """
    Settings of the backtracking repair search.

    Numeric settings that are zero or negative fall back to their defaults
    instead of failing validation.
    """

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    enable_backtracking: bool = True
    max_backtrack_depth: int = Field(default=MAX_BACKTRACK_DEPTH)
    max_candidates_per_decision: int = Field(default=MAX_CANDIDATES_PER_DECISION)
    enable_smart_backtrack_selection: bool = True
    enable_path_memory: bool = True
    max_memo_entries: int = Field(default=MAX_MEMO_ENTRIES)
    memory_check_interval: int = Field(default=MEMORY_CHECK_INTERVAL)
    memory_threshold_mb: float = Field(default=MEMORY_THRESHOLD_MB)
    max_total_backtracks: int = Field(default=MAX_TOTAL_BACKTRACKS)
    time_budget_seconds: float = Field(default=TIME_BUDGET_SECONDS)
    log_backtracking: bool = True
    enable_consistency_verification: bool = False

    @model_validator(mode="before")
    @classmethod
    def drop_non_positive(cls, values: Any) -> Any:
        """Remove non-positive numbers so the field default applies."""
        if not isinstance(values, dict):
            return values
        cleaned = dict(values)
        for key, value in values.items():
            if isinstance(value, bool):
                continue
            if isinstance(value, (int, float)) and value <= 0:
                cleaned.pop(key)
        return cleaned


class EngineOptions(BaseModel):
    """Switches for the spacing rules between a person's shifts."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    enforce_non_consecutive: bool = True
    enforce_night_uniqueness: bool = True


# Request payload
class PersonnelModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    skillIds: List[int] = []
    isAvailable: bool = True
    isRetired: bool = False
    recentShiftInterval: Optional[int] = None
    recentHolidayShiftInterval: Optional[int] = None
    recentPeriodShiftIntervals: Optional[List[Optional[int]]] = None

    @field_validator("recentPeriodShiftIntervals")
    @classmethod
    def check_period_intervals(cls, value):
        if value is not None and len(value) != PERIODS_PER_DAY:
            raise ValueError(
                f"recentPeriodShiftIntervals must have {PERIODS_PER_DAY} entries, got {len(value)}."
            )
        return value


class PositionModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    location: str = ""
    description: str = ""
    requiredSkillIds: List[int] = []
    availablePersonnelIds: List[int] = []
    isActive: bool = True


class FixedPositionRuleModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    personnelId: int
    allowedPositionIds: List[int] = []
    allowedPeriods: List[int] = []
    isEnabled: bool = True
    description: str = ""


class ManualAssignmentModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    positionId: int
    # range is checked by the engine so the whole request reports together
    periodIndex: int
    personnelId: int
    date: date
    isEnabled: bool = True
    remarks: str = ""


class HolidayConfigModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    enableWeekendRule: bool = True
    weekendDays: List[int] = Field(default=list(WEEKEND_DAYS))
    legalHolidays: List[date] = []
    customHolidays: List[date] = []
    excludedDates: List[date] = []

    @field_validator("weekendDays")
    @classmethod
    def check_weekdays(cls, value: List[int]) -> List[int]:
        bad = [d for d in value if d < 0 or d > 6]
        if bad:
            raise ValueError(f"weekendDays must be weekday numbers 0-6 (Monday = 0), got {bad}.")
        return value


class ScheduleRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    startDate: date
    endDate: date
    mode: SchedulingMode = SchedulingMode.GREEDY_ONLY
    personnel: List[PersonnelModel]
    positions: List[PositionModel]
    fixedRules: List[FixedPositionRuleModel] = []
    manualAssignments: List[ManualAssignmentModel] = []
    holidayConfig: HolidayConfigModel = Field(default_factory=HolidayConfigModel)
    geneticConfig: Optional[GeneticAlgorithmConfigDto] = None
    backtrackingConfig: Optional[BacktrackingConfig] = None
    options: Optional[EngineOptions] = None
