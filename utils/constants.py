import json
from config.paths import CONFIG_DIR

"""
Loads configuration constants from config/constants.json and exposes them as module-level variables.
Edit constants.json to change values; import from utils.constants to use in code.
"""

CONSTANTS_PATH = CONFIG_DIR / "constants.json"

with open(CONSTANTS_PATH, "r", encoding="utf-8") as f:
    _constants = json.load(f)

# Timeline
PERIODS_PER_DAY = _constants["PERIODS_PER_DAY"]
HOURS_PER_PERIOD = _constants["HOURS_PER_PERIOD"]
NIGHT_PERIODS = tuple(_constants["NIGHT_PERIODS"])
WEEKEND_DAYS = tuple(_constants["WEEKEND_DAYS"])

# Soft constraint weights and normalisers
REST_WEIGHT = _constants["REST_WEIGHT"]
HOLIDAY_WEIGHT = _constants["HOLIDAY_WEIGHT"]
TIME_SLOT_WEIGHT = _constants["TIME_SLOT_WEIGHT"]
WORKLOAD_WEIGHT = _constants["WORKLOAD_WEIGHT"]
MAX_REST_DAYS = _constants["MAX_REST_DAYS"]
MAX_HOLIDAY_DAYS = _constants["MAX_HOLIDAY_DAYS"]
MAX_TIME_SLOT_DAYS = _constants["MAX_TIME_SLOT_DAYS"]
NEVER_ASSIGNED_SCORE = _constants["NEVER_ASSIGNED_SCORE"]
NON_HOLIDAY_SCORE = _constants["NON_HOLIDAY_SCORE"]

# Fitness penalties
HARD_CONSTRAINT_PENALTY = _constants["HARD_CONSTRAINT_PENALTY"]
UNASSIGNED_PENALTY = _constants["UNASSIGNED_PENALTY"]

# Genetic algorithm defaults
POPULATION_SIZE = _constants["POPULATION_SIZE"]
MAX_GENERATIONS = _constants["MAX_GENERATIONS"]
CROSSOVER_RATE = _constants["CROSSOVER_RATE"]
MUTATION_RATE = _constants["MUTATION_RATE"]
ELITE_COUNT = _constants["ELITE_COUNT"]
TOURNAMENT_SIZE = _constants["TOURNAMENT_SIZE"]
RANDOM_ASSIGN_PROBABILITY = _constants["RANDOM_ASSIGN_PROBABILITY"]
GA_SEED = _constants["GA_SEED"]

# Backtracking defaults
MAX_BACKTRACK_DEPTH = _constants["MAX_BACKTRACK_DEPTH"]
MAX_CANDIDATES_PER_DECISION = _constants["MAX_CANDIDATES_PER_DECISION"]
MAX_MEMO_ENTRIES = _constants["MAX_MEMO_ENTRIES"]
MEMORY_CHECK_INTERVAL = _constants["MEMORY_CHECK_INTERVAL"]
MEMORY_THRESHOLD_MB = _constants["MEMORY_THRESHOLD_MB"]
MEMORY_PRESSURE_STREAK = _constants["MEMORY_PRESSURE_STREAK"]
MAX_TOTAL_BACKTRACKS = _constants["MAX_TOTAL_BACKTRACKS"]
TIME_BUDGET_SECONDS = _constants["TIME_BUDGET_SECONDS"]
HISTORY_LIMIT = _constants["HISTORY_LIMIT"]

PROGRESS_THROTTLE_MS = _constants["PROGRESS_THROTTLE_MS"]

# Diagnostics thresholds
FEW_CANDIDATES_THRESHOLD = _constants["FEW_CANDIDATES_THRESHOLD"]
MIN_REST_PERIODS = _constants["MIN_REST_PERIODS"]
MAX_SHIFTS_PER_DAY = _constants["MAX_SHIFTS_PER_DAY"]
EXCESSIVE_WORKLOAD_RATIO = _constants["EXCESSIVE_WORKLOAD_RATIO"]
WORKLOAD_IMBALANCE_CV = _constants["WORKLOAD_IMBALANCE_CV"]
SUBOPTIMAL_SLOT_SCORE = _constants["SUBOPTIMAL_SLOT_SCORE"]
