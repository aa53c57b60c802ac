"""
scheduler
---------

Guard roster scheduling engine. Main components:

- `validator` / `feasibility`: Hard constraint checks and the candidate tensor with undo log.
- `greedy` / `backtracking`: Most-constrained-first assignment with per-day repair search.
- `genetic` / `strategies`: Optional genetic refinement of the search result.
- `scoring` / `diagnostics`: Fairness scores, conflicts and diagnostic reports.
- `builder`: `build_schedule`, the entry point tying the stages together.
"""
from . import builder
