"""
core
----

Core data of the guard roster engine:

- Personnel, Position, FixedPositionRule, ManualAssignment, HolidayConfig:
  Immutable input records.

- SchedulingContext & FairnessLedger:
  The frozen view of one scheduling request, and the per-person assignment
  history used to rank candidates.

- HardRule & define_hard_rules:
  The catalogue of non-negotiable constraints and their messages.

- ConstraintManager:
  Register and apply feasibility rules in a controlled sequence.

- results:
  Assignments, statistics, progress reports and diagnostic records.
"""
