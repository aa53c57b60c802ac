"""
scheduler.rules
---------------

Exposes all feasibility rules by importing from:

- `eligibility`: Who may stand on which position at all (availability, allow-lists, skills).
- `fixed`: Fixed position rules and manual assignment pins.

Each rule is a function `rule(index, context)` that switches off placements
in the feasibility index. Rules are registered on a `ConstraintManager`.
"""
from .eligibility import *
from .fixed import *
