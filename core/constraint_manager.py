import logging
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


class ConstraintManager:
    """Registers feasibility rules and applies them to an index in order."""

    def __init__(self, index, context):
        self.index = index
        self.context = context
        self.rules: List[Tuple[str, Callable]] = []

    def add_rule(self, rule_func: Callable, condition: bool = True):
        """Register a rule with optional enablement condition."""
        if condition:
            self.rules.append((rule_func.__name__, rule_func))

    def apply_all(self) -> dict:
        """
        Apply all registered rules in order.

        Returns:
            dict: Number of placements each rule removed, keyed by rule name.
        """
        pruned = {}
        for name, rule in self.rules:
            before = self.index.feasible_cells()
            rule(self.index, self.context)
            pruned[name] = before - self.index.feasible_cells()
            logger.debug(f"Rule {name} removed {pruned[name]} placements")
        return pruned
