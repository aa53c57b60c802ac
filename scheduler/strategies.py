"""
Operators of the genetic refinement pass.

An individual is a flat int32 gene vector: one gene per (day, period,
position) in chronological order, holding a personnel index or -1. Locked
genes carry manual assignments and are never changed by any operator.
"""
import numpy as np
from core.state import SchedulingContext
from schemas.schedule.generate import (
    CrossoverStrategyType,
    MutationStrategyType,
    SelectionStrategyType,
)
from scheduler.validator import ConstraintValidator
from utils.constants import NIGHT_PERIODS, PERIODS_PER_DAY, RANDOM_ASSIGN_PROBABILITY


class GeneSpace:
    """Static facts about every gene, flattened for vector lookups."""

    def __init__(self, context: SchedulingContext, validator: ConstraintValidator, locked: np.ndarray):
        self.context = context
        self.validator = validator
        self.options = validator.options
        self.shape = context.shape
        self.size = context.total_slots
        self.num_personnel = context.num_personnel
        self.static = validator.static_mask.reshape(self.size, self.num_personnel)
        self.locked = locked.reshape(-1).copy()
        days, periods, _ = np.indices(self.shape).reshape(3, -1)
        self.day = days
        self.timestamp = days * PERIODS_PER_DAY + periods
        self.is_night = np.isin(periods, NIGHT_PERIODS)
        self.free_genes = np.flatnonzero(~self.locked)

    def occupancy(self, genes: np.ndarray):
        """
        Per-slot and per-night busy counts of a gene vector.

        Slot counts are padded by one row at each end so the neighbours of
        the first and last slot can be read without bounds checks.
        """
        slots = np.zeros((self.context.num_days * PERIODS_PER_DAY + 2, self.num_personnel), dtype=np.int32)
        nights = np.zeros((self.context.num_days, self.num_personnel), dtype=np.int32)
        assigned = np.flatnonzero(genes >= 0)
        people = genes[assigned]
        np.add.at(slots, (self.timestamp[assigned] + 1, people), 1)
        night = assigned[self.is_night[assigned]]
        np.add.at(nights, (self.day[night], genes[night]), 1)
        return slots, nights

    def place(self, gene: int, person: int, slots: np.ndarray, nights: np.ndarray, delta: int):
        slots[self.timestamp[gene] + 1, person] += delta
        if self.is_night[gene]:
            nights[self.day[gene], person] += delta

    def free_people(self, gene: int, slots: np.ndarray, nights: np.ndarray) -> np.ndarray:
        """People who could take `gene` without breaking a rule, given the current occupancy."""
        row = self.timestamp[gene] + 1
        allowed = self.static[gene] & (slots[row] == 0)
        if self.options.enforce_non_consecutive:
            allowed &= (slots[row - 1] == 0) & (slots[row + 1] == 0)
        if self.options.enforce_night_uniqueness and self.is_night[gene]:
            allowed &= nights[self.day[gene]] == 0
        return allowed


def random_individual(space: GeneSpace, rng: np.random.Generator) -> np.ndarray:
    """Each free gene gets a random statically-feasible person with probability RANDOM_ASSIGN_PROBABILITY."""
    genes = np.full(space.size, -1, dtype=np.int32)
    free = space.free_genes
    static = space.static[free]
    counts = static.sum(axis=1)
    pick = (rng.random(free.size) < RANDOM_ASSIGN_PROBABILITY) & (counts > 0)
    nth = np.floor(rng.random(free.size) * counts).astype(np.int64)
    chosen = np.argmax(np.cumsum(static, axis=1) > nth[:, None], axis=1)
    genes[free[pick]] = chosen[pick]
    return genes


def repair(genes: np.ndarray, space: GeneSpace, template: np.ndarray) -> np.ndarray:
    """
    Make a gene vector hard-feasible by dropping genes.

    Locked genes are restored from `template`; free genes that are
    statically infeasible are cleared; genes caught in a clash are visited in
    chronological order and cleared unless they fit once taken out.
    """
    child = genes.copy()
    child[space.locked] = template[space.locked]
    free = space.free_genes
    people = child[free]
    assigned = people >= 0
    infeasible = np.zeros(free.size, dtype=bool)
    infeasible[assigned] = ~space.static[free[assigned], people[assigned]]
    child[free[infeasible]] = -1

    bad = space.validator.gene_violation_mask(child.reshape(space.shape), space.locked.reshape(space.shape))
    flagged = np.flatnonzero(bad.reshape(-1))
    if flagged.size == 0:
        return child
    slots, nights = space.occupancy(child)
    for gene in flagged:
        person = int(child[gene])
        space.place(gene, person, slots, nights, -1)
        if space.free_people(gene, slots, nights)[person]:
            space.place(gene, person, slots, nights, 1)
        else:
            child[gene] = -1
    return child


# ---- selection ----
def roulette_wheel_select(fitness: np.ndarray, rng: np.random.Generator, tournament_size: int = 0) -> int:
    """Fitness-proportional pick; negative fitness is shifted above zero first."""
    weights = fitness.astype(float)
    low = weights.min()
    if low <= 0:
        weights = weights + abs(low) + 1.0
    return int(rng.choice(weights.size, p=weights / weights.sum()))


def tournament_select(fitness: np.ndarray, rng: np.random.Generator, tournament_size: int = 2) -> int:
    """Best of `tournament_size` random contenders; ties go to the first drawn."""
    size = min(tournament_size, fitness.size)
    contenders = rng.choice(fitness.size, size=size, replace=False)
    return int(contenders[int(np.argmax(fitness[contenders]))])


# ---- crossover ----
def uniform_crossover(a: np.ndarray, b: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    mask = rng.random(a.size) < 0.5
    return np.where(mask, a, b)


def single_point_crossover(a: np.ndarray, b: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    if a.size < 2:
        return a.copy()
    cut = int(rng.integers(1, a.size))
    return np.concatenate([a[:cut], b[cut:]])


# ---- mutation ----
def swap_mutation(genes: np.ndarray, space: GeneSpace, rng: np.random.Generator, rate: float) -> np.ndarray:
    """
    Replace each free gene with probability `rate` by another person who fits.

    Genes with nobody else available keep their value.
    """
    child = genes.copy()
    hits = space.free_genes[rng.random(space.free_genes.size) < rate]
    if hits.size == 0:
        return child
    slots, nights = space.occupancy(child)
    for gene in hits:
        current = int(child[gene])
        if current >= 0:
            space.place(gene, current, slots, nights, -1)
        allowed = space.free_people(gene, slots, nights)
        if current >= 0:
            allowed[current] = False
        options = np.flatnonzero(allowed)
        if options.size == 0:
            if current >= 0:
                space.place(gene, current, slots, nights, 1)
            continue
        person = int(options[rng.integers(options.size)])
        child[gene] = person
        space.place(gene, person, slots, nights, 1)
    return child


SELECTION_STRATEGIES = {
    SelectionStrategyType.ROULETTE_WHEEL: roulette_wheel_select,
    SelectionStrategyType.TOURNAMENT: tournament_select,
}

CROSSOVER_STRATEGIES = {
    CrossoverStrategyType.UNIFORM: uniform_crossover,
    CrossoverStrategyType.SINGLE_POINT: single_point_crossover,
}

MUTATION_STRATEGIES = {
    MutationStrategyType.SWAP: swap_mutation,
}
