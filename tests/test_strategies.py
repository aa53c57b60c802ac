"""
Tests for the genetic operators: gene space, repair, selection, crossover and mutation.
"""
from dataclasses import replace
from datetime import date

import numpy as np
import pytest

from core.models import ManualAssignment
from scheduler.strategies import (
    CROSSOVER_STRATEGIES,
    MUTATION_STRATEGIES,
    SELECTION_STRATEGIES,
    GeneSpace,
    random_individual,
    repair,
    roulette_wheel_select,
    single_point_crossover,
    swap_mutation,
    tournament_select,
    uniform_crossover,
)
from scheduler.validator import ConstraintValidator
from schemas.schedule.generate import (
    CrossoverStrategyType,
    MutationStrategyType,
    SelectionStrategyType,
)

ALICE, BOB, CAROL = 0, 1, 2
GATE, PATROL = 0, 1


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_space(context):
    validator = ConstraintValidator(context)
    locked = np.zeros(context.shape, dtype=bool)
    for key in context.manual_lookup:
        locked[key] = True
    return GeneSpace(context, validator, locked), validator


def _pinned(context):
    """Bob pinned on Gate at period 3, although he lacks the skill."""
    pin = ManualAssignment(position_id=10, period_index=3, personnel_id=2, date=date(2025, 1, 6))
    return replace(context, manual_assignments=(pin,))


def _template(space):
    template = np.full(space.size, -1, dtype=np.int32)
    for (d, p, pos), person in space.context.manual_lookup.items():
        template[np.ravel_multi_index((d, p, pos), space.shape)] = person
    return template


# ---------------------------------------------------------------------------
# Gene space
# ---------------------------------------------------------------------------

def test_gene_layout_is_chronological(week_context):
    space, _ = _make_space(week_context)
    assert space.size == week_context.total_slots
    gene = np.ravel_multi_index((1, 11, PATROL), space.shape)
    assert space.day[gene] == 1
    assert space.timestamp[gene] == 23
    assert space.is_night[gene]


def test_free_people_respects_spacing(week_context):
    space, _ = _make_space(week_context)
    genes = np.full(space.size, -1, dtype=np.int32)
    genes[np.ravel_multi_index((0, 11, GATE), space.shape)] = 4
    slots, nights = space.occupancy(genes)
    next_midnight = np.ravel_multi_index((1, 0, GATE), space.shape)
    same_date_night = np.ravel_multi_index((0, 1, PATROL), space.shape)
    day_slot = np.ravel_multi_index((0, 6, PATROL), space.shape)
    assert not space.free_people(next_midnight, slots, nights)[4]
    assert not space.free_people(same_date_night, slots, nights)[4]
    assert space.free_people(day_slot, slots, nights)[4]


# ---------------------------------------------------------------------------
# Random individuals and repair
# ---------------------------------------------------------------------------

def test_random_individual_is_statically_feasible(skilled_context):
    space, _ = _make_space(skilled_context)
    genes = random_individual(space, np.random.default_rng(1))
    assigned = np.flatnonzero(genes >= 0)
    assert assigned.size > 0
    assert space.static[assigned, genes[assigned]].all()


def test_repair_removes_every_hard_violation(week_context):
    space, validator = _make_space(week_context)
    rng = np.random.default_rng(7)
    genes = rng.integers(0, week_context.num_personnel, space.size).astype(np.int32)
    assert validator.count_hard_violations(genes.reshape(space.shape)) > 0
    fixed = repair(genes, space, _template(space))
    assert validator.count_hard_violations(fixed.reshape(space.shape)) == 0
    # repair only ever clears genes
    kept = fixed >= 0
    assert (fixed[kept] == genes[kept]).all()


def test_repair_restores_locked_genes(skilled_context):
    context = _pinned(skilled_context)
    space, validator = _make_space(context)
    template = _template(space)
    pin = np.ravel_multi_index((0, 3, GATE), space.shape)
    genes = np.full(space.size, -1, dtype=np.int32)
    genes[pin] = ALICE
    # Bob next to his own pin must go
    genes[np.ravel_multi_index((0, 4, PATROL), space.shape)] = BOB
    fixed = repair(genes, space, template)
    assert fixed[pin] == BOB
    assert fixed[np.ravel_multi_index((0, 4, PATROL), space.shape)] == -1
    locked = space.locked.reshape(space.shape)
    assert validator.count_hard_violations(fixed.reshape(space.shape), locked) == 0


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def test_tournament_with_full_field_picks_best():
    fitness = np.array([-5.0, 3.0, 1.0, 2.0])
    rng = np.random.default_rng(0)
    assert all(tournament_select(fitness, rng, 4) == 1 for _ in range(10))


def test_roulette_handles_negative_fitness():
    fitness = np.array([-1000.0, -10.0, -20.0])
    rng = np.random.default_rng(0)
    picks = [roulette_wheel_select(fitness, rng) for _ in range(200)]
    assert set(picks) <= {0, 1, 2}
    # after the shift the worst individual keeps weight 1 of about 2000
    assert picks.count(0) < 10


# ---------------------------------------------------------------------------
# Crossover and mutation
# ---------------------------------------------------------------------------

def test_uniform_crossover_takes_each_gene_from_a_parent():
    a = np.zeros(50, dtype=np.int32)
    b = np.ones(50, dtype=np.int32)
    child = uniform_crossover(a, b, np.random.default_rng(3))
    assert set(child.tolist()) == {0, 1}


def test_single_point_crossover_splits_once():
    a = np.zeros(20, dtype=np.int32)
    b = np.ones(20, dtype=np.int32)
    child = single_point_crossover(a, b, np.random.default_rng(5))
    cut = int(np.argmax(child))
    assert 1 <= cut < 20
    assert (child[:cut] == 0).all() and (child[cut:] == 1).all()
    assert single_point_crossover(a[:1], b[:1], np.random.default_rng(5)).tolist() == [0]


def test_swap_mutation_keeps_locks_and_feasibility(skilled_context):
    context = _pinned(skilled_context)
    space, validator = _make_space(context)
    template = _template(space)
    rng = np.random.default_rng(11)
    genes = repair(random_individual(space, rng), space, template)
    mutated = swap_mutation(genes, space, rng, 1.0)
    assert (mutated[space.locked] == genes[space.locked]).all()
    locked = space.locked.reshape(space.shape)
    assert validator.count_hard_violations(mutated.reshape(space.shape), locked) == 0
    assert swap_mutation(genes, space, rng, 0.0).tolist() == genes.tolist()


@pytest.mark.parametrize(
    "table, key",
    [
        (SELECTION_STRATEGIES, SelectionStrategyType.ROULETTE_WHEEL),
        (SELECTION_STRATEGIES, SelectionStrategyType.TOURNAMENT),
        (CROSSOVER_STRATEGIES, CrossoverStrategyType.UNIFORM),
        (CROSSOVER_STRATEGIES, CrossoverStrategyType.SINGLE_POINT),
        (MUTATION_STRATEGIES, MutationStrategyType.SWAP),
    ],
)
def test_every_strategy_has_an_implementation(table, key):
    assert callable(table[key])
