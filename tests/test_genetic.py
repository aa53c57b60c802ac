"""
Tests for the genetic optimizer.
"""
from dataclasses import replace
from datetime import date

import numpy as np
import pytest

from core.models import ManualAssignment
from schemas.schedule.generate import (
    CrossoverStrategyType,
    GeneticAlgorithmConfigDto,
    SelectionStrategyType,
)
from scheduler.genetic import GeneticOptimizer
from scheduler.scoring import ScoreCalculator
from scheduler.validator import ConstraintValidator

BOB = 1
GATE, PATROL = 0, 1


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _small_config(**kwargs):
    values = {"population_size": 10, "max_generations": 10, "seed": 3}
    values.update(kwargs)
    return GeneticAlgorithmConfigDto(**values)


def _make_optimizer(context, config=None, **kwargs):
    validator = ConstraintValidator(context)
    return GeneticOptimizer(context, validator, ScoreCalculator(context), config=config or _small_config(), **kwargs)


def _locked_for(context):
    locked = np.zeros(context.shape, dtype=bool)
    for key in context.manual_lookup:
        locked[key] = True
    return locked


def _seed_for(context):
    grid = context.empty_grid()
    for key, person in context.manual_lookup.items():
        grid[key] = person
    return grid


# ---------------------------------------------------------------------------
# Fitness
# ---------------------------------------------------------------------------

def test_fitness_penalises_violations_and_gaps(skilled_context):
    optimizer = _make_optimizer(skilled_context)
    optimizer._locked_grid = _locked_for(skilled_context)
    grid = skilled_context.empty_grid()
    grid[0, 5, GATE] = BOB
    result = optimizer.evaluate(grid.reshape(-1))
    cfg = optimizer.config
    assert result.hard_violations == 1
    assert result.unassigned == grid.size - 1
    assert result.fitness == pytest.approx(
        result.soft_score
        - cfg.hard_constraint_penalty_weight
        - (grid.size - 1) * cfg.unassigned_penalty_weight
    )


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------

def test_best_fitness_never_decreases(skilled_context):
    optimizer = _make_optimizer(skilled_context)
    grid, summary = optimizer.optimize(_seed_for(skilled_context), _locked_for(skilled_context))
    history = list(summary.best_fitness_history)
    assert history == sorted(history)
    assert summary.final_best_fitness >= summary.initial_best_fitness
    assert summary.generations_run == 10
    assert len(history) == 11
    assert optimizer.validator.count_hard_violations(grid) == 0


def test_result_is_never_worse_than_seed(week_context):
    optimizer = _make_optimizer(week_context)
    seed = _seed_for(week_context)
    grid, summary = optimizer.optimize(seed, _locked_for(week_context))
    seed_fitness = optimizer.evaluate(seed.reshape(-1)).fitness
    assert summary.final_best_fitness >= seed_fitness
    assert optimizer.evaluate(grid.reshape(-1)).fitness == pytest.approx(summary.final_best_fitness)


def test_manual_genes_survive(skilled_context):
    pin = ManualAssignment(position_id=10, period_index=3, personnel_id=2, date=date(2025, 1, 6))
    context = replace(skilled_context, manual_assignments=(pin,))
    optimizer = _make_optimizer(context, _small_config(mutation_rate=1.0))
    grid, _ = optimizer.optimize(_seed_for(context), _locked_for(context))
    assert grid[0, 3, GATE] == BOB
    assert optimizer.validator.count_hard_violations(grid, _locked_for(context)) == 0


def test_same_seed_gives_same_result(skilled_context):
    first, a = _make_optimizer(skilled_context).optimize(_seed_for(skilled_context), _locked_for(skilled_context))
    second, b = _make_optimizer(skilled_context).optimize(_seed_for(skilled_context), _locked_for(skilled_context))
    assert np.array_equal(first, second)
    assert a.best_fitness_history == b.best_fitness_history


def test_parallel_evaluation_matches_serial(skilled_context):
    serial, a = _make_optimizer(skilled_context).optimize(_seed_for(skilled_context), _locked_for(skilled_context))
    parallel, b = _make_optimizer(skilled_context, _small_config(evaluation_workers=4)).optimize(
        _seed_for(skilled_context), _locked_for(skilled_context)
    )
    assert np.array_equal(serial, parallel)
    assert a.best_fitness_history == b.best_fitness_history


@pytest.mark.parametrize(
    "selection, crossover",
    [
        (SelectionStrategyType.ROULETTE_WHEEL, CrossoverStrategyType.SINGLE_POINT),
        (SelectionStrategyType.TOURNAMENT, CrossoverStrategyType.SINGLE_POINT),
        (SelectionStrategyType.ROULETTE_WHEEL, CrossoverStrategyType.UNIFORM),
    ],
)
def test_strategy_combinations_run(skilled_context, selection, crossover):
    config = _small_config(selection_strategy=selection, crossover_strategy=crossover)
    grid, summary = _make_optimizer(skilled_context, config).optimize(
        _seed_for(skilled_context), _locked_for(skilled_context)
    )
    assert grid.shape == skilled_context.shape
    assert summary.generations_run == 10


def test_converges_when_nothing_improves(make_context, make_person, make_position):
    # nobody holds skill 9, so every individual is the empty roster
    context = make_context([make_position(10, skills={9})], [make_person(1), make_person(2)])
    optimizer = _make_optimizer(context, _small_config(convergence_patience=3))
    _, summary = optimizer.optimize(_seed_for(context), _locked_for(context))
    assert summary.converged_early
    assert summary.generations_run == 3


def test_cancel_before_first_generation(skilled_context, cancel_event):
    cancel_event.set()
    optimizer = _make_optimizer(skilled_context, cancel_event=cancel_event)
    _, summary = optimizer.optimize(_seed_for(skilled_context), _locked_for(skilled_context))
    assert summary.cancelled
    assert summary.generations_run == 0
    assert summary.best_fitness_history == (summary.initial_best_fitness,)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

def test_config_accepts_camel_case_and_rejects_bad_values():
    config = GeneticAlgorithmConfigDto.model_validate({"populationSize": 20, "eliteCount": 3})
    assert config.population_size == 20 and config.elite_count == 3
    with pytest.raises(ValueError):
        GeneticAlgorithmConfigDto(population_size=5)
    with pytest.raises(ValueError):
        GeneticAlgorithmConfigDto(mutation_rate=1.5)
    with pytest.raises(ValueError):
        GeneticAlgorithmConfigDto(population_size=10, elite_count=10)
