import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Tuple
import numpy as np
from core.results import GeneticProgressInfo, GeneticRunSummary, SchedulingStage
from core.state import SchedulingContext
from schemas.schedule.generate import GeneticAlgorithmConfigDto
from scheduler.progress import ProgressReporter
from scheduler.scoring import ScoreCalculator
from scheduler.strategies import (
    CROSSOVER_STRATEGIES,
    MUTATION_STRATEGIES,
    SELECTION_STRATEGIES,
    GeneSpace,
    random_individual,
    repair,
)
from scheduler.validator import ConstraintValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Evaluation:
    fitness: float
    soft_score: float
    hard_violations: int
    unassigned: int


class GeneticOptimizer:
    """
    Refines a complete or partial schedule with a generational GA.

    The seed schedule is the first individual of the initial population,
    so with at least one elite the result is never worse than the seed.
    """

    def __init__(
        self,
        context: SchedulingContext,
        validator: ConstraintValidator,
        scorer: ScoreCalculator,
        config: Optional[GeneticAlgorithmConfigDto] = None,
        progress: Optional[ProgressReporter] = None,
        cancel_event=None,
    ):
        self.context = context
        self.validator = validator
        self.scorer = scorer
        self.config = config or GeneticAlgorithmConfigDto()
        self.progress = progress or ProgressReporter()
        self.cancel_event = cancel_event
        self.rng = np.random.default_rng(self.config.seed)
        self.select = SELECTION_STRATEGIES[self.config.selection_strategy]
        self.crossover = CROSSOVER_STRATEGIES[self.config.crossover_strategy]
        self.mutate = MUTATION_STRATEGIES[self.config.mutation_strategy]
        self.space: Optional[GeneSpace] = None
        self._locked_grid: Optional[np.ndarray] = None

    def is_cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    # ---- fitness ----
    def evaluate(self, genes: np.ndarray) -> Evaluation:
        grid = genes.reshape(self.context.shape)
        hard = self.validator.count_hard_violations(grid, self._locked_grid)
        unassigned = int(np.count_nonzero(grid < 0))
        soft = self.scorer.soft_scores(grid).total_score
        fitness = (
            soft
            - hard * self.config.hard_constraint_penalty_weight
            - unassigned * self.config.unassigned_penalty_weight
        )
        return Evaluation(fitness, soft, hard, unassigned)

    def evaluate_population(self, population: List[np.ndarray]) -> List[Evaluation]:
        """Results come back in population order whatever the worker count."""
        if self.config.evaluation_workers <= 1:
            return [self.evaluate(genes) for genes in population]
        with ThreadPoolExecutor(max_workers=self.config.evaluation_workers) as executor:
            return list(executor.map(self.evaluate, population))

    # ---- generations ----
    def initial_population(self, seed: np.ndarray) -> List[np.ndarray]:
        population = [seed.copy()]
        while len(population) < self.config.population_size:
            genes = random_individual(self.space, self.rng)
            population.append(repair(genes, self.space, seed))
        return population

    def next_generation(self, population: List[np.ndarray], fitness: np.ndarray, seed: np.ndarray) -> List[np.ndarray]:
        ranked = np.argsort(-fitness, kind="stable")
        children = [population[i].copy() for i in ranked[:self.config.elite_count]]
        while len(children) < self.config.population_size:
            a = population[self.select(fitness, self.rng, self.config.tournament_size)]
            b = population[self.select(fitness, self.rng, self.config.tournament_size)]
            if self.rng.random() < self.config.crossover_rate:
                child = self.crossover(a, b, self.rng)
            else:
                child = a.copy()
            child = repair(child, self.space, seed)
            child = self.mutate(child, self.space, self.rng, self.config.mutation_rate)
            children.append(child)
        return children

    def optimize(self, seed_grid: np.ndarray, locked: np.ndarray) -> Tuple[np.ndarray, GeneticRunSummary]:
        """
        Run the GA starting from `seed_grid`.

        Args:
            seed_grid (np.ndarray): Schedule produced by the search stage.
            locked (np.ndarray): Boolean grid of manual cells.

        Returns:
            Tuple[np.ndarray, GeneticRunSummary]: The best grid seen in any
                generation and a summary of the run.
        """
        cfg = self.config
        self._locked_grid = locked
        self.space = GeneSpace(self.context, self.validator, locked)
        seed = seed_grid.reshape(-1).astype(np.int32)

        logger.info(
            f"🧬 Genetic pass: population {cfg.population_size}, {cfg.max_generations} generation(s), "
            f"{cfg.selection_strategy.value}/{cfg.crossover_strategy.value}/{cfg.mutation_strategy.value}"
        )
        population = self.initial_population(seed)
        evaluations = self.evaluate_population(population)
        fitness = np.array([e.fitness for e in evaluations])
        best_idx = int(np.argmax(fitness))
        best_genes, best_eval = population[best_idx].copy(), evaluations[best_idx]
        initial_best = best_eval.fitness
        history = [best_eval.fitness]
        stale = 0
        generation = 0
        converged = False
        cancelled = False

        for generation in range(1, cfg.max_generations + 1):
            if self.is_cancelled():
                cancelled = True
                generation -= 1
                logger.warning(f"⚠️ Genetic pass cancelled after {generation} generation(s)")
                break
            population = self.next_generation(population, fitness, seed)
            evaluations = self.evaluate_population(population)
            fitness = np.array([e.fitness for e in evaluations])
            gen_idx = int(np.argmax(fitness))
            if evaluations[gen_idx].fitness > best_eval.fitness:
                best_genes, best_eval = population[gen_idx].copy(), evaluations[gen_idx]
                stale = 0
            else:
                stale += 1
            history.append(best_eval.fitness)
            self._report(generation, best_eval, float(fitness.mean()))
            if cfg.convergence_patience and stale >= cfg.convergence_patience:
                converged = True
                logger.info(f"🧬 Converged after {generation} generation(s)")
                break

        logger.info(
            f"✅ Genetic pass done: fitness {initial_best:.3f} -> {best_eval.fitness:.3f}, "
            f"{best_eval.hard_violations} hard violation(s), {best_eval.unassigned} unassigned"
        )
        summary = GeneticRunSummary(
            generations_run=generation,
            initial_best_fitness=initial_best,
            final_best_fitness=best_eval.fitness,
            best_fitness_history=tuple(history),
            converged_early=converged,
            cancelled=cancelled,
        )
        return best_genes.reshape(self.context.shape), summary

    def _report(self, generation: int, best: Evaluation, average: float):
        info = GeneticProgressInfo(
            current_generation=generation,
            max_generations=self.config.max_generations,
            best_fitness=best.fitness,
            average_fitness=average,
            best_hard_constraint_violations=best.hard_violations,
            best_unassigned_slots=best.unassigned,
        )
        # one report per generation, exempt from the throttle
        self.progress.report(
            SchedulingStage.GENETIC_OPTIMIZING,
            100.0 * generation / self.config.max_generations,
            f"Generation {generation}/{self.config.max_generations}",
            force=True,
            genetic_progress_info=info,
            total_slots_to_assign=self.context.total_slots,
            completed_assignments=self.context.total_slots - best.unassigned,
            remaining_slots=best.unassigned,
        )
