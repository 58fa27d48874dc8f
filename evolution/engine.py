"""
Evolutionary Loop
=================

Generic elitist loop shared by the network and order engines:

    evaluate (parallel) -> sort -> record best-ever -> truncate -> refill

Evaluation and refill fan out one task per candidate on a thread pool and
join before the next phase reads the population. Results land in an array
indexed by task id, so completion order never affects selection. Each task
draws from its own generator spawned off the engine's RandomSource.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

import numpy as np
from pydantic import ValidationError

from config.settings_schema import GeneticSettings
from core.exceptions import ConfigurationError
from core.rng import RandomSource, get_random_source, rand_int
from core.structured_log import jlog
from evolution.persistence import GenerationState, load_state, save_state
from evolution.scoring import ScoreFn, ScoringContext, get_scorer

logger = logging.getLogger(__name__)


class GenerationPhase(Enum):
    """Where the engine is within a generation."""
    SEEDED = "seeded"
    EVALUATING = "evaluating"
    SELECTING = "selecting"
    MUTATING = "mutating"


@dataclass
class GenerationStats:
    """Summary of one evaluated generation (before truncation)."""
    iteration: int
    best: float
    avg: float
    worst: float
    std: float
    population: int
    failed: int
    improved: bool

    def to_dict(self) -> dict:
        return {
            'iteration': self.iteration,
            'best': self.best,
            'avg': self.avg,
            'worst': self.worst,
            'std': self.std,
            'population': self.population,
            'failed': self.failed,
            'improved': self.improved,
        }


# =============================================================================
# STOP CONDITIONS
# =============================================================================

class StopCondition:
    """Decides after each generation whether the run is over."""

    def reset(self) -> None:
        pass

    def should_stop(self, engine: EvolutionEngine) -> bool:
        raise NotImplementedError


class ScoreThreshold(StopCondition):
    """
    Stop once the best-ever score reaches ``threshold``.

    The threshold is in the engine's own units; the engine maps it onto the
    score scale (a loss limit becomes a negated score).
    """

    def __init__(self, threshold: float):
        self.threshold = threshold

    def should_stop(self, engine: EvolutionEngine) -> bool:
        if engine.best_score is None:
            return False
        target = engine.convergence_target(self.threshold)
        if engine.maximize:
            return engine.best_score >= target
        return engine.best_score <= target


class IterationBudget(StopCondition):
    """Stop after a fixed number of generations."""

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations

    def should_stop(self, engine: EvolutionEngine) -> bool:
        return engine.iteration >= self.max_iterations


class Stagnation(StopCondition):
    """Stop when the best-ever score has not changed for ``limit`` generations."""

    def __init__(self, limit: int):
        self.limit = limit
        self.reset()

    def reset(self) -> None:
        self._last: Optional[float] = None
        self.unchanged = 0

    def should_stop(self, engine: EvolutionEngine) -> bool:
        if self._last is not None and engine.best_score == self._last:
            self.unchanged += 1
        else:
            self.unchanged = 0
        self._last = engine.best_score
        return self.unchanged >= self.limit


def make_stop_condition(settings: GeneticSettings) -> StopCondition:
    """Build the stop condition selected by ``settings.stop_strategy``."""
    if settings.stop_strategy == "threshold":
        return ScoreThreshold(settings.best_result)
    if settings.stop_strategy == "iterations":
        return IterationBudget(settings.max_iterations)
    if settings.stop_strategy == "stagnation":
        return Stagnation(settings.stagnation_limit)
    raise ConfigurationError(f"Unknown stop strategy: {settings.stop_strategy}")


# =============================================================================
# ENGINE
# =============================================================================

class EvolutionEngine:
    """
    Elitist generational loop over an abstract candidate type.

    Subclasses provide evaluation, cloning, mutation and fresh seeding for
    their candidate type; the base class owns ordering, selection, refill,
    best-ever tracking and progress reporting.
    """

    kind = "abstract"

    def __init__(
        self,
        settings: Optional[GeneticSettings] = None,
        scorer: str | ScoreFn = "sum",
        maximize: bool = True,
        random_source: Optional[RandomSource] = None,
    ):
        self.settings = settings or GeneticSettings()
        self.scorer = get_scorer(scorer)
        self.maximize = maximize

        if random_source is not None:
            self._random = random_source
        elif self.settings.seed is not None:
            self._random = RandomSource(self.settings.seed)
        else:
            self._random = get_random_source()

        self.population: List[Any] = []
        self.iteration = 0
        self.best_score: Optional[float] = None
        self.best_ever: Optional[Any] = None
        self.phase = GenerationPhase.SEEDED
        self.history: List[GenerationStats] = []

    def _configure(self) -> None:
        """Rebuild state derived from ``self.settings``; runs again after a restore."""

    def convergence_target(self, threshold: float) -> float:
        """Score that counts as converged for a ``best_result`` threshold."""
        return threshold

    # ------------------------------------------------------------------
    # Candidate hooks
    # ------------------------------------------------------------------

    def evaluate_candidate(self, candidate: Any, rng: np.random.Generator) -> None:
        raise NotImplementedError

    def clone_candidate(self, candidate: Any, rng: np.random.Generator) -> Any:
        raise NotImplementedError

    def mutate_candidate(self, candidate: Any, rng: np.random.Generator) -> None:
        raise NotImplementedError

    def fresh_candidate(self, rng: np.random.Generator) -> Any:
        raise NotImplementedError

    def sub_mutations(self) -> int:
        return 1

    def snapshot(self, candidate: Any) -> Any:
        """Independent copy kept as the best-ever record."""
        return self.clone_candidate(candidate, self._random.generator())

    def scoring_context(self) -> ScoringContext:
        return ScoringContext(
            settings=self.settings,
            population_size=len(self.population),
            total_ticks=self.settings.inps,
        )

    # ------------------------------------------------------------------
    # Population helpers
    # ------------------------------------------------------------------

    @property
    def failed_score(self) -> float:
        return -math.inf if self.maximize else math.inf

    def is_better(self, score: float, than: Optional[float]) -> bool:
        if than is None:
            return True
        return score > than if self.maximize else score < than

    def add(self, candidate: Any) -> EvolutionEngine:
        self.population.append(candidate)
        return self

    def get_best(self) -> Any:
        """Best candidate of the current population (valid after a sort)."""
        if not self.population:
            raise ConfigurationError("Population is empty")
        return self.population[0]

    def reset(self) -> None:
        """Forget iteration count and best-ever record, keep the population."""
        self.iteration = 0
        self.best_score = None
        self.best_ever = None
        self.history = []

    def _parallel(self, fn: Callable[[Any, np.random.Generator], Any], items: Sequence[Any]) -> List[Any]:
        """Run ``fn`` once per item on the pool and join; results keep item order."""
        rngs = self._random.spawn(len(items))
        results: List[Any] = [None] * len(items)
        if not items:
            return results
        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
            futures = {
                executor.submit(fn, item, rng): i
                for i, (item, rng) in enumerate(zip(items, rngs))
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        return results

    # ------------------------------------------------------------------
    # Generation phases
    # ------------------------------------------------------------------

    def _evaluate_one(self, candidate: Any, rng: np.random.Generator) -> bool:
        try:
            self.evaluate_candidate(candidate, rng)
            return True
        except Exception as e:
            logger.warning(f"Candidate evaluation failed: {e}")
            return False

    def evaluate(self) -> List[bool]:
        """Evaluate every candidate in parallel; returns per-candidate success."""
        self.phase = GenerationPhase.EVALUATING
        return self._parallel(self._evaluate_one, self.population)

    def _score_one(self, candidate: Any, ctx: ScoringContext, ok: bool) -> float:
        if not ok:
            return self.failed_score
        try:
            score = float(self.scorer(candidate, ctx))
        except Exception as e:
            logger.warning(f"Candidate scoring failed: {e}")
            return self.failed_score
        if math.isnan(score):
            return self.failed_score
        return score

    def rank(self, evaluated: Optional[List[bool]] = None) -> None:
        """Recompute every score from its raw fitness and sort best first."""
        self.phase = GenerationPhase.SELECTING
        if evaluated is None:
            evaluated = [True] * len(self.population)
        ctx = self.scoring_context()
        for candidate, ok in zip(self.population, evaluated):
            candidate.score = self._score_one(candidate, ctx, ok)
        self.population.sort(key=lambda c: c.score, reverse=self.maximize)

    def record_best(self) -> bool:
        """Replace the best-ever record when this generation beat it."""
        best = self.get_best()
        if not math.isfinite(best.score):
            return False
        if self.is_better(best.score, self.best_score):
            self.best_score = best.score
            self.best_ever = self.snapshot(best)
            return True
        return False

    def truncate(self) -> None:
        """Drop everything past the elite slice."""
        del self.population[self.settings.last_best:]

    def _spawn_child(self, parent: Any, rng: np.random.Generator) -> Optional[Any]:
        try:
            child = self.clone_candidate(parent, rng)
        except Exception as e:
            logger.warning(f"Candidate clone failed: {e}")
            return None
        try:
            for _ in range(self.sub_mutations()):
                self.mutate_candidate(child, rng)
        except Exception as e:
            logger.warning(f"Candidate mutation failed: {e}")
        return child

    def _fresh(self, _: Any, rng: np.random.Generator) -> Optional[Any]:
        try:
            return self.fresh_candidate(rng)
        except Exception as e:
            logger.warning(f"Fresh candidate failed: {e}")
            return None

    def parents_for(self, slots: int, rng: np.random.Generator) -> List[Any]:
        """Uniformly chosen elites; the single best when only one survives."""
        elites = self.population
        if len(elites) == 1:
            return [elites[0]] * slots
        return [elites[rand_int(rng, len(elites))] for _ in range(slots)]

    def refill(self) -> None:
        """Top the population back up with mutated clones and fresh seeds."""
        self.phase = GenerationPhase.MUTATING
        target = self.settings.population
        free = max(0, target - len(self.population))
        fresh = min(self.settings.new_items, free)
        slots = free - fresh

        parents = self.parents_for(slots, self._random.generator())
        children = self._parallel(self._spawn_child, parents)
        newcomers = self._parallel(self._fresh, [None] * fresh)
        born = [c for c in newcomers + children if c is not None]
        if len(born) < free:
            logger.warning(f"Refill skipped {free - len(born)} slots after candidate failures")
        self.population.extend(born)

    def _stats(self, improved: bool) -> GenerationStats:
        scores = np.array([c.score for c in self.population], dtype=float)
        finite = scores[np.isfinite(scores)]
        if finite.size == 0:
            best = avg = worst = std = self.failed_score
        else:
            best = float(finite.max() if self.maximize else finite.min())
            worst = float(finite.min() if self.maximize else finite.max())
            avg = float(np.mean(finite))
            std = float(np.std(finite))
        return GenerationStats(
            iteration=self.iteration,
            best=best,
            avg=avg,
            worst=worst,
            std=std,
            population=len(self.population),
            failed=int(scores.size - finite.size),
            improved=improved,
        )

    def step(self, last: bool = False) -> GenerationStats:
        """
        Run one generation.

        Args:
            last: Stop after truncation (no refill), e.g. for a final ranking

        Returns:
            Statistics of the evaluated generation
        """
        if not self.population:
            raise ConfigurationError("Population is empty; seed the engine first")

        evaluated = self.evaluate()
        self.rank(evaluated)
        improved = self.record_best()
        stats = self._stats(improved)
        self.history.append(stats)

        self.truncate()
        if not last:
            self.refill()

        self.report(stats)
        self.iteration += 1
        self.phase = GenerationPhase.SEEDED
        return stats

    def run(
        self,
        stop: Optional[StopCondition] = None,
        on_generation: Optional[Callable[[EvolutionEngine, GenerationStats], None]] = None,
    ) -> Any:
        """
        Iterate generations until the stop condition fires.

        Args:
            stop: Stop condition; defaults to the one selected in settings
            on_generation: Called with the engine and stats after each generation

        Returns:
            The best-ever record
        """
        stop = stop or make_stop_condition(self.settings)
        stop.reset()
        logger.info(
            f"Starting {self.kind} evolution: population={self.settings.population}, "
            f"elite={self.settings.last_best}, stop={type(stop).__name__}"
        )
        while True:
            stats = self.step()
            if on_generation is not None:
                on_generation(self, stats)
            if stop.should_stop(self):
                break

        logger.info(f"Evolution complete after {self.iteration} generations. Best score: {self.best_score}")
        return self.best_ever

    # ------------------------------------------------------------------
    # Progress reporting
    # ------------------------------------------------------------------

    def progress_line(self, stats: GenerationStats, tag: str) -> str:
        return (
            f"{stats.iteration} - iter; {tag}; "
            f"SCORE: {stats.best:.3f}; BEST: {self.best_score}; "
            f"LENGTH: {len(self.population)}"
        )

    def report(self, stats: GenerationStats) -> None:
        """Throttled progress log; a new best is always reported."""
        if stats.improved:
            logger.info(self.progress_line(stats, "!!! BEST !!!"))
            jlog(
                "evolution_best",
                kind=self.kind,
                iteration=stats.iteration,
                score=self.best_score,
                population=len(self.population),
            )
        elif stats.iteration % self.settings.log_every == 0:
            logger.info(self.progress_line(stats, "!!! TIME !!!"))

    def convergence_history(self) -> dict:
        """Best and average score per generation."""
        return {
            'best': [s.best for s in self.history],
            'avg': [s.avg for s in self.history],
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_state(self) -> GenerationState:
        return GenerationState(
            kind=self.kind,
            candidates=list(self.population),
            config=self.settings.model_dump(),
            iteration=self.iteration,
            best_score=self.best_score,
            best_ever=self.best_ever,
        )

    def apply_state(self, state: GenerationState) -> bool:
        """Adopt a loaded state; False when it belongs to another engine kind."""
        if state.kind != self.kind:
            logger.warning(f"Refusing to restore {state.kind} state into a {self.kind} engine")
            return False
        if state.config:
            previous = self.settings
            self.settings = GeneticSettings(**state.config)
            try:
                self._configure()
            except ConfigurationError:
                self.settings = previous
                self._configure()
                raise
        self.population = list(state.candidates)
        self.iteration = state.iteration
        self.best_score = state.best_score
        self.best_ever = state.best_ever
        self.history = []
        self.phase = GenerationPhase.SEEDED
        return True

    def save(self, path: str | Path) -> None:
        """Write the generation state as JSON (raises PersistenceError)."""
        save_state(self.to_state(), path)

    def restore(self, path: str | Path) -> bool:
        """Load a saved generation state; False when it cannot be read."""
        state, ok = load_state(path, getattr(self, 'samples', None))
        if not ok:
            return False
        try:
            return self.apply_state(state)
        except (ValidationError, ConfigurationError) as e:
            logger.warning(f"Saved configuration is invalid: {e}")
            return False
