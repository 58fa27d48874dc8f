"""
Order evolution.

Searches trade-timing schedules over a fixed price series. The regular
variant maximises the simulated terminal sum; the ``down`` variant minimises
the cumulative buy cost.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from config.settings_schema import GeneticSettings
from core.exceptions import ConfigurationError
from core.rng import rand_int_min
from evolution.engine import EvolutionEngine
from evolution.order_mutation import OrderContext, OrderMutation, get_order_mutation, tune_order
from evolution.orders import (
    Order,
    OrderRecord,
    evenly_spaced_order,
    fresh_order,
    seed_percent,
    seed_random_counts,
    seed_window,
)
from evolution.scoring import ScoreFn, ScoringContext
from samples.provider import Sample, price_series, validate_samples

logger = logging.getLogger(__name__)


class OrderEvolution(EvolutionEngine):
    """Elitist search over trade index schedules."""

    kind = "order"

    def __init__(
        self,
        samples: Sequence[Sample],
        settings: Optional[GeneticSettings] = None,
        mutation: Optional[str | OrderMutation] = None,
        scorer: str | ScoreFn = "sum",
        down: bool = False,
        **kwargs,
    ):
        super().__init__(settings=settings, scorer=scorer, maximize=not down, **kwargs)
        self.samples: List[Sample] = validate_samples(samples)
        self.down = down
        self.prices = price_series(self.samples)
        self._mutation_choice = mutation
        self._configure()

    def _configure(self) -> None:
        """Derive tick range, operator and mutation context from the settings."""
        if self.settings.inps > len(self.samples):
            raise ConfigurationError(
                "inps exceeds the number of samples",
                context={"inps": self.settings.inps, "samples": len(self.samples)},
            )
        self.max_ticks = self.settings.inps or len(self.samples)

        mutation = self._mutation_choice or self.settings.order_mutation
        self.mutation: OrderMutation = get_order_mutation(mutation) if isinstance(mutation, str) else mutation
        self.context = OrderContext(
            prices=self.prices,
            budget=self.settings.budget,
            max_ticks=self.max_ticks,
            down=self.down,
        )

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def seed(self, strategy: Optional[str] = None, orders: Optional[Sequence[Order]] = None) -> OrderEvolution:
        """
        Build the starting population.

        Args:
            strategy: window, random_counts, percent or evenly_spaced;
                defaults to ``settings.order_seed_strategy``
            orders: Explicit starting orders (overrides ``strategy``)
        """
        if orders is not None:
            seeded = [o.clone() for o in orders]
        else:
            strategy = strategy or self.settings.order_seed_strategy
            rng = self._random.generator()
            if strategy == "window":
                seeded = seed_window(self.max_ticks, self.settings.perc_by_hours, self.settings.diff_shift)
            elif strategy == "random_counts":
                seeded = seed_random_counts(self.max_ticks, self.settings.population, rng)
            elif strategy == "percent":
                seeded = seed_percent(self.max_ticks, rng)
            elif strategy == "evenly_spaced":
                half = max(2, self.max_ticks // 2)
                seeded = [
                    evenly_spaced_order(rand_int_min(rng, 1, half), self.max_ticks)
                    for _ in range(self.settings.population)
                ]
            else:
                raise ConfigurationError(f"Unknown order seed strategy: {strategy}")

        for order in seeded:
            if not order.is_valid(self.max_ticks):
                raise ConfigurationError(
                    "Seed order out of range or unsorted",
                    context={"trades": order.trades[:10], "max_ticks": self.max_ticks},
                )
        self.population = seeded
        logger.info(f"Seeded {len(self.population)} orders over {self.max_ticks} ticks")
        return self

    def set_work_order(self, order: Order) -> OrderEvolution:
        """Restart the search from a single order."""
        self.population = [order.clone()]
        self.reset()
        return self

    # ------------------------------------------------------------------
    # Candidate hooks
    # ------------------------------------------------------------------

    def evaluate_candidate(self, candidate: Order, rng: np.random.Generator) -> None:
        candidate.evaluate(self.prices, self.settings.budget, self.down)

    def clone_candidate(self, candidate: Order, rng: np.random.Generator) -> Order:
        return candidate.clone()

    def mutate_candidate(self, candidate: Order, rng: np.random.Generator) -> None:
        self.mutation(candidate, self.context, rng)

    def fresh_candidate(self, rng: np.random.Generator) -> Order:
        return fresh_order(self.max_ticks, rng)

    def sub_mutations(self) -> int:
        return self.settings.max_mutate_iter

    def snapshot(self, candidate: Order) -> Order:
        return candidate.clone()

    def scoring_context(self) -> ScoringContext:
        return ScoringContext(
            settings=self.settings,
            population_size=len(self.population),
            total_ticks=self.max_ticks,
        )

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def best_trades(self) -> List[int]:
        """Trades of the best-ever order; empty before the first generation."""
        if self.best_ever is None:
            return []
        return list(self.best_ever.trades)

    def best_record(self) -> OrderRecord:
        if self.best_ever is None:
            return OrderRecord(score=0.0, count=0)
        return OrderRecord(
            score=self.best_score,
            count=self.best_ever.count,
            trades=list(self.best_ever.trades),
        )

    def tune(self, rounds: int, rng: Optional[np.random.Generator] = None) -> Order:
        """
        Local +/-1 search on the current best order.

        The tuned order replaces the best-ever record when it scores better.
        """
        if self.population:
            order = self.population[0]
        elif self.best_ever is not None:
            order = self.best_ever.clone()
            self.population = [order]
        else:
            raise ConfigurationError("Nothing to tune; seed the engine first")

        tune_order(order, self.context, rng or self._random.generator(), rounds=rounds)
        order.score = self._score_one(order, self.scoring_context(), True)
        if self.is_better(order.score, self.best_score):
            self.best_score = order.score
            self.best_ever = order.clone()
            logger.info(f"Tuning improved best score to {self.best_score}")
        return order
