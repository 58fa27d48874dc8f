"""
Network evolution.

Evolves a population of FeedForwardNetwork candidates. An evaluator runs the
candidate against the shared samples and fills in its raw fitness (loss or
trading side-channel); the scorer turns that into the sort key.

Usage:
    engine = NetworkEvolution(samples, settings=genetic, network_settings=net)
    engine.seed()
    best = engine.run()
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from config.settings_schema import GeneticSettings, NetworkSettings
from core.exceptions import ConfigurationError, EvaluationError
from core.numeric import percent_diff
from evolution.engine import EvolutionEngine
from evolution.scoring import ScoreFn, ScoringContext, loss_score
from neural.network import BUY, SELL, FeedForwardNetwork, is_valid_decision
from samples.provider import Sample, validate_samples

logger = logging.getLogger(__name__)

Evaluator = Callable[[FeedForwardNetwork, GeneticSettings, np.random.Generator], None]


def evaluate_random_sample(
    network: FeedForwardNetwork,
    settings: GeneticSettings,
    rng: np.random.Generator,
) -> None:
    """Forward one random sample and keep its loss as the network's error."""
    network.train_step(rng)


def evaluate_trading_replay(
    network: FeedForwardNetwork,
    settings: GeneticSettings,
    rng: np.random.Generator,
) -> None:
    """
    Walk every sample in order and trade on the one-hot decision.

    The side-channel is reset to ``settings.budget`` first. Invalid decisions
    are skipped. With ``min_perce`` set, a sell only closes the position when
    the move since entry reaches that percentage.
    """
    network.reset_trading(settings.budget)
    for sample in network.samples:
        decision = network.predict_one_hot(sample.features)
        if not is_valid_decision(decision):
            continue
        if (
            settings.min_perce > 0
            and decision[SELL] == 1
            and network.position_open
            and percent_diff(sample.price, network.last_trade_price) < settings.min_perce
        ):
            continue
        network.operate(decision, sample.price)
    if network.position_open:
        logger.debug(f"Replay ended holding a position bought at {network.last_trade_price}")


NETWORK_EVALUATORS: Dict[str, Evaluator] = {
    'random_sample': evaluate_random_sample,
    'trading_replay': evaluate_trading_replay,
}


class NetworkEvolution(EvolutionEngine):
    """Elitist search over network weights."""

    kind = "network"

    def __init__(
        self,
        samples: Sequence[Sample],
        settings: Optional[GeneticSettings] = None,
        network_settings: Optional[NetworkSettings] = None,
        evaluator: str | Evaluator = evaluate_random_sample,
        scorer: str | ScoreFn = "loss",
        **kwargs,
    ):
        super().__init__(settings=settings, scorer=scorer, maximize=True, **kwargs)
        self.samples: List[Sample] = validate_samples(samples)
        self.network_settings = network_settings or NetworkSettings()
        if isinstance(evaluator, str):
            if evaluator not in NETWORK_EVALUATORS:
                raise ConfigurationError(
                    f"Unknown network evaluator: {evaluator}",
                    context={"available": sorted(NETWORK_EVALUATORS)},
                )
            evaluator = NETWORK_EVALUATORS[evaluator]
        self.evaluator = evaluator
        if evaluator is evaluate_random_sample and self.samples[0].targets is None:
            raise ConfigurationError("Loss evaluation needs samples with targets")

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def new_network(self, rng: Optional[np.random.Generator] = None) -> FeedForwardNetwork:
        """A freshly built network with random weights over the engine's samples."""
        net = FeedForwardNetwork.from_settings(self.network_settings, rng or self._random.generator())
        net.build(self.samples, outputs=self.network_settings.outputs)
        net.budget = self.settings.budget
        return net

    def seed(self, factory: Optional[Callable[[], FeedForwardNetwork]] = None) -> NetworkEvolution:
        """
        Fill the population with ``settings.population`` networks.

        Args:
            factory: Optional zero-argument network builder; networks it
                returns without samples are attached to the engine's samples
        """
        self.population = []
        rngs = self._random.spawn(self.settings.population)
        for rng in rngs:
            if factory is None:
                net = self.new_network(rng)
            else:
                net = factory()
                if not net.samples:
                    net.set_samples(self.samples)
                net.budget = self.settings.budget
            self.add(net)
        logger.info(f"Seeded {len(self.population)} networks ({self.population[0].weight_count()} weights each)")
        return self

    # ------------------------------------------------------------------
    # Candidate hooks
    # ------------------------------------------------------------------

    def evaluate_candidate(self, candidate: FeedForwardNetwork, rng: np.random.Generator) -> None:
        try:
            self.evaluator(candidate, self.settings, rng)
        except EvaluationError:
            raise
        except Exception as e:
            raise EvaluationError("Network evaluation failed", cause=e) from e

    def clone_candidate(self, candidate: FeedForwardNetwork, rng: np.random.Generator) -> FeedForwardNetwork:
        return candidate.clone(rng)

    def mutate_candidate(self, candidate: FeedForwardNetwork, rng: np.random.Generator) -> None:
        candidate.mutate_weight(self.settings.min_rand_weight, self.settings.max_rand_weight, rng)

    def fresh_candidate(self, rng: np.random.Generator) -> FeedForwardNetwork:
        return self.new_network(rng)

    def sub_mutations(self) -> int:
        if self.settings.single_mutation:
            return 1
        return self.settings.limit_mutate_sub

    def parents_for(self, slots: int, rng: np.random.Generator) -> List[FeedForwardNetwork]:
        if self.settings.single_mutation:
            return [self.population[0]] * slots
        return super().parents_for(slots, rng)

    def scoring_context(self) -> ScoringContext:
        return ScoringContext(
            settings=self.settings,
            population_size=len(self.population),
            total_ticks=self.settings.inps or len(self.samples),
        )

    def convergence_target(self, threshold: float) -> float:
        # loss scores are negated errors: converge once error <= threshold
        if self.scorer is loss_score:
            return -threshold
        return threshold

    def progress_line(self, stats, tag: str) -> str:
        best = self.population[0] if self.population else None
        error = best.error if best is not None else float('nan')
        return f"{super().progress_line(stats, tag)}; ERROR: {error}"
