"""
Pluggable fitness scoring.

A scorer turns an evaluated candidate into the number the engine sorts on:
``scorer(candidate, context) -> float``. Engines take either a callable or a
registered name, so experiments change fitness without touching the loop.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict

from config.settings_schema import GeneticSettings
from core.exceptions import ConfigurationError
from neural.network import NAN_PENALTY


@dataclass(frozen=True)
class ScoringContext:
    """Population-level facts a scorer may need."""
    settings: GeneticSettings
    population_size: int
    total_ticks: int


ScoreFn = Callable[[Any, ScoringContext], float]


# Network scorers

def loss_score(network: Any, ctx: ScoringContext) -> float:
    """Negated loss of the last evaluation; a NaN loss scores as the fixed penalty."""
    if math.isnan(network.error):
        return -NAN_PENALTY
    return -network.error


def budget_score(network: Any, ctx: ScoringContext) -> float:
    """Budget left after the trading replay."""
    return network.budget


def trade_efficiency_score(network: Any, ctx: ScoringContext) -> float:
    """
    Realised price difference per expected trade.

    ``diff / (hours / 24 * trades_by_day + trades)``; 0 when the denominator
    is zero.
    """
    expected = ctx.settings.hours / 24 * ctx.settings.trades_by_day
    denominator = expected + network.trade_count
    if denominator == 0:
        return 0.0
    return network.cumulative_diff / denominator


# Order scorers

def sum_score(order: Any, ctx: ScoringContext) -> float:
    """Simulated terminal sum."""
    return order.running_sum


def median_offset(count: int, ctx: ScoringContext) -> float:
    """Distance of ``count`` from half the population, scaled by the tick count."""
    if ctx.total_ticks == 0:
        return 0.00001
    med = (ctx.population_size // 2 - count) / (ctx.total_ticks / 0.00001)
    if med < 0:
        return -med
    if med == 0:
        return 0.00001
    return med


def median_weighted_score(order: Any, ctx: ScoringContext) -> float:
    """Sum (in millions) divided by the median offset of the order's trade count."""
    return order.running_sum / 1_000_000 / median_offset(order.count, ctx)


SCORERS: Dict[str, ScoreFn] = {
    'loss': loss_score,
    'budget': budget_score,
    'trade_efficiency': trade_efficiency_score,
    'sum': sum_score,
    'median_weighted': median_weighted_score,
}


def get_scorer(scorer: str | ScoreFn) -> ScoreFn:
    """Resolve a scorer name or pass a callable through."""
    if callable(scorer):
        return scorer
    try:
        return SCORERS[scorer]
    except KeyError:
        raise ConfigurationError(
            f"Unknown scorer: {scorer}",
            context={"available": sorted(SCORERS)},
        ) from None
