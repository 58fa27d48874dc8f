"""
Order Mutation Operators
========================

Index-perturbation strategies for trade schedules. Every operator mutates
the order it is given (the engine hands it a fresh clone) and returns it with
trades still strictly ascending and duplicate-free.

Degenerate ranges are clamped, never rejected, so the generational loop
keeps running on tiny orders.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict

import numpy as np

from core.exceptions import ConfigurationError
from core.rng import rand_int, rand_int_min
from evolution.orders import Order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderContext:
    """Read-only inputs an operator may need to re-simulate."""
    prices: np.ndarray
    budget: float
    max_ticks: int
    down: bool = False

    def improves(self, candidate: float, current: float) -> bool:
        """Whether ``candidate`` is strictly better than ``current``."""
        return candidate < current if self.down else candidate > current


OrderMutation = Callable[[Order, OrderContext, np.random.Generator], Order]


def full_resample(order: Order, ctx: OrderContext, rng: np.random.Generator) -> Order:
    """Redraw all ``count`` ticks uniformly without repeats."""
    count = min(order.count, ctx.max_ticks)
    if count == 0:
        return order
    picks = rng.choice(ctx.max_ticks, size=count, replace=False)
    return order.set_trades(sorted(int(p) for p in picks))


def _neighbor_bounds(order: Order, k: int, max_ticks: int) -> tuple[int, int]:
    trades = order.trades
    n = len(trades)
    if n == 1:
        return 0, max_ticks - 1
    if k == 0:
        return 0, trades[1] - 1
    if k == n - 1:
        return trades[-2] + 1, max_ticks - 1
    return trades[k - 1] + 1, trades[k + 1] - 1


def neighbor_replace(order: Order, ctx: OrderContext, rng: np.random.Generator) -> Order:
    """
    Move one random trade strictly between its neighbours.

    The first trade may move anywhere below the second, the last anywhere
    above the one before it (up to the final tick). A collapsed interval
    falls back to one past the left neighbour.
    """
    if not order.trades:
        return order
    k = rand_int(rng, len(order.trades))
    low, high = _neighbor_bounds(order, k, ctx.max_ticks)
    if low <= high:
        value = rand_int_min(rng, low, high + 1)
    elif k > 0:
        value = order.trades[k - 1] + 1
    else:
        value = order.trades[k]
    order.trades[k] = value
    return order


def greedy_replace(order: Order, ctx: OrderContext, rng: np.random.Generator) -> Order:
    """Neighbour-replace a copy and keep its trades only when it simulates better."""
    if not order.trades:
        return order
    current = order.evaluate(ctx.prices, ctx.budget, ctx.down)
    trial = neighbor_replace(order.clone(), ctx, rng)
    if ctx.improves(trial.evaluate(ctx.prices, ctx.budget, ctx.down), current):
        order.set_trades(trial.trades)
        order.evaluate(ctx.prices, ctx.budget, ctx.down)
    return order


def unique_replace(order: Order, ctx: OrderContext, rng: np.random.Generator) -> Order:
    """Swap one random trade for a tick not yet in the order, then re-sort."""
    if not order.trades or order.count >= ctx.max_ticks:
        return order
    used = set(order.trades)
    k = rand_int(rng, order.count)
    while True:
        value = rand_int(rng, ctx.max_ticks)
        if value not in used:
            break
    trades = list(order.trades)
    trades[k] = value
    return order.set_trades(sorted(trades))


def tune_order(
    order: Order,
    ctx: OrderContext,
    rng: np.random.Generator,
    rounds: int = 1,
) -> Order:
    """
    Local search: nudge a random trade one tick left or right.

    A nudge is only tried onto a free tick, and kept when it improves the
    simulated sum.
    """
    if not order.trades:
        return order
    current = order.evaluate(ctx.prices, ctx.budget, ctx.down)
    for _ in range(rounds):
        used = set(order.trades)
        k = rand_int(rng, order.count)
        best_value, best_sum = None, current
        for value in (order.trades[k] - 1, order.trades[k] + 1):
            value = min(max(value, 0), ctx.max_ticks - 1)
            if value in used:
                continue
            trial = order.clone()
            trial.trades[k] = value
            trial_sum = trial.evaluate(ctx.prices, ctx.budget, ctx.down)
            if ctx.improves(trial_sum, best_sum):
                best_value, best_sum = value, trial_sum
        if best_value is not None:
            order.trades[k] = best_value
            current = order.evaluate(ctx.prices, ctx.budget, ctx.down)
    return order


ORDER_MUTATIONS: Dict[str, OrderMutation] = {
    'full_resample': full_resample,
    'neighbor_replace': neighbor_replace,
    'greedy_replace': greedy_replace,
    'unique_replace': unique_replace,
    'tune': tune_order,
}


def get_order_mutation(name: str) -> OrderMutation:
    """Look up a registered operator by name."""
    try:
        return ORDER_MUTATIONS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown order mutation: {name}",
            context={"available": sorted(ORDER_MUTATIONS)},
        ) from None
