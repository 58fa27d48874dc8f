"""
Order Simulator
===============

An order is a sorted list of tick indices. Replaying it over a price series
alternates buy and sell at those ticks, starting flat; the terminal budget is
the order's fitness.

Seeding strategies build the starting population of orders.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import numpy as np

from core.rng import rand_int_min


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of replaying an order."""
    final_sum: float
    open_position: bool


def simulate(trades: Sequence[int], prices: Sequence[float], budget: float) -> SimulationResult:
    """
    Replay alternating buy/sell actions.

    Starting flat with ``budget``, each trade index buys (budget -= price)
    when flat and sells (budget += price) when holding. A trailing unmatched
    buy stays paid for. ``prices`` is only read.
    """
    total = budget
    holding = False
    for t in trades:
        if holding:
            total += prices[t]
        else:
            total -= prices[t]
        holding = not holding
    return SimulationResult(final_sum=float(total), open_position=holding)


def simulate_down(trades: Sequence[int], prices: Sequence[float]) -> float:
    """Cumulative cost of buying at every trade index (minimised by the down variant)."""
    total = 0.0
    for t in trades:
        total -= prices[t]
    return float(total)


@dataclass
class OrderRecord:
    """Best-ever order snapshot (LBO)."""
    score: float
    count: int
    trades: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'score': self.score, 'count': self.count, 'trades': list(self.trades)}


@dataclass
class Order:
    """A candidate trade-timing schedule."""
    trades: List[int] = field(default_factory=list)
    count: int = 0
    running_sum: float = 0.0
    open_position: bool = False
    score: float = 0.0
    spacing: int = 0

    def __post_init__(self):
        self.trades = [int(t) for t in self.trades]
        self.count = len(self.trades)

    def set_trades(self, trades: Sequence[int]) -> Order:
        self.trades = [int(t) for t in trades]
        self.count = len(self.trades)
        return self

    def evaluate(self, prices: Sequence[float], budget: float, down: bool = False) -> float:
        """Simulate and store the resulting sum; returns it."""
        if down:
            self.running_sum = simulate_down(self.trades, prices)
            self.open_position = False
        else:
            result = simulate(self.trades, prices, budget)
            self.running_sum = result.final_sum
            self.open_position = result.open_position
        self.score = self.running_sum
        return self.running_sum

    def is_valid(self, max_ticks: int) -> bool:
        """Strictly ascending, duplicate-free and within ``[0, max_ticks)``."""
        if len(self.trades) != self.count:
            return False
        for a, b in zip(self.trades, self.trades[1:]):
            if a >= b:
                return False
        return all(0 <= t < max_ticks for t in self.trades)

    def clone(self) -> Order:
        twin = Order(
            trades=list(self.trades),
            running_sum=self.running_sum,
            score=self.score,
            spacing=self.spacing,
            open_position=self.open_position,
        )
        return twin

    def to_record(self) -> OrderRecord:
        return OrderRecord(score=self.score, count=self.count, trades=list(self.trades))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trades': list(self.trades),
            'count': self.count,
            'running_sum': self.running_sum,
            'open_position': self.open_position,
            'score': self.score,
            'spacing': self.spacing,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Order:
        order = cls(
            trades=data.get('trades', []),
            running_sum=float(data.get('running_sum', 0.0)),
            open_position=bool(data.get('open_position', False)),
            score=float(data.get('score', 0.0)),
            spacing=int(data.get('spacing', 0)),
        )
        return order


# =============================================================================
# SEEDING STRATEGIES
# =============================================================================

def evenly_spaced_order(count: int, max_ticks: int) -> Order:
    """Every ``max_ticks // count``-th tick from 0, truncated to ``count``."""
    count = max(0, min(count, max_ticks))
    if count == 0:
        return Order()
    spacing = max(1, max_ticks // count)
    order = Order(trades=list(range(0, max_ticks, spacing))[:count])
    order.spacing = spacing
    return order


def random_order(count: int, max_ticks: int, rng: np.random.Generator, low: int = 0) -> Order:
    """``count`` distinct uniform ticks in ``[low, max_ticks)``, sorted."""
    low = max(0, min(low, max_ticks))
    count = max(0, min(count, max_ticks - low))
    if count == 0:
        return Order()
    picks = rng.choice(np.arange(low, max_ticks), size=count, replace=False)
    return Order(trades=sorted(int(p) for p in picks))


def fresh_order(max_ticks: int, rng: np.random.Generator) -> Order:
    """Random trade count, evenly spaced; used for diversity injection."""
    return evenly_spaced_order(rand_int_min(rng, 1, max_ticks), max_ticks)


def seed_window(max_ticks: int, perc_by_hours: int, diff_shift: int) -> List[Order]:
    """
    Evenly spaced orders for every even count around a centre.

    Counts span ``centre +/- spread`` where centre is ``perc_by_hours`` percent
    and spread is ``diff_shift`` percent of the ticks.
    """
    centre = max_ticks * perc_by_hours // 100
    spread = max_ticks * diff_shift // 100
    orders = []
    for count in range(centre - spread, centre + spread + 1):
        if count <= 0 or count % 2 != 0 or count > max_ticks:
            continue
        orders.append(evenly_spaced_order(count, max_ticks))
    if not orders:
        orders.append(evenly_spaced_order(min(2, max_ticks), max_ticks))
    return orders


def seed_random_counts(max_ticks: int, population: int, rng: np.random.Generator) -> List[Order]:
    """Random orders with counts cycling from ``ticks/50`` up to ``ticks/10``."""
    low = max(1, max_ticks // 50)
    high = max(low + 1, max_ticks // 10)
    orders = []
    count = low
    while len(orders) < population:
        orders.append(random_order(count, max_ticks, rng))
        count += 1
        if count >= high:
            count = low
    return orders


def seed_percent(max_ticks: int, rng: np.random.Generator, percent: int = 10) -> List[Order]:
    """One random order using ``percent`` of the ticks (rounded up to even), skipping the first 10."""
    count = int(max_ticks * percent / 100)
    if count % 2 != 0:
        count += 1
    low = min(10, max(0, max_ticks - count))
    return [random_order(count, max_ticks, rng, low=low)]
