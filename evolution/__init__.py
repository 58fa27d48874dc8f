"""
Evolutionary search over networks and trade-timing orders.

The shared loop lives in ``engine``; ``network_evolution`` and
``order_evolution`` plug their candidate types into it.
"""

from .engine import (
    EvolutionEngine,
    GenerationPhase,
    GenerationStats,
    StopCondition,
    ScoreThreshold,
    IterationBudget,
    Stagnation,
    make_stop_condition,
)
from .network_evolution import (
    NetworkEvolution,
    NETWORK_EVALUATORS,
    evaluate_random_sample,
    evaluate_trading_replay,
)
from .order_evolution import OrderEvolution
from .order_mutation import (
    ORDER_MUTATIONS,
    OrderContext,
    full_resample,
    neighbor_replace,
    greedy_replace,
    unique_replace,
    tune_order,
    get_order_mutation,
)
from .orders import (
    Order,
    OrderRecord,
    SimulationResult,
    simulate,
    simulate_down,
    evenly_spaced_order,
    random_order,
    fresh_order,
    seed_window,
    seed_random_counts,
    seed_percent,
)
from .persistence import GenerationState, save_state, load_state
from .scoring import (
    SCORERS,
    ScoringContext,
    get_scorer,
    loss_score,
    budget_score,
    trade_efficiency_score,
    sum_score,
    median_weighted_score,
)

__all__ = [
    # Loop
    'EvolutionEngine',
    'GenerationPhase',
    'GenerationStats',
    'StopCondition',
    'ScoreThreshold',
    'IterationBudget',
    'Stagnation',
    'make_stop_condition',
    # Networks
    'NetworkEvolution',
    'NETWORK_EVALUATORS',
    'evaluate_random_sample',
    'evaluate_trading_replay',
    # Orders
    'OrderEvolution',
    'Order',
    'OrderRecord',
    'SimulationResult',
    'simulate',
    'simulate_down',
    'evenly_spaced_order',
    'random_order',
    'fresh_order',
    'seed_window',
    'seed_random_counts',
    'seed_percent',
    'ORDER_MUTATIONS',
    'OrderContext',
    'full_resample',
    'neighbor_replace',
    'greedy_replace',
    'unique_replace',
    'tune_order',
    'get_order_mutation',
    # Persistence
    'GenerationState',
    'save_state',
    'load_state',
    # Scoring
    'SCORERS',
    'ScoringContext',
    'get_scorer',
    'loss_score',
    'budget_score',
    'trade_efficiency_score',
    'sum_score',
    'median_weighted_score',
]
