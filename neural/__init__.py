"""
Feed-forward network engine evolved by the genetic loop.
"""

from .network import (
    Neuron,
    AccuracyResult,
    FeedForwardNetwork,
    load_network,
    one_hot_decode,
    is_valid_decision,
)

__all__ = [
    'Neuron',
    'AccuracyResult',
    'FeedForwardNetwork',
    'load_network',
    'one_hot_decode',
    'is_valid_decision',
]
