"""
Core Infrastructure
====================

Foundational components for the neuro-genetic search.

Components:
- exceptions: Unified error hierarchy
- structured_log: JSON event logging
- numeric: Rounding and activation helpers
- rng: Thread-safe random source for parallel workers
"""

from .exceptions import (
    NeuroGeneticError,
    ConfigurationError,
    PersistenceError,
    SampleError,
    EvaluationError,
)
from .structured_log import jlog, read_recent_logs
from .rng import RandomSource, get_random_source

__all__ = [
    # Exceptions
    'NeuroGeneticError',
    'ConfigurationError',
    'PersistenceError',
    'SampleError',
    'EvaluationError',
    # Structured Logging
    'jlog',
    'read_recent_logs',
    # Random source
    'RandomSource',
    'get_random_source',
]
