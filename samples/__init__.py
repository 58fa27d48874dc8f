"""
Sample provision: the read-only tick sequence every candidate is scored on.
"""

from .provider import (
    Sample,
    SampleProvider,
    StaticSampleProvider,
    samples_from_records,
    validate_samples,
    price_series,
)
from .features import KlineSampleProvider, percent_changes

__all__ = [
    'Sample',
    'SampleProvider',
    'StaticSampleProvider',
    'samples_from_records',
    'validate_samples',
    'price_series',
    'KlineSampleProvider',
    'percent_changes',
]
