"""
Sample Provider
===============

Supplies the ordered, read-only training samples both engines evaluate
against. Each sample carries a feature vector, an optional target vector and
the transaction price for its tick.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from core.exceptions import SampleError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Sample:
    """One tick of training data."""
    features: Tuple[float, ...]
    targets: Optional[Tuple[float, ...]] = None
    price: float = 0.0

    @classmethod
    def of(
        cls,
        features: Iterable[float],
        targets: Optional[Iterable[float]] = None,
        price: float = 0.0,
    ) -> Sample:
        """Build a sample from any iterables, freezing them into tuples."""
        return cls(
            features=tuple(float(f) for f in features),
            targets=None if targets is None else tuple(float(t) for t in targets),
            price=float(price),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'features': list(self.features),
            'targets': None if self.targets is None else list(self.targets),
            'price': self.price,
        }


def validate_samples(samples: Sequence[Sample]) -> List[Sample]:
    """
    Check the provider contract and return the samples as a list.

    Raises:
        SampleError: empty sequence, differing feature widths or a
            non-finite price
    """
    if not samples:
        raise SampleError("Sample provider returned no samples")

    width = len(samples[0].features)
    for i, sample in enumerate(samples):
        if len(sample.features) != width:
            raise SampleError(
                "Feature width changed within the sample sequence",
                context={"index": i, "expected": width, "got": len(sample.features)},
            )
        if not math.isfinite(sample.price):
            raise SampleError("Sample price is not finite", context={"index": i})
    return list(samples)


def price_series(samples: Sequence[Sample]) -> np.ndarray:
    """Prices of ``samples`` as a read-only float array."""
    prices = np.array([s.price for s in samples], dtype=float)
    prices.setflags(write=False)
    return prices


class SampleProvider:
    """Base class for anything that yields the ordered sample sequence."""

    def fetch(self) -> Sequence[Sample]:
        raise NotImplementedError

    def load(self) -> List[Sample]:
        """Fetch and validate the samples."""
        samples = validate_samples(self.fetch())
        logger.info(
            f"{type(self).__name__} loaded {len(samples)} samples "
            f"with {len(samples[0].features)} features"
        )
        return samples


class StaticSampleProvider(SampleProvider):
    """Provider over an in-memory sample list."""

    def __init__(self, samples: Sequence[Sample]):
        self._samples = list(samples)

    def fetch(self) -> Sequence[Sample]:
        return self._samples


def samples_from_records(records: Iterable[Dict[str, Any]]) -> List[Sample]:
    """
    Build samples from plain dicts.

    Accepts ``features`` or ``inputs`` for the feature vector and ``targets``
    or ``outputs`` for the target vector.
    """
    samples = []
    for rec in records:
        features = rec.get('features', rec.get('inputs'))
        if features is None:
            raise SampleError("Record has no feature vector", context={"keys": sorted(rec)})
        targets = rec.get('targets', rec.get('outputs'))
        samples.append(Sample.of(features, targets, rec.get('price', 0.0)))
    return samples
