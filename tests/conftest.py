"""
Pytest configuration and shared fixtures for the neuro-genetic search tests.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core import structured_log
from samples.provider import Sample


@pytest.fixture(autouse=True)
def isolated_event_log(tmp_path, monkeypatch):
    """Send structured log events to a per-test directory."""
    log_dir = tmp_path / "logs"
    monkeypatch.setattr(structured_log, "LOG_DIR", log_dir)
    monkeypatch.setattr(structured_log, "LOG_FILE", log_dir / "events.jsonl")
    monkeypatch.setattr(structured_log, "_file_handler", None)
    yield log_dir
    if structured_log._file_handler is not None:
        structured_log._file_handler.close()
    structured_log._file_handler = None


@pytest.fixture
def rng():
    """Deterministic generator for a single test."""
    return np.random.default_rng(42)


@pytest.fixture
def price_list():
    """Ten ticks with a dip at 2 and a peak at 5."""
    return [110.0, 105.0, 100.0, 120.0, 130.0, 150.0, 140.0, 125.0, 115.0, 135.0]


@pytest.fixture
def price_samples(price_list):
    """Samples carrying only a price (order search input)."""
    return [Sample.of([float(i)], None, p) for i, p in enumerate(price_list)]


@pytest.fixture
def xor_samples():
    """Two-input XOR with a single target."""
    return [
        Sample.of([0, 0], [0], 10.0),
        Sample.of([0, 1], [1], 11.0),
        Sample.of([1, 0], [1], 12.0),
        Sample.of([1, 1], [0], 13.0),
    ]


@pytest.fixture
def decision_samples():
    """Three-feature samples with one-hot hold/buy/sell targets."""
    np.random.seed(7)
    samples = []
    for i in range(30):
        features = np.random.randn(3).round(3)
        target = [0, 0, 0]
        target[i % 3] = 1
        samples.append(Sample.of(features, target, 100.0 + i))
    return samples


@pytest.fixture
def kline_frame():
    """Generate kline data with close, volume and trade counts."""
    np.random.seed(42)
    n = 40
    returns = np.random.randn(n) * 0.02
    close = 100 * np.exp(np.cumsum(returns))
    return pd.DataFrame({
        'timestamp': pd.date_range(start='2023-01-01', periods=n, freq='h'),
        'close': close,
        'volume': np.random.randint(1000, 5000, n).astype(float),
        'trades': np.random.randint(50, 300, n).astype(float),
    })
