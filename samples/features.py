"""
Kline feature shaping.

Turns an ordered OHLCV frame into samples whose features are the trailing
window of percent changes of close price, trade count and volume.
"""
from __future__ import annotations

from typing import List, Sequence

import numpy as np
import pandas as pd

from core.exceptions import SampleError
from samples.provider import Sample, SampleProvider

REQUIRED_COLUMNS = ('close', 'volume', 'trades')


def _fixed(values: pd.Series, precision: int) -> pd.Series:
    """Round to ``precision`` decimals, ties away from zero."""
    scale = 10.0 ** precision
    scaled = values * scale
    return np.sign(scaled) * np.floor(scaled.abs() + 0.5) / scale


def _change(values: pd.Series) -> pd.Series:
    """Symmetric percent change against the previous row; 0 for the first row or a zero midpoint."""
    previous = values.shift()
    mid = (values + previous) / 2
    change = ((values - previous) / mid * 100).where(mid != 0, 0.0).fillna(0.0)
    return _fixed(change, 3)


def percent_changes(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Per-row percent change columns.

    ``percent`` is the close change; ``trades_pct`` and ``volume_pct`` are the
    trade-count and volume changes scaled down by 100. The first row is 0.
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in frame.columns]
    if missing:
        raise SampleError("Kline frame is missing columns", context={"missing": missing})

    return pd.DataFrame(
        {
            'percent': _change(frame['close'].astype(float)),
            'trades_pct': _fixed(_change(frame['trades'].astype(float)) / 100, 3),
            'volume_pct': _fixed(_change(frame['volume'].astype(float)) / 100, 3),
        },
        index=frame.index,
    )


class KlineSampleProvider(SampleProvider):
    """
    Shape kline rows into samples.

    Args:
        frame: Rows ordered by time with ``close``, ``volume`` and ``trades``
        window: Number of previous rows feeding each feature vector
        next_percent_target: Attach the following row's close change as a
            single-value target
    """

    def __init__(self, frame: pd.DataFrame, window: int = 10, next_percent_target: bool = False):
        if window < 1:
            raise SampleError("Window must be at least 1", context={"window": window})
        self.frame = frame
        self.window = window
        self.next_percent_target = next_percent_target

    def fetch(self) -> Sequence[Sample]:
        if 'timestamp' in self.frame.columns:
            frame = self.frame.sort_values('timestamp').reset_index(drop=True)
        else:
            frame = self.frame.reset_index(drop=True)

        changes = percent_changes(frame)
        percent = changes['percent'].tolist()
        trades_pct = changes['trades_pct'].tolist()
        volume_pct = changes['volume_pct'].tolist()
        close = frame['close'].astype(float).tolist()

        w = self.window
        samples: List[Sample] = []
        for i in range(w + 1, len(frame)):
            features = percent[i - w:i] + trades_pct[i - w:i] + volume_pct[i - w:i]
            targets = None
            if self.next_percent_target:
                if i + 1 >= len(frame):
                    break
                targets = [percent[i + 1]]
            samples.append(Sample.of(features, targets, close[i]))
        return samples
