"""
Numeric helpers shared by the network engine and the sample shaping.

Rounding here is half-away-from-zero, not Python's banker's rounding, so
weights and percentages come out the same as the recorded market data.
"""
from __future__ import annotations

import math


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero."""
    return int(value + math.copysign(0.5, value))


def to_fixed(value: float, precision: int) -> float:
    """Round ``value`` to ``precision`` decimals, ties away from zero."""
    if math.isnan(value) or math.isinf(value):
        return value
    scale = 10.0 ** precision
    return round_half_away(value * scale) / scale


def round_unit(value: float) -> float:
    """Round to a whole number (as float), ties away from zero."""
    if math.isnan(value) or math.isinf(value):
        return value
    t = math.trunc(value)
    if abs(value - t) >= 0.5:
        return t + math.copysign(1.0, value)
    return float(t)


def sigmoid(value: float) -> float:
    """Logistic sigmoid, saturating instead of overflowing for large inputs."""
    if value < -700.0:
        return 0.0
    return 1.0 / (1.0 + math.exp(-value))


def sigmoid_derivative(activated: float) -> float:
    """Derivative of the sigmoid expressed through its own output."""
    return activated * (1.0 - activated)


def percent_diff(new: float, old: float) -> float:
    """
    Symmetric percent change between two values, rounded to 3 decimals.

    The change is taken relative to the midpoint of the two values. Returns 0
    when the midpoint is zero.
    """
    mid = (new + old) / 2
    if mid == 0:
        return 0.0
    return to_fixed((new - old) / mid * 100, 3)
