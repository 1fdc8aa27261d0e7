"""Shared math utilities for gamemood.

Single-source scalar helpers used by the feature, inference, suggestion and
resonance modules. **No third-party dependencies.**
"""

from __future__ import annotations

import math
from collections.abc import Sequence

__all__ = ["clamp01", "mean", "sigmoid", "std", "variance"]


def clamp01(value: float) -> float:
    """Clamp *value* into ``[0, 1]``; NaN collapses to 0."""
    if value != value:
        return 0.0
    return max(0.0, min(1.0, float(value)))


def sigmoid(x: float) -> float:
    """Numerically stable logistic function."""
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


def mean(values: Sequence[float], default: float = 0.0) -> float:
    if not values:
        return default
    return sum(values) / len(values)


def variance(values: Sequence[float]) -> float:
    """Population variance; 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    return sum((v - avg) ** 2 for v in values) / len(values)


def std(values: Sequence[float]) -> float:
    return math.sqrt(variance(values))
