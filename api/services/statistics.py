"""
Summary statistics for measure and rating cohorts.

Median and quartiles use linear interpolation between order statistics
(Hyndman & Fan type 7, numpy's default "linear" method): for percentile p
over n sorted values, index = p * (n - 1), and the result interpolates
between the two values bracketing that index. Display tiers downstream
threshold on these numbers, so the method is fixed here.
"""

import math
from typing import Iterable, List, Optional

import numpy as np

from .types import SummaryStats


def _clean(values: Iterable[Optional[float]]) -> List[float]:
    cleaned = []
    for value in values:
        if value is None:
            continue
        value = float(value)
        if math.isnan(value):
            continue
        cleaned.append(value)
    return cleaned


def percentile(values: Iterable[Optional[float]], p: float) -> Optional[float]:
    """
    Value at fraction p (0..1) of the sorted data, linearly interpolated.

    Returns None for an empty input.
    """
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"percentile fraction must be within [0, 1], got {p}")

    data = _clean(values)
    if not data:
        return None
    return float(np.percentile(data, p * 100, method='linear'))


def median(values: Iterable[Optional[float]]) -> Optional[float]:
    return percentile(values, 0.5)


def compute_summary_stats(values: Iterable[Optional[float]]) -> SummaryStats:
    """count/average/min/max/median/q1/q3; every field but count is None when empty."""
    data = np.sort(np.asarray(_clean(values), dtype=float))
    if data.size == 0:
        return SummaryStats()

    q1, med, q3 = np.percentile(data, [25, 50, 75], method='linear')
    return SummaryStats(
        count=int(data.size),
        average=float(data.mean()),
        min=float(data[0]),
        max=float(data[-1]),
        median=float(med),
        q1=float(q1),
        q3=float(q3),
    )


def percentile_rank(values: Iterable[Optional[float]], target: Optional[float]) -> Optional[float]:
    """Share of values at or below target, as a percentage rounded to 2 places."""
    if target is None:
        return None
    data = _clean(values)
    if not data:
        return None

    at_or_below = sum(1 for value in data if value <= target)
    return round(at_or_below / len(data) * 100, 2)
