"""
Descriptive statistics over decoded reading series.

Series are small (a rolling window of the last 7 to 30 samples), so every
function works on plain sequences of numbers and recomputes from scratch.
Each function guards its own degenerate inputs and returns 0 rather than
raising.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from telemetry.readings import HeartRateReading, HeartRateVariability


# |r| above this counts as a relationship worth reporting; a policy choice,
# not a statistical significance test
SIGNIFICANCE_THRESHOLD = 0.3
STRONG_CORRELATION = 0.5

# Sample size at which correlation confidence stops growing
FULL_CONFIDENCE_SAMPLES = 30


def average(values: Sequence[float]) -> float:
    if not values:
        return 0
    return math.fsum(values) / len(values)


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for an empty series."""
    if not values:
        return 0
    mean = average(values)
    return math.sqrt(average([(value - mean) ** 2 for value in values]))


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson correlation coefficient of two equally long series.

    Returns 0 when the series are empty, differ in length, or either one is
    constant (zero variance).
    """
    if len(x) != len(y) or not x:
        return 0

    x_mean = average(x)
    y_mean = average(y)

    sum_xy = 0.0
    sum_x2 = 0.0
    sum_y2 = 0.0
    for xi, yi in zip(x, y):
        x_dev = xi - x_mean
        y_dev = yi - y_mean
        sum_xy += x_dev * y_dev
        sum_x2 += x_dev * x_dev
        sum_y2 += y_dev * y_dev

    if sum_x2 == 0 or sum_y2 == 0:
        return 0

    r = sum_xy / math.sqrt(sum_x2 * sum_y2)
    # rounding can push |r| a hair past 1
    return max(-1.0, min(1.0, r))


def is_significant(r: float, threshold: float = SIGNIFICANCE_THRESHOLD) -> bool:
    return abs(r) > threshold


def correlation_confidence(r: float, sample_size: int) -> float:
    """Confidence (0-100) from correlation strength plus a sample size bonus."""
    base = abs(r) * 100
    sample_bonus = min(sample_size / FULL_CONFIDENCE_SAMPLES, 1) * 20
    return min(100, base + sample_bonus)


@dataclass(frozen=True)
class Correlation:
    coefficient: float
    sample_size: int
    significant: bool
    strength: str  # 'high', 'medium' or 'none'
    confidence: float


def correlate(x: Sequence[float], y: Sequence[float]) -> Correlation:
    """Pearson coefficient of ``x`` and ``y`` with its significance labels."""
    r = pearson_correlation(x, y)
    significant = is_significant(r)
    if abs(r) > STRONG_CORRELATION:
        strength = 'high'
    elif significant:
        strength = 'medium'
    else:
        strength = 'none'
    sample_size = len(x) if len(x) == len(y) else 0
    return Correlation(
        coefficient=r,
        sample_size=sample_size,
        significant=significant,
        strength=strength,
        confidence=correlation_confidence(r, sample_size),
    )


@dataclass(frozen=True)
class Summary:
    count: int
    mean: float
    stdev: float
    minimum: float
    maximum: float


def describe(values: Sequence[float], window: Optional[int] = None) -> Summary:
    """Summarize the last ``window`` values (all of them when window is None)."""
    if window is not None:
        values = list(values)[-window:] if window > 0 else []
    if not values:
        return Summary(count=0, mean=0, stdev=0, minimum=0, maximum=0)
    return Summary(
        count=len(values),
        mean=average(values),
        stdev=standard_deviation(values),
        minimum=min(values),
        maximum=max(values),
    )


def heart_rate_variability(reading: HeartRateReading) -> Optional[HeartRateVariability]:
    """Average RR and SDNN of a reading's RR intervals, or None without any."""
    if not reading.rr_intervals:
        return None
    return HeartRateVariability(
        timestamp=reading.timestamp,
        device_id=reading.device_id,
        rr_intervals=list(reading.rr_intervals),
        average_rr=average(reading.rr_intervals),
        sdnn=standard_deviation(reading.rr_intervals),
        confidence=reading.confidence,
    )
