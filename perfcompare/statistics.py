"""Summary statistics, significance testing, and performance scoring."""

import math
from typing import List, Sequence

from perfcompare.errors import EmptyInputError
from perfcompare.models import MetricSample, StatisticalSummary

# Fixed critical value for the pooled two-sample test. Not derived from the
# t distribution for the actual degrees of freedom.
CRITICAL_VALUE = 2.0

SCORE_WEIGHTS = {
    "lcp": 0.3,
    "fid": 0.2,
    "cls": 0.2,
    "ttfb": 0.15,
    "tti": 0.15,
}

# value / divisor is subtracted from 100; CLS uses value * 1000 instead.
SCORE_DIVISORS = {
    "lcp": 25.0,
    "fid": 1.0,
    "ttfb": 6.0,
    "tti": 35.0,
}


def round2(value: float) -> float:
    """Round half-up to 2 decimal places."""
    return math.floor(value * 100 + 0.5) / 100


def percentile(values: Sequence[float], p: float) -> float:
    """Linearly interpolated percentile of ``values`` (0 <= p <= 100).

    Raises:
        EmptyInputError: If ``values`` is empty.
    """
    if not values:
        raise EmptyInputError("cannot compute a percentile of an empty sequence")
    return _interpolate(sorted(values), p)


def calculate_statistics(values: Sequence[float]) -> StatisticalSummary:
    """Summarise a non-empty list of measurements.

    Variance is the population variance (divides by n). Every field is
    rounded to 2 decimals.

    Args:
        values: The measurements.

    Returns:
        A StatisticalSummary.

    Raises:
        EmptyInputError: If ``values`` is empty.
    """
    if not values:
        raise EmptyInputError("cannot calculate statistics for an empty sequence")

    ordered = sorted(values)
    n = len(ordered)
    mean = sum(ordered) / n
    variance = sum((v - mean) ** 2 for v in ordered) / n

    return StatisticalSummary(
        mean=round2(mean),
        median=round2(_interpolate(ordered, 50)),
        p95=round2(_interpolate(ordered, 95)),
        p99=round2(_interpolate(ordered, 99)),
        min=round2(ordered[0]),
        max=round2(ordered[-1]),
        standard_deviation=round2(math.sqrt(variance)),
        variance=round2(variance),
    )


def is_significant_difference(values1: Sequence[float], values2: Sequence[float]) -> bool:
    """Pooled-variance two-sample test against the fixed critical value 2.0.

    Both samples need at least two observations; otherwise the difference
    is reported as not significant.
    """
    n1, n2 = len(values1), len(values2)
    if n1 < 2 or n2 < 2:
        return False

    stats1 = calculate_statistics(values1)
    stats2 = calculate_statistics(values2)

    pooled_variance = ((n1 - 1) * stats1.variance + (n2 - 1) * stats2.variance) / (n1 + n2 - 2)
    standard_error = math.sqrt(pooled_variance * (1 / n1 + 1 / n2))
    difference = abs(stats1.mean - stats2.mean)

    if standard_error == 0:
        # Zero spread on both sides: any difference in means is decisive.
        return difference > 0

    return difference / standard_error > CRITICAL_VALUE


def sample_score(sample: MetricSample) -> float:
    """Weighted 0-100 score of a single sample (higher is better)."""
    vitals = sample.core_web_vitals
    perf = sample.performance_metrics
    values = {
        "lcp": vitals.lcp,
        "fid": vitals.fid,
        "ttfb": perf.ttfb,
        "tti": perf.tti,
    }

    score = 0.0
    for metric, divisor in SCORE_DIVISORS.items():
        score += SCORE_WEIGHTS[metric] * max(0.0, 100 - values[metric] / divisor)
    score += SCORE_WEIGHTS["cls"] * max(0.0, 100 - vitals.cls * 1000)
    return score


def calculate_performance_score(samples: Sequence[MetricSample]) -> float:
    """Mean weighted score across samples, rounded to 2 decimals.

    Raises:
        EmptyInputError: If ``samples`` is empty.
    """
    if not samples:
        raise EmptyInputError("cannot score an empty list of samples")
    scores: List[float] = [sample_score(s) for s in samples]
    return round2(sum(scores) / len(scores))


# -- internal helpers ---------------------------------------------------------


def _interpolate(ordered: Sequence[float], p: float) -> float:
    index = (p / 100) * (len(ordered) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if upper >= len(ordered):
        return ordered[-1]
    if lower < 0:
        return ordered[0]
    weight = index - lower
    return ordered[lower] * (1 - weight) + ordered[upper] * weight
