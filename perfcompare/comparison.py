"""Compare baseline and candidate sample populations metric by metric."""

from typing import Callable, Dict, List, Sequence

from perfcompare.models import (
    ComparisonResult,
    MetricSample,
    PerformanceThresholds,
    ThresholdReport,
    WinSummary,
)
from perfcompare.statistics import calculate_statistics, is_significant_difference, round2

BASELINE = "baseline"
CANDIDATE = "candidate"
TIE = "tie"

# Relative difference of the means below which two sides are equivalent.
TIE_THRESHOLD = 0.05

DEFAULT_REGRESSION_THRESHOLD = 10.0

_EXTRACTORS: Dict[str, Callable[[MetricSample], float]] = {
    "lcp": lambda s: s.core_web_vitals.lcp,
    "fid": lambda s: s.core_web_vitals.fid,
    "inp": lambda s: s.core_web_vitals.inp,
    "cls": lambda s: s.core_web_vitals.cls,
    "ttfb": lambda s: s.performance_metrics.ttfb,
    "fcp": lambda s: s.performance_metrics.fcp,
    "tti": lambda s: s.performance_metrics.tti,
    "totalPageLoadTime": lambda s: s.performance_metrics.total_page_load_time,
    "domContentLoaded": lambda s: s.performance_metrics.dom_content_loaded,
}

COMPARED_METRICS = tuple(_EXTRACTORS)

# Every compared metric is a duration or a shift score.
LOWER_IS_BETTER = frozenset(COMPARED_METRICS)


def extract_metric_values(samples: Sequence[MetricSample], metric: str) -> List[float]:
    """Values of ``metric`` across samples, dropping 0 ("not measured")."""
    extractor = _EXTRACTORS[metric]
    return [v for v in (extractor(s) for s in samples) if v > 0]


def compare_applications(
    baseline_samples: Sequence[MetricSample],
    candidate_samples: Sequence[MetricSample],
    scenario: str,
) -> List[ComparisonResult]:
    """Build one ComparisonResult per metric measured on both sides.

    Args:
        baseline_samples: Samples from the baseline application.
        candidate_samples: Samples from the candidate application.
        scenario: Scenario name stamped on each result.

    Returns:
        Comparisons in the fixed metric order. A metric with no positive
        value on either side is omitted.
    """
    comparisons = []
    for metric in COMPARED_METRICS:
        baseline_values = extract_metric_values(baseline_samples, metric)
        candidate_values = extract_metric_values(candidate_samples, metric)
        if not baseline_values or not candidate_values:
            continue

        baseline_stats = calculate_statistics(baseline_values)
        candidate_stats = calculate_statistics(candidate_values)

        comparisons.append(ComparisonResult(
            scenario=scenario,
            metric=metric,
            baseline=baseline_stats,
            candidate=candidate_stats,
            improvement_percent=calculate_improvement(baseline_stats.mean, candidate_stats.mean),
            significant_difference=is_significant_difference(baseline_values, candidate_values),
            winner=determine_winner(baseline_stats.mean, candidate_stats.mean, metric),
        ))
    return comparisons


def calculate_improvement(baseline_mean: float, candidate_mean: float) -> float:
    """Percent by which the candidate is faster than the baseline."""
    if baseline_mean == 0:
        return 0.0
    return round2((baseline_mean - candidate_mean) / baseline_mean * 100)


def determine_winner(baseline_mean: float, candidate_mean: float, metric: str) -> str:
    average = (baseline_mean + candidate_mean) / 2
    if average == 0 or abs(baseline_mean - candidate_mean) / average < TIE_THRESHOLD:
        return TIE
    if metric in LOWER_IS_BETTER:
        return BASELINE if baseline_mean < candidate_mean else CANDIDATE
    return BASELINE if baseline_mean > candidate_mean else CANDIDATE


def detect_regressions(
    comparisons: Sequence[ComparisonResult],
    threshold_percent: float = DEFAULT_REGRESSION_THRESHOLD,
) -> List[ComparisonResult]:
    """Comparisons where the candidate is significantly and materially slower."""
    return [
        c for c in comparisons
        if c.winner == BASELINE
        and abs(c.improvement_percent) > threshold_percent
        and c.significant_difference
    ]


def generate_recommendations(comparisons: Sequence[ComparisonResult]) -> List[str]:
    """Advisory text derived from the comparisons. Never raises on content."""
    recommendations = []
    for c in comparisons:
        label = c.metric.upper()
        unit = "" if c.metric == "cls" else "ms"
        candidate_mean = _fmt(c.candidate.mean) + unit
        baseline_mean = _fmt(c.baseline.mean) + unit

        if c.winner == CANDIDATE and c.improvement_percent > 10:
            recommendations.append(
                f"{label}: candidate is {_fmt(abs(c.improvement_percent))}% faster "
                f"({candidate_mean} vs {baseline_mean})"
            )
        elif c.winner == BASELINE and c.improvement_percent < -10:
            recommendations.append(
                f"WARNING {label}: candidate is {_fmt(abs(c.improvement_percent))}% slower "
                f"({candidate_mean} vs {baseline_mean})"
            )

        if c.metric == "lcp" and c.candidate.mean > 2500:
            recommendations.append(
                "Optimize LCP: consider lazy-loading images and speeding up server rendering"
            )
        if c.metric == "cls" and c.candidate.mean > 0.1:
            recommendations.append(
                "Reduce CLS: set explicit image dimensions and reserve space for dynamic content"
            )
        if c.metric == "ttfb" and c.candidate.mean > 600:
            recommendations.append(
                "Improve TTFB: optimize server response time and consider a CDN"
            )
    return recommendations


def check_thresholds(
    samples: Sequence[MetricSample],
    thresholds: PerformanceThresholds,
) -> ThresholdReport:
    """Check every sample against fixed thresholds.

    Args:
        samples: Samples to validate.
        thresholds: Upper bounds for LCP, FID, CLS, TTFB, and total load time.

    Returns:
        A ThresholdReport listing one failure string per breached bound.
    """
    failures = []
    for s in samples:
        vitals = s.core_web_vitals
        perf = s.performance_metrics
        prefix = f"[{s.application} #{s.iteration}] "

        if vitals.lcp > thresholds.lcp:
            failures.append(
                f"{prefix}LCP {_fmt(vitals.lcp)}ms exceeds threshold {_fmt(thresholds.lcp)}ms"
            )
        if vitals.fid > thresholds.fid:
            failures.append(
                f"{prefix}FID {_fmt(vitals.fid)}ms exceeds threshold {_fmt(thresholds.fid)}ms"
            )
        if vitals.cls > thresholds.cls:
            failures.append(
                f"{prefix}CLS {_fmt(vitals.cls)} exceeds threshold {_fmt(thresholds.cls)}"
            )
        if perf.ttfb > thresholds.ttfb:
            failures.append(
                f"{prefix}TTFB {_fmt(perf.ttfb)}ms exceeds threshold {_fmt(thresholds.ttfb)}ms"
            )
        if perf.total_page_load_time > thresholds.total_load_time:
            failures.append(
                f"{prefix}Total Load Time {_fmt(perf.total_page_load_time)}ms exceeds "
                f"threshold {_fmt(thresholds.total_load_time)}ms"
            )

    return ThresholdReport(passed=not failures, failures=failures)


def summarize(comparisons: Sequence[ComparisonResult]) -> WinSummary:
    """Count wins per side and pick the overall winner."""
    summary = WinSummary()
    for c in comparisons:
        if c.winner == BASELINE:
            summary.baseline_wins += 1
        elif c.winner == CANDIDATE:
            summary.candidate_wins += 1
        else:
            summary.ties += 1

    if summary.baseline_wins > summary.candidate_wins:
        summary.overall_winner = BASELINE
    elif summary.candidate_wins > summary.baseline_wins:
        summary.overall_winner = CANDIDATE
    return summary


def _fmt(value: float) -> str:
    return f"{value:g}" if abs(value) < 1e6 else f"{value:.0f}"
