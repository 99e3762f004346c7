"""Sample collection across workers, JSONL persistence, and report output."""

import json
import logging
import os
import threading
from dataclasses import asdict
from typing import Dict, List

from perfcompare.models import (
    ApplicationMetrics,
    ComparisonResult,
    CoreWebVitals,
    MetricSample,
    PerformanceMetrics,
    PerformanceReport,
    ResourceTiming,
)

logger = logging.getLogger(__name__)


class SampleCollector:
    """Append-only sample store shared by parallel workers.

    Workers call ``add`` concurrently. Reads are only allowed after ``close``,
    which marks the point where every worker has joined.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._samples: List[MetricSample] = []
        self._closed = False

    def add(self, sample: MetricSample) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("collector is closed; no more samples can be added")
            self._samples.append(sample)

    def close(self) -> None:
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def all(self) -> List[MetricSample]:
        self._require_closed()
        return list(self._samples)

    def samples_for(self, application: str, scenario: str) -> List[MetricSample]:
        self._require_closed()
        return [
            s for s in self._samples
            if s.application == application and s.scenario == scenario
        ]

    def scenarios(self) -> List[str]:
        self._require_closed()
        seen: Dict[str, None] = {}
        for s in self._samples:
            seen.setdefault(s.scenario, None)
        return list(seen)

    def _require_closed(self) -> None:
        if not self._closed:
            raise RuntimeError("collector must be closed before its samples are read")


# -- sample records -----------------------------------------------------------


def sample_to_dict(sample: MetricSample) -> dict:
    """Serialize a sample using the camelCase record schema."""
    vitals = sample.core_web_vitals
    perf = sample.performance_metrics
    app = sample.application_metrics

    return {
        "timestamp": sample.timestamp,
        "url": sample.url,
        "environment": sample.environment,
        "application": sample.application,
        "scenario": sample.scenario,
        "iteration": sample.iteration,
        "coreWebVitals": {
            "lcp": vitals.lcp,
            "fid": vitals.fid,
            "cls": vitals.cls,
            "inp": vitals.inp,
        },
        "performanceMetrics": {
            "ttfb": perf.ttfb,
            "fcp": perf.fcp,
            "tti": perf.tti,
            "dnsTime": perf.dns_time,
            "sslTime": perf.ssl_time,
            "totalPageLoadTime": perf.total_page_load_time,
            "domContentLoaded": perf.dom_content_loaded,
            "loadComplete": perf.load_complete,
            "resourceLoadTimes": [
                {
                    "name": r.name,
                    "type": r.type,
                    "duration": r.duration,
                    "size": r.size,
                    "transferSize": r.transfer_size,
                }
                for r in perf.resource_load_times
            ],
        },
        "applicationMetrics": {
            "navigationTimes": dict(app.navigation_times),
            "apiResponseTimes": dict(app.api_response_times),
            "formProcessingTimes": dict(app.form_processing_times),
        },
        "userAgent": sample.user_agent,
    }


def sample_from_dict(raw: dict) -> MetricSample:
    """Inverse of sample_to_dict. Missing numeric fields become 0."""
    vitals = raw.get("coreWebVitals") or {}
    perf = raw.get("performanceMetrics") or {}
    app = raw.get("applicationMetrics") or {}

    return MetricSample(
        timestamp=str(raw.get("timestamp", "")),
        url=str(raw.get("url", "")),
        environment=str(raw.get("environment", "pre")),
        application=str(raw.get("application", "")),
        scenario=str(raw.get("scenario", "")),
        iteration=int(raw.get("iteration", 0)),
        core_web_vitals=CoreWebVitals(
            lcp=_float(vitals, "lcp"),
            cls=_float(vitals, "cls"),
            fid=_float(vitals, "fid"),
            inp=_float(vitals, "inp"),
        ),
        performance_metrics=PerformanceMetrics(
            ttfb=_float(perf, "ttfb"),
            fcp=_float(perf, "fcp"),
            tti=_float(perf, "tti"),
            dns_time=_float(perf, "dnsTime"),
            ssl_time=_float(perf, "sslTime"),
            total_page_load_time=_float(perf, "totalPageLoadTime"),
            dom_content_loaded=_float(perf, "domContentLoaded"),
            load_complete=_float(perf, "loadComplete"),
            resource_load_times=tuple(
                ResourceTiming(
                    name=str(r.get("name", "")),
                    type=str(r.get("type", "other")),
                    duration=_float(r, "duration"),
                    size=int(_float(r, "size")),
                    transfer_size=int(_float(r, "transferSize")),
                )
                for r in perf.get("resourceLoadTimes") or []
            ),
        ),
        application_metrics=ApplicationMetrics(
            navigation_times=dict(app.get("navigationTimes") or {}),
            api_response_times=dict(app.get("apiResponseTimes") or {}),
            form_processing_times=dict(app.get("formProcessingTimes") or {}),
        ),
        user_agent=str(raw.get("userAgent", "")),
    )


def append_sample(sample: MetricSample, path: str) -> None:
    """Append one sample as a JSONL line, creating parent directories.

    Never overwrites existing entries.
    """
    parent = os.path.dirname(path)
    if parent and not os.path.isdir(parent):
        os.makedirs(parent, exist_ok=True)

    with open(path, "a") as f:
        f.write(json.dumps(sample_to_dict(sample)) + "\n")


def read_samples(path: str) -> List[MetricSample]:
    """Read every sample from a JSONL file. Malformed lines are skipped."""
    if not os.path.isfile(path):
        return []

    samples = []
    with open(path, "r") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
                samples.append(sample_from_dict(raw))
            except (json.JSONDecodeError, AttributeError, TypeError, ValueError):
                logger.warning("Skipping malformed sample on line %d of %s", lineno, path)
                continue
    return samples


def group_by_scenario(samples: List[MetricSample]) -> Dict[str, List[MetricSample]]:
    grouped: Dict[str, List[MetricSample]] = {}
    for s in samples:
        grouped.setdefault(s.scenario, []).append(s)
    return grouped


# -- reports ------------------------------------------------------------------


def comparison_to_dict(c: ComparisonResult) -> dict:
    return {
        "scenario": c.scenario,
        "metric": c.metric,
        "baseline": asdict(c.baseline),
        "candidate": asdict(c.candidate),
        "improvementPercent": c.improvement_percent,
        "significantDifference": c.significant_difference,
        "winner": c.winner,
    }


def report_to_dict(report: PerformanceReport) -> dict:
    summary = report.summary
    return {
        "generatedAt": report.generated_at,
        "summary": {
            "environment": report.environment,
            "applications": dict(report.applications),
            "totalScenarios": len(report.scenarios),
            "totalSamples": report.total_samples,
            "failedIterations": report.failed_iterations,
            "executionTime": round(report.execution_time_ms),
            "baselineWins": summary.baseline_wins,
            "candidateWins": summary.candidate_wins,
            "ties": summary.ties,
            "overallWinner": summary.overall_winner,
        },
        "scenarios": [
            {
                "scenario": s.scenario,
                "comparisons": [comparison_to_dict(c) for c in s.comparisons],
                "regressions": [r.metric for r in s.regressions],
                "recommendations": list(s.recommendations),
                "thresholdChecks": {
                    app: {"passed": check.passed, "failures": list(check.failures)}
                    for app, check in s.threshold_checks.items()
                },
                "scores": dict(s.scores),
            }
            for s in report.scenarios
        ],
    }


def write_report(report: PerformanceReport, path: str) -> None:
    parent = os.path.dirname(path)
    if parent and not os.path.isdir(parent):
        os.makedirs(parent, exist_ok=True)
    with open(path, "w") as f:
        f.write(json.dumps(report_to_dict(report), indent=2) + "\n")


def _float(raw: dict, key: str) -> float:
    value = raw.get(key)
    return float(value) if isinstance(value, (int, float)) else 0.0
