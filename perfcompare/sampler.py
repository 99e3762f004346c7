"""Harvest Core Web Vitals, navigation timing, and resource timing from a session."""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence
from urllib.parse import urlparse

from perfcompare.models import (
    ApplicationMetrics,
    CoreWebVitals,
    MetricSample,
    PerformanceMetrics,
    ResourceTiming,
)
from perfcompare.session import Session

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_MS = 1000
DEFAULT_LOAD_TIMEOUT_MS = 30000

WEB_VITALS_SCRIPT = """
(settleMs) => new Promise((resolve) => {
  const vitals = {};
  const observe = (type, callback) => {
    try {
      new PerformanceObserver(callback).observe({ type, buffered: true });
    } catch (e) {}
  };
  observe('largest-contentful-paint', (list) => {
    const entries = list.getEntries();
    const last = entries[entries.length - 1];
    if (last) vitals.lcp = last.startTime;
  });
  let cls = 0;
  observe('layout-shift', (list) => {
    for (const entry of list.getEntries()) {
      if (!entry.hadRecentInput) cls += entry.value;
    }
    vitals.cls = cls;
  });
  observe('first-input', (list) => {
    const entries = list.getEntries();
    if (entries.length > 0) {
      vitals.fid = entries[0].processingStart - entries[0].startTime;
      vitals.inp = entries[entries.length - 1].duration;
    }
  });
  setTimeout(() => resolve(vitals), settleMs);
})
"""

TIMING_ENTRIES_SCRIPT = """
() => {
  const nav = performance.getEntriesByType('navigation')[0];
  return {
    navigation: nav ? nav.toJSON() : null,
    paint: performance.getEntriesByType('paint').map((e) => ({ name: e.name, startTime: e.startTime })),
    resources: performance.getEntriesByType('resource').map((r) => ({
      name: r.name,
      startTime: r.startTime,
      responseEnd: r.responseEnd,
      decodedBodySize: r.decodedBodySize,
      transferSize: r.transferSize,
    })),
  };
}
"""

API_TIMING_SCRIPT = """
(url) => {
  const start = performance.now();
  return fetch(url).then(() => performance.now() - start).catch(() => -1);
}
"""

_RESOURCE_TYPES = {
    "script": {".js", ".mjs"},
    "stylesheet": {".css"},
    "image": {".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".avif", ".ico"},
    "font": {".woff", ".woff2", ".ttf", ".otf", ".eot"},
}


class MetricsRecorder:
    """Application metrics written by custom actions during one run."""

    CATEGORIES = ("navigation_times", "api_response_times", "form_processing_times")

    def __init__(self):
        self._metrics: Dict[str, Dict[str, float]] = {c: {} for c in self.CATEGORIES}

    def set(self, category: str, key: str, value: float) -> None:
        if category not in self._metrics:
            raise KeyError(f"unknown application metric category: {category}")
        self._metrics[category][key] = float(value)

    def get(self, category: str) -> Dict[str, float]:
        return dict(self._metrics[category])


def classify_resource(url: str) -> str:
    """Map a resource URL to script, stylesheet, image, font, or other."""
    ext = os.path.splitext(urlparse(url).path)[1].lower()
    for kind, extensions in _RESOURCE_TYPES.items():
        if ext in extensions:
            return kind
    return "other"


def timings_from_entries(
    navigation: Optional[dict],
    paint: Sequence[dict] = (),
    resources: Sequence[dict] = (),
) -> PerformanceMetrics:
    """Derive PerformanceMetrics from raw Navigation/Paint/Resource Timing entries.

    Durations are relative to ``fetchStart``. TTI is approximated as
    ``domInteractive - fetchStart``. Negative or missing values become 0.

    Args:
        navigation: The PerformanceNavigationTiming entry as a dict, or None.
        paint: Paint timing entries (``name``, ``startTime``).
        resources: Resource timing entries.

    Returns:
        A PerformanceMetrics instance.
    """
    resource_timings = tuple(_resource_timing(r) for r in resources)

    fcp = 0.0
    for entry in paint:
        if entry.get("name") == "first-contentful-paint":
            fcp = _positive(entry.get("startTime"))
            break

    if not navigation:
        return PerformanceMetrics(fcp=fcp, resource_load_times=resource_timings)

    def span(end_key, start_key="fetchStart"):
        return _positive(_num(navigation, end_key) - _num(navigation, start_key))

    secure_start = _num(navigation, "secureConnectionStart")
    ssl_time = span("connectEnd", "secureConnectionStart") if secure_start > 0 else 0.0
    load_complete = span("loadEventEnd")

    return PerformanceMetrics(
        ttfb=span("responseStart"),
        fcp=fcp,
        tti=span("domInteractive"),
        dns_time=span("domainLookupEnd", "domainLookupStart"),
        ssl_time=ssl_time,
        total_page_load_time=load_complete,
        dom_content_loaded=span("domContentLoadedEventEnd"),
        load_complete=load_complete,
        resource_load_times=resource_timings,
    )


class MetricsSampler:
    """Collects one MetricSample from a session that has finished loading."""

    def __init__(self, settle_ms: int = DEFAULT_SETTLE_MS):
        self.settle_ms = settle_ms

    async def prepare(self, session: Session) -> None:
        """Install performance observers before the scenario starts."""
        await session.install_instrumentation()

    async def collect_all(
        self,
        session: Session,
        url: str,
        environment: str,
        application: str,
        scenario: str,
        iteration: int,
        recorder: Optional[MetricsRecorder] = None,
    ) -> MetricSample:
        """Gather the three metric groups concurrently and build a sample.

        Args:
            session: The session that just completed a page load.
            url: URL to record on the sample.
            environment: "pre" or "pro".
            application: Application name.
            scenario: Scenario name.
            iteration: 1-based iteration number.
            recorder: Application metrics recorded while the scenario ran.

        Returns:
            A completed MetricSample.
        """
        timestamp = datetime.now(timezone.utc).isoformat()
        user_agent = await session.evaluate("() => navigator.userAgent")

        vitals, performance, app_metrics = await asyncio.gather(
            self.collect_core_web_vitals(session),
            self.collect_performance_metrics(session),
            self.collect_application_metrics(session, recorder),
        )

        return MetricSample(
            timestamp=timestamp,
            url=url,
            environment=environment,
            application=application,
            scenario=scenario,
            iteration=iteration,
            core_web_vitals=vitals,
            performance_metrics=performance,
            application_metrics=app_metrics,
            user_agent=user_agent or "",
        )

    async def collect_core_web_vitals(self, session: Session) -> CoreWebVitals:
        # Values can still change after the settle window; the window bounds runtime.
        raw = await session.evaluate(WEB_VITALS_SCRIPT, self.settle_ms) or {}
        return CoreWebVitals(
            lcp=_positive(raw.get("lcp")),
            cls=_positive(raw.get("cls")),
            fid=_positive(raw.get("fid")),
            inp=_positive(raw.get("inp")),
        )

    async def collect_performance_metrics(self, session: Session) -> PerformanceMetrics:
        raw = await session.evaluate(TIMING_ENTRIES_SCRIPT) or {}
        if not raw.get("navigation"):
            logger.warning("No navigation timing entry on %s", session.url)
        return timings_from_entries(
            raw.get("navigation"),
            raw.get("paint") or [],
            raw.get("resources") or [],
        )

    async def collect_application_metrics(
        self,
        session: Session,
        recorder: Optional[MetricsRecorder] = None,
    ) -> ApplicationMetrics:
        recorder = recorder or MetricsRecorder()
        navigation_times = recorder.get("navigation_times")

        state = await session.read_performance_state() or {}
        for label, value in (state.get("customTimings") or {}).items():
            navigation_times.setdefault(f"snapshot_{label}", float(value))

        return ApplicationMetrics(
            navigation_times=navigation_times,
            api_response_times=recorder.get("api_response_times"),
            form_processing_times=recorder.get("form_processing_times"),
        )

    async def take_snapshot(self, session: Session, label: str) -> None:
        await session.mark_timing(label)


async def wait_for_page_load(session: Session, timeout: int = DEFAULT_LOAD_TIMEOUT_MS) -> None:
    """Network idle, then document ready, then a fixed settle delay for animations."""
    await session.wait_for_network_idle(timeout)
    await session.wait_for_function("() => document.readyState === 'complete'", timeout)
    await session.wait_for_timeout(1000)


async def measure_api_response_time(session: Session, url: str) -> float:
    """Time an in-session fetch of ``url`` in ms; -1 when the fetch fails."""
    result = await session.evaluate(API_TIMING_SCRIPT, url)
    return float(result) if result is not None else -1.0


# -- internal helpers ---------------------------------------------------------


def _num(entry: dict, key: str) -> float:
    value = entry.get(key)
    return float(value) if isinstance(value, (int, float)) else 0.0


def _positive(value) -> float:
    if not isinstance(value, (int, float)) or value < 0:
        return 0.0
    return float(value)


def _resource_timing(raw: dict) -> ResourceTiming:
    name = str(raw.get("name", ""))
    return ResourceTiming(
        name=name,
        type=classify_resource(name),
        duration=_positive(_num(raw, "responseEnd") - _num(raw, "startTime")),
        size=int(_num(raw, "decodedBodySize")),
        transfer_size=int(_num(raw, "transferSize")),
    )
