"""Shared fixtures: an in-memory browser session and a sample factory."""

import os
from contextlib import asynccontextmanager

import pytest

from perfcompare.errors import AutomationTimeoutError
from perfcompare.models import (
    ApplicationConfig,
    CoreWebVitals,
    MetricSample,
    PerformanceMetrics,
)
from perfcompare.sampler import API_TIMING_SCRIPT, TIMING_ENTRIES_SCRIPT, WEB_VITALS_SCRIPT
from perfcompare.session import Session

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "..", "fixtures")

NAVIGATION_ENTRY = {
    "fetchStart": 10.0,
    "domainLookupStart": 12.0,
    "domainLookupEnd": 20.0,
    "secureConnectionStart": 0,
    "connectEnd": 30.0,
    "responseStart": 110.0,
    "domInteractive": 610.0,
    "domContentLoadedEventEnd": 710.0,
    "loadEventEnd": 1010.0,
}


class FakeSession(Session):
    """Records every call and answers from canned data.

    ``missing`` selectors never become visible; ``fail_on`` maps a method
    name to the exception that method raises.
    """

    url = "about:blank"

    def __init__(self):
        self.url = "about:blank"
        self.calls = []
        self.missing = set()
        self.counts = {}
        self.fail_on = {}
        self.vitals = {"lcp": 1200.0, "cls": 0.02, "fid": 12.0}
        self.timing = {
            "navigation": dict(NAVIGATION_ENTRY),
            "paint": [{"name": "first-contentful-paint", "startTime": 400.0}],
            "resources": [],
        }
        self.api_times = {}
        self.page_height = 600
        self.response_ms = 150.0
        self.state = {"customTimings": {}}
        self.instrumented = 0

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise self.fail_on[name]

    def called(self, name):
        return [c for c in self.calls if c[0] == name]

    async def goto(self, url, timeout, wait_until="domcontentloaded"):
        self._record("goto", url, timeout)
        self.url = url

    async def wait_for_visible(self, selector, timeout):
        self._record("wait_for_visible", selector, timeout)
        if selector in self.missing:
            raise AutomationTimeoutError(f"timed out waiting for {selector} to become visible")

    async def wait_for_detached(self, selector, timeout):
        self._record("wait_for_detached", selector, timeout)

    async def click(self, selector):
        self._record("click", selector)

    async def clear(self, selector):
        self._record("clear", selector)

    async def fill(self, selector, value):
        self._record("fill", selector, value)

    async def count(self, selector):
        self._record("count", selector)
        return self.counts.get(selector, 0)

    async def focus(self, selector, index=0):
        self._record("focus", selector, index)

    async def blur(self, selector, index=0):
        self._record("blur", selector, index)

    async def set_input_files(self, selector, path):
        self._record("set_input_files", selector, path)

    async def evaluate(self, expression, arg=None):
        self._record("evaluate", expression, arg)
        if expression == WEB_VITALS_SCRIPT:
            return dict(self.vitals)
        if expression == TIMING_ENTRIES_SCRIPT:
            return self.timing
        if expression == API_TIMING_SCRIPT:
            return self.api_times.get(arg)
        if "userAgent" in expression:
            return "FakeAgent/1.0"
        if "scrollHeight" in expression:
            return self.page_height
        return None

    async def wait_for_function(self, expression, timeout):
        self._record("wait_for_function", expression, timeout)

    async def wait_for_response(self, predicate, timeout):
        self._record("wait_for_response", timeout)
        return self.response_ms

    async def wait_for_url(self, predicate, timeout):
        self._record("wait_for_url", timeout)

    async def wait_for_network_idle(self, timeout):
        self._record("wait_for_network_idle", timeout)

    async def wait_for_timeout(self, ms):
        self._record("wait_for_timeout", ms)

    async def mouse_move(self, x, y):
        self._record("mouse_move", x, y)

    async def mouse_wheel(self, delta_x, delta_y):
        self._record("mouse_wheel", delta_x, delta_y)

    async def keyboard_press(self, key):
        self._record("keyboard_press", key)

    async def install_instrumentation(self):
        self._record("install_instrumentation")
        self.instrumented += 1

    async def mark_timing(self, label):
        self._record("mark_timing", label)
        self.state["customTimings"][label] = 500.0

    async def read_performance_state(self):
        self._record("read_performance_state")
        return self.state


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def session_factory():
    """Async context manager factory handing out FakeSessions; keeps them in ``.sessions``."""

    class Factory:
        def __init__(self):
            self.sessions = []
            self.configure = None

        @asynccontextmanager
        async def __call__(self):
            fake = FakeSession()
            if self.configure:
                self.configure(fake)
            self.sessions.append(fake)
            yield fake

    return Factory()


@pytest.fixture
def application():
    return ApplicationConfig(name="Baseline App", base_url="http://localhost:8001/baseline")


@pytest.fixture
def make_sample():
    """Factory for MetricSample with only the interesting fields set."""

    def _make(application="Baseline App", scenario="login-flow", iteration=1,
              lcp=1000.0, cls=0.01, fid=0.0, ttfb=200.0, tti=1500.0,
              total=2000.0, fcp=800.0, dom_content_loaded=900.0):
        return MetricSample(
            timestamp="2026-03-02T10:00:00+00:00",
            url="http://localhost:8001/baseline/login",
            environment="pre",
            application=application,
            scenario=scenario,
            iteration=iteration,
            core_web_vitals=CoreWebVitals(lcp=lcp, cls=cls, fid=fid),
            performance_metrics=PerformanceMetrics(
                ttfb=ttfb,
                fcp=fcp,
                tti=tti,
                total_page_load_time=total,
                dom_content_loaded=dom_content_loaded,
                load_complete=total,
            ),
        )

    return _make
