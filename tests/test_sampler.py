"""Tests for metric harvesting from a session."""

import asyncio

import pytest

from perfcompare.sampler import (
    MetricsRecorder,
    MetricsSampler,
    classify_resource,
    measure_api_response_time,
    timings_from_entries,
    wait_for_page_load,
)

from conftest import NAVIGATION_ENTRY


class TestClassifyResource:
    @pytest.mark.parametrize("url,kind", [
        ("https://cdn.test/app.js", "script"),
        ("https://cdn.test/app.mjs?v=3", "script"),
        ("https://cdn.test/site.css", "stylesheet"),
        ("https://cdn.test/logo.PNG", "image"),
        ("https://cdn.test/inter.woff2", "font"),
        ("https://api.test/data.json", "other"),
        ("https://api.test/users", "other"),
    ])
    def test_by_extension(self, url, kind):
        assert classify_resource(url) == kind


class TestTimingsFromEntries:
    def test_derives_durations_from_fetch_start(self):
        perf = timings_from_entries(NAVIGATION_ENTRY, [{"name": "first-contentful-paint", "startTime": 400}])
        assert perf.ttfb == 100
        assert perf.tti == 600
        assert perf.dom_content_loaded == 700
        assert perf.load_complete == 1000
        assert perf.total_page_load_time == 1000
        assert perf.dns_time == 8
        assert perf.fcp == 400

    def test_ssl_time_zero_without_secure_connection(self):
        assert timings_from_entries(NAVIGATION_ENTRY).ssl_time == 0

    def test_ssl_time_from_secure_connection(self):
        nav = dict(NAVIGATION_ENTRY, secureConnectionStart=22.0)
        assert timings_from_entries(nav).ssl_time == 8

    def test_unfinished_load_is_clamped(self):
        nav = dict(NAVIGATION_ENTRY, loadEventEnd=0)
        perf = timings_from_entries(nav)
        assert perf.load_complete == 0
        assert perf.total_page_load_time == 0

    def test_no_navigation_entry(self):
        perf = timings_from_entries(None, [{"name": "first-contentful-paint", "startTime": 250}])
        assert perf.ttfb == 0
        assert perf.fcp == 250

    def test_resources(self):
        perf = timings_from_entries(NAVIGATION_ENTRY, [], [{
            "name": "https://cdn.test/app.js",
            "startTime": 100,
            "responseEnd": 180,
            "decodedBodySize": 2048,
            "transferSize": 900,
        }])
        resource = perf.resource_load_times[0]
        assert resource.type == "script"
        assert resource.duration == 80
        assert resource.size == 2048
        assert resource.transfer_size == 900


class TestMetricsRecorder:
    def test_set_and_get(self):
        recorder = MetricsRecorder()
        recorder.set("api_response_times", "/api/user", 42)
        assert recorder.get("api_response_times") == {"/api/user": 42.0}

    def test_get_returns_copy(self):
        recorder = MetricsRecorder()
        recorder.get("navigation_times")["x"] = 1
        assert recorder.get("navigation_times") == {}

    def test_unknown_category(self):
        with pytest.raises(KeyError):
            MetricsRecorder().set("paint_times", "x", 1)


class TestMetricsSampler:
    def test_core_web_vitals(self, session):
        vitals = asyncio.run(MetricsSampler().collect_core_web_vitals(session))
        assert vitals.lcp == 1200
        assert vitals.cls == 0.02
        assert vitals.fid == 12
        assert vitals.inp == 0

    def test_missing_vitals_default_to_zero(self, session):
        session.vitals = {}
        vitals = asyncio.run(MetricsSampler().collect_core_web_vitals(session))
        assert vitals.lcp == 0
        assert vitals.cls == 0
        assert vitals.fid == 0
        assert vitals.inp == 0

    def test_no_first_input_defaults_fid_and_inp_to_zero(self, session):
        session.vitals = {"lcp": 1000, "cls": 0}
        vitals = asyncio.run(MetricsSampler().collect_core_web_vitals(session))
        assert vitals.lcp == 1000
        assert vitals.fid == 0
        assert vitals.inp == 0

    def test_settle_window_is_passed_to_page(self, session):
        asyncio.run(MetricsSampler(settle_ms=250).collect_core_web_vitals(session))
        assert session.called("evaluate")[0][2] == 250

    def test_application_metrics_include_snapshots(self, session):
        recorder = MetricsRecorder()
        recorder.set("navigation_times", "dashboard_total_load", 900)
        sampler = MetricsSampler()
        asyncio.run(sampler.take_snapshot(session, "form_submitted"))
        metrics = asyncio.run(sampler.collect_application_metrics(session, recorder))
        assert metrics.navigation_times == {
            "dashboard_total_load": 900.0,
            "snapshot_form_submitted": 500.0,
        }

    def test_collect_all(self, session):
        session.url = "http://app.test/home"
        sample = asyncio.run(MetricsSampler().collect_all(
            session, url=session.url, environment="pre",
            application="Candidate App", scenario="home", iteration=2,
        ))
        assert sample.url == "http://app.test/home"
        assert sample.application == "Candidate App"
        assert sample.performance_metrics.fcp == 400
        assert sample.timestamp

    def test_missing_navigation_entry(self, session):
        session.timing = {"navigation": None, "paint": [], "resources": []}
        perf = asyncio.run(MetricsSampler().collect_performance_metrics(session))
        assert perf.total_page_load_time == 0


class TestPageHelpers:
    def test_wait_for_page_load_order(self, session):
        asyncio.run(wait_for_page_load(session))
        names = [c[0] for c in session.calls]
        assert names == ["wait_for_network_idle", "wait_for_function", "wait_for_timeout"]

    def test_api_response_time(self, session):
        session.api_times["http://app.test/api/data"] = 37.5
        assert asyncio.run(measure_api_response_time(session, "http://app.test/api/data")) == 37.5

    def test_api_response_time_unavailable(self, session):
        assert asyncio.run(measure_api_response_time(session, "http://app.test/api/none")) == -1.0
