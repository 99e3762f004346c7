"""Tests for the custom action registry and the built-in actions."""

import asyncio
import os
import random

import pytest

from perfcompare.actions import (
    API_ENDPOINTS,
    DASHBOARD_SELECTORS,
    LOGIN_SELECTORS,
    ActionContext,
    ActionRegistry,
    builtin_actions,
    default_registry,
    perform_login,
)
from perfcompare.errors import AutomationError, AutomationTimeoutError
from perfcompare.models import ApplicationConfig, UserCredentials
from perfcompare.sampler import MetricsRecorder, MetricsSampler


@pytest.fixture
def ctx(session, application):
    return ActionContext(
        session=session,
        application=application,
        scenario="dashboard-load",
        recorder=MetricsRecorder(),
        sampler=MetricsSampler(),
        rng=random.Random(7),
    )


def _run(name, ctx):
    asyncio.run(builtin_actions.get(name)(ctx))


class TestActionRegistry:
    def test_register_and_get(self):
        registry = ActionRegistry()

        @registry.register("say-hello")
        async def hello(ctx):
            pass

        assert registry.get("say-hello") is hello
        assert "say-hello" in registry
        assert registry.names() == ["say-hello"]

    def test_camel_case_lookup(self):
        registry = ActionRegistry()

        @registry.register("measure-api-response-time")
        async def handler(ctx):
            pass

        assert registry.get("measureApiResponseTime") is handler

    def test_unknown_name(self):
        assert ActionRegistry().get("nope") is None

    def test_default_registry_is_a_copy(self):
        registry = default_registry()

        @registry.register("extra")
        async def extra(ctx):
            pass

        assert "extra" in registry
        assert "extra" not in builtin_actions

    def test_builtins(self):
        assert builtin_actions.names() == [
            "login",
            "measure-api-response-time",
            "measure-dashboard-widgets",
            "measure-form-submission",
            "simulate-user-interactions",
            "upload-test-file",
        ]


class TestMeasureDashboardWidgets:
    def test_records_phase_timings(self, ctx):
        _run("measure-dashboard-widgets", ctx)
        keys = set(ctx.recorder.get("navigation_times"))
        assert keys == {
            "dashboard_total_load",
            "dashboard_container_load",
            "dashboard_navigation_load",
            "dashboard_widgets_load",
            "dashboard_data_load",
        }

    def test_missing_container_is_fatal(self, ctx, session):
        session.missing.add(DASHBOARD_SELECTORS["container"])
        with pytest.raises(AutomationTimeoutError):
            _run("measure-dashboard-widgets", ctx)

    def test_missing_widget_group_is_tolerated(self, ctx, session):
        session.missing.add(DASHBOARD_SELECTORS["widgets"]["charts"])
        _run("measure-dashboard-widgets", ctx)
        assert "dashboard_widgets_load" in ctx.recorder.get("navigation_times")

    def test_waits_for_spinner_to_detach(self, ctx, session):
        session.counts[DASHBOARD_SELECTORS["spinner"]] = 1
        _run("measure-dashboard-widgets", ctx)
        assert session.called("wait_for_detached")

    def test_data_load_timeout_is_tolerated(self, ctx, session):
        session.fail_on["wait_for_network_idle"] = AutomationTimeoutError("network idle")
        _run("measure-dashboard-widgets", ctx)
        assert "dashboard_data_load" in ctx.recorder.get("navigation_times")


class TestUploadTestFile:
    def test_uploads_and_removes_temp_file(self, ctx, session):
        _run("upload-test-file", ctx)
        (_, selector, path), = session.called("set_input_files")
        assert selector == 'input[type="file"]'
        assert not os.path.exists(path)

    def test_missing_file_input_is_tolerated(self, ctx, session):
        session.fail_on["set_input_files"] = AutomationError("no file input")
        _run("upload-test-file", ctx)


class TestMeasureApiResponseTime:
    def test_records_responding_endpoints(self, ctx, session):
        session.api_times["http://localhost:8001/baseline/api/data"] = 45.0
        session.api_times["http://localhost:8001/baseline/api/user"] = 30.0
        _run("measure-api-response-time", ctx)
        assert ctx.recorder.get("api_response_times") == {"/api/data": 45.0, "/api/user": 30.0}

    def test_measures_every_endpoint(self, ctx, session):
        _run("measure-api-response-time", ctx)
        requested = [c[2] for c in session.called("evaluate")]
        assert requested == [f"http://localhost:8001/baseline{e}" for e in API_ENDPOINTS]


class TestSimulateUserInteractions:
    def test_moves_mouse(self, ctx, session):
        _run("simulate-user-interactions", ctx)
        assert session.called("mouse_move") == [("mouse_move", 100, 100), ("mouse_move", 300, 200)]
        assert session.called("mouse_wheel") == []

    def test_scrolls_tall_pages(self, ctx, session):
        session.page_height = 2400
        _run("simulate-user-interactions", ctx)
        assert session.called("mouse_wheel") == [("mouse_wheel", 0, 300), ("mouse_wheel", 0, -150)]

    def test_focuses_an_input(self, ctx, session):
        session.counts["input, textarea"] = 3
        _run("simulate-user-interactions", ctx)
        (_, selector, index), = session.called("focus")
        assert selector == "input, textarea"
        assert 0 <= index < 3
        assert session.called("blur") == [("blur", selector, index)]


class TestMeasureFormSubmission:
    def test_records_processing_time_and_snapshot(self, ctx, session):
        session.response_ms = 220.0
        _run("measure-form-submission", ctx)
        assert ctx.recorder.get("form_processing_times") == {"dashboard-load": 220.0}
        assert session.called("mark_timing") == [("mark_timing", "form_submitted")]

    def test_missing_submit_button_is_fatal(self, ctx, session):
        session.missing.add('button[type="submit"], input[type="submit"]')
        with pytest.raises(AutomationTimeoutError):
            _run("measure-form-submission", ctx)
        assert session.called("click") == []


@pytest.fixture
def signed_ctx(session):
    application = ApplicationConfig(
        name="Baseline App",
        base_url="http://localhost:8001/baseline/",
        credentials=UserCredentials(username="legacy@example.com", password="legacy-pass"),
    )
    return ActionContext(
        session=session,
        application=application,
        scenario="dashboard-load",
        recorder=MetricsRecorder(),
        sampler=MetricsSampler(),
        rng=random.Random(7),
    )


class TestLogin:
    def test_fills_credentials_and_submits(self, signed_ctx, session):
        asyncio.run(perform_login(session, signed_ctx.application, signed_ctx.recorder))
        assert session.called("goto")[0][1] == "http://localhost:8001/baseline/login"
        assert session.called("fill") == [
            ("fill", LOGIN_SELECTORS["username"], "legacy@example.com"),
            ("fill", LOGIN_SELECTORS["password"], "legacy-pass"),
        ]
        assert session.called("click") == [("click", LOGIN_SELECTORS["submit"])]
        assert len(session.called("wait_for_url")) == 1

    def test_records_login_timings(self, signed_ctx, session):
        asyncio.run(perform_login(session, signed_ctx.application, signed_ctx.recorder))
        assert set(signed_ctx.recorder.get("navigation_times")) == {
            "login_total_time",
            "login_username_time",
            "login_password_time",
            "login_submit_time",
            "login_redirect_time",
        }

    def test_staying_on_login_page_fails(self, signed_ctx, session):
        session.fail_on["wait_for_url"] = AutomationTimeoutError("timed out waiting for URL change")
        with pytest.raises(AutomationError, match="did not leave the login page"):
            asyncio.run(perform_login(session, signed_ctx.application, signed_ctx.recorder))
        assert signed_ctx.recorder.get("navigation_times") == {}

    def test_error_message_fails(self, signed_ctx, session):
        session.counts[LOGIN_SELECTORS["error"]] = 1
        with pytest.raises(AutomationError, match="was rejected"):
            asyncio.run(perform_login(session, signed_ctx.application, signed_ctx.recorder))

    def test_requires_credentials(self, application, session):
        with pytest.raises(AutomationError, match="no credentials"):
            asyncio.run(perform_login(session, application, MetricsRecorder()))

    def test_action_uses_application_credentials(self, signed_ctx, session):
        _run("login", signed_ctx)
        assert session.called("fill")[0][2] == "legacy@example.com"

    def test_action_without_credentials_is_skipped(self, ctx, session):
        _run("login", ctx)
        assert session.calls == []
