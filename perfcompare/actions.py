"""Registry of named custom actions that scenario scripts can invoke."""

import asyncio
import logging
import os
import random
import re
import tempfile
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from perfcompare.errors import AutomationError, AutomationTimeoutError
from perfcompare.models import ApplicationConfig
from perfcompare.sampler import MetricsRecorder, MetricsSampler, measure_api_response_time
from perfcompare.session import Session

logger = logging.getLogger(__name__)


@dataclass
class ActionContext:
    session: Session
    application: ApplicationConfig
    scenario: str
    recorder: MetricsRecorder
    sampler: MetricsSampler
    rng: random.Random


ActionHandler = Callable[[ActionContext], Awaitable[None]]


class ActionRegistry:
    """Maps custom-function identifiers to async handlers.

    Names are kebab-case. Lookups also accept the camelCase spelling, so
    ``measureApiResponseTime`` finds ``measure-api-response-time``.
    """

    def __init__(self):
        self._handlers: Dict[str, ActionHandler] = {}

    def register(self, name: str) -> Callable[[ActionHandler], ActionHandler]:
        def decorator(handler: ActionHandler) -> ActionHandler:
            self._handlers[_normalize(name)] = handler
            return handler
        return decorator

    def get(self, name: str) -> Optional[ActionHandler]:
        return self._handlers.get(_normalize(name))

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def copy(self) -> "ActionRegistry":
        clone = ActionRegistry()
        clone._handlers = dict(self._handlers)
        return clone

    def __contains__(self, name: str) -> bool:
        return _normalize(name) in self._handlers


def _normalize(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "-", name.strip()).lower()


builtin_actions = ActionRegistry()


def default_registry() -> ActionRegistry:
    """A fresh registry holding the built-in actions."""
    return builtin_actions.copy()


# -- built-in actions ---------------------------------------------------------

DASHBOARD_SELECTORS = {
    "container": '[data-testid="dashboard"], .dashboard, main, #main-content',
    "navigation": '[data-testid="navigation"], .nav, .sidebar, nav',
    "spinner": '[data-testid="loading"], .loading, .spinner, .skeleton',
    "widgets": {
        "charts": '[data-testid="chart"], .chart, canvas, svg',
        "tables": '[data-testid="table"], .table, table',
        "cards": '[data-testid="card"], .card, .widget',
        "stats": '[data-testid="stats"], .stats, .metrics',
    },
}

API_ENDPOINTS = ("/api/data", "/api/user", "/api/dashboard")


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


@builtin_actions.register("measure-dashboard-widgets")
async def measure_dashboard_widgets(ctx: ActionContext) -> None:
    session = ctx.session
    start = time.monotonic()

    step_start = time.monotonic()
    await session.wait_for_visible(DASHBOARD_SELECTORS["container"], 10000)
    container_time = _elapsed_ms(step_start)

    step_start = time.monotonic()
    await session.wait_for_visible(DASHBOARD_SELECTORS["navigation"], 10000)
    navigation_time = _elapsed_ms(step_start)

    step_start = time.monotonic()
    results = await asyncio.gather(
        *(session.wait_for_visible(sel, 10000) for sel in DASHBOARD_SELECTORS["widgets"].values()),
        return_exceptions=True,
    )
    for name, result in zip(DASHBOARD_SELECTORS["widgets"], results):
        if isinstance(result, AutomationError):
            logger.warning("Dashboard widget group %r did not appear", name)
        elif isinstance(result, BaseException):
            raise result
    widgets_time = _elapsed_ms(step_start)

    step_start = time.monotonic()
    try:
        if await session.count(DASHBOARD_SELECTORS["spinner"]) > 0:
            await session.wait_for_detached(DASHBOARD_SELECTORS["spinner"], 30000)
        await session.wait_for_network_idle(30000)
    except AutomationTimeoutError:
        logger.warning("Dashboard data load did not settle")
    data_time = _elapsed_ms(step_start)

    recorder = ctx.recorder
    recorder.set("navigation_times", "dashboard_total_load", _elapsed_ms(start))
    recorder.set("navigation_times", "dashboard_container_load", container_time)
    recorder.set("navigation_times", "dashboard_navigation_load", navigation_time)
    recorder.set("navigation_times", "dashboard_widgets_load", widgets_time)
    recorder.set("navigation_times", "dashboard_data_load", data_time)


@builtin_actions.register("upload-test-file")
async def upload_test_file(ctx: ActionContext) -> None:
    fd, path = tempfile.mkstemp(prefix="perfcompare-", suffix=".txt")
    try:
        with os.fdopen(fd, "w") as f:
            f.write("This is a test file for performance testing.")
        await ctx.session.set_input_files('input[type="file"]', path)
    except AutomationError as exc:
        logger.warning("File upload failed: %s", exc)
    finally:
        os.unlink(path)


@builtin_actions.register("measure-api-response-time")
async def measure_api_responses(ctx: ActionContext) -> None:
    base_url = ctx.application.base_url.rstrip("/")
    for endpoint in API_ENDPOINTS:
        elapsed = await measure_api_response_time(ctx.session, f"{base_url}{endpoint}")
        if elapsed > 0:
            ctx.recorder.set("api_response_times", endpoint, elapsed)
        else:
            logger.info("No response from %s%s", base_url, endpoint)


@builtin_actions.register("simulate-user-interactions")
async def simulate_user_interactions(ctx: ActionContext) -> None:
    session = ctx.session
    rng = ctx.rng

    await session.wait_for_timeout(500 + rng.random() * 1000)

    await session.mouse_move(100, 100)
    await session.wait_for_timeout(200)
    await session.mouse_move(300, 200)

    page_height = await session.evaluate("() => document.body.scrollHeight")
    if page_height and page_height > 800:
        await session.mouse_wheel(0, 300)
        await session.wait_for_timeout(500)
        await session.mouse_wheel(0, -150)

    inputs = "input, textarea"
    input_count = await session.count(inputs)
    if input_count > 0:
        index = rng.randrange(input_count)
        await session.focus(inputs, index)
        await session.keyboard_press("End")
        await session.wait_for_timeout(200)
        await session.blur(inputs, index)


@builtin_actions.register("measure-form-submission")
async def measure_form_submission(ctx: ActionContext) -> None:
    session = ctx.session
    base_url = ctx.application.base_url.rstrip("/")
    submit = 'button[type="submit"], input[type="submit"]'

    await session.wait_for_visible(submit, 10000)
    response = asyncio.ensure_future(
        session.wait_for_response(lambda url: url.startswith(base_url), 10000)
    )
    try:
        await session.click(submit)
        elapsed = await response
    finally:
        if not response.done():
            response.cancel()

    ctx.recorder.set("form_processing_times", ctx.scenario or "submit", elapsed)
    await ctx.sampler.take_snapshot(session, "form_submitted")


LOGIN_SELECTORS = {
    "username": '[data-testid="username"], #username, input[name="username"], input[type="email"]',
    "password": '[data-testid="password"], #password, input[name="password"], input[type="password"]',
    "submit": '[data-testid="login"], #login, button[type="submit"], input[type="submit"]',
    "error": '[data-testid="error"], .error, .alert-error, .login-error',
}
LOGIN_NAVIGATE_TIMEOUT_MS = 30000
LOGIN_TIMEOUT_MS = 10000


async def perform_login(session: Session, application: ApplicationConfig, recorder: MetricsRecorder) -> None:
    """Sign in to ``application`` with its configured credentials.

    Opens ``{base_url}/login``, fills both fields, submits, and waits for the
    browser to leave the login page. Timings go to ``navigation_times`` as
    ``login_total_time``, ``login_username_time``, ``login_password_time``,
    ``login_submit_time`` and ``login_redirect_time``.

    Raises:
        AutomationError: If the application has no credentials, the page
            never leaves the login URL, or an error message is shown.
    """
    credentials = application.credentials
    if credentials is None:
        raise AutomationError(f"{application.name} has no credentials configured")

    start = time.monotonic()
    await session.goto(f"{application.base_url.rstrip('/')}/login", LOGIN_NAVIGATE_TIMEOUT_MS)

    step_start = time.monotonic()
    await session.wait_for_visible(LOGIN_SELECTORS["username"], LOGIN_TIMEOUT_MS)
    await session.fill(LOGIN_SELECTORS["username"], credentials.username)
    username_time = _elapsed_ms(step_start)

    step_start = time.monotonic()
    await session.wait_for_visible(LOGIN_SELECTORS["password"], LOGIN_TIMEOUT_MS)
    await session.fill(LOGIN_SELECTORS["password"], credentials.password)
    password_time = _elapsed_ms(step_start)

    step_start = time.monotonic()
    await session.click(LOGIN_SELECTORS["submit"])
    submit_time = _elapsed_ms(step_start)

    step_start = time.monotonic()
    try:
        await session.wait_for_url(lambda url: "/login" not in url, LOGIN_TIMEOUT_MS)
    except AutomationTimeoutError as exc:
        raise AutomationError(f"login to {application.name} did not leave the login page") from exc
    redirect_time = _elapsed_ms(step_start)

    if await session.count(LOGIN_SELECTORS["error"]) > 0:
        raise AutomationError(f"login to {application.name} was rejected")

    recorder.set("navigation_times", "login_total_time", _elapsed_ms(start))
    recorder.set("navigation_times", "login_username_time", username_time)
    recorder.set("navigation_times", "login_password_time", password_time)
    recorder.set("navigation_times", "login_submit_time", submit_time)
    recorder.set("navigation_times", "login_redirect_time", redirect_time)


@builtin_actions.register("login")
async def login(ctx: ActionContext) -> None:
    if ctx.application.credentials is None:
        logger.warning("No credentials configured for %s, skipping login", ctx.application.name)
        return
    await perform_login(ctx.session, ctx.application, ctx.recorder)
