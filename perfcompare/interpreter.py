"""Execute scenario scripts step by step against a browser session."""

import logging
import random
import re
import time
from typing import Optional

from perfcompare.actions import ActionContext, ActionRegistry, default_registry, perform_login
from perfcompare.models import ApplicationConfig, MetricSample
from perfcompare.sampler import MetricsRecorder, MetricsSampler, wait_for_page_load
from perfcompare.session import Session
from perfcompare.steps import (
    ClickStep,
    CustomStep,
    FillStep,
    NavigateStep,
    ScenarioDefinition,
    Step,
    TestDataContext,
    WaitStep,
)

logger = logging.getLogger(__name__)

NAVIGATE_TIMEOUT_MS = 30000
DEFAULT_STEP_TIMEOUT_MS = 10000
FILL_VISIBLE_TIMEOUT_MS = 5000
MAX_IDLE_WAIT_MS = 10000
CLICK_SETTLE_MS = 1000

_PLACEHOLDER = re.compile(r"\$\{([\w.]+)\}")


def substitute(value: str, test_data: TestDataContext, rng: Optional[random.Random] = None) -> str:
    """Replace ``${token}`` placeholders in a fill value.

    ``${username}`` and ``${password}`` each draw a random record from the
    user pool, independently of one another. Any other token is looked up
    as a dotted path in the test data; when that does not yield a string the
    placeholder is left as it is.

    Args:
        value: Raw value from the scenario script.
        test_data: Test data and user pool for the run.
        rng: Random source for credential draws.

    Returns:
        The substituted value.
    """
    if "${" not in value:
        return value
    rng = rng or random.Random()

    def replace(match):
        token = match.group(1)
        if token == "username":
            return rng.choice(test_data.users).username
        if token == "password":
            return rng.choice(test_data.users).password
        resolved = test_data.lookup(token)
        if isinstance(resolved, str):
            return resolved
        logger.warning("Unresolved test data placeholder %s", match.group(0))
        return match.group(0)

    return _PLACEHOLDER.sub(replace, value)


def resolve_url(url: str, base_url: str) -> str:
    if url.startswith("http"):
        return url
    return f"{base_url}{url}"


class StepInterpreter:
    """Runs one scenario at a time in a single session, strictly in order."""

    def __init__(
        self,
        session: Session,
        application: ApplicationConfig,
        test_data: Optional[TestDataContext] = None,
        registry: Optional[ActionRegistry] = None,
        sampler: Optional[MetricsSampler] = None,
        rng: Optional[random.Random] = None,
    ):
        self.session = session
        self.application = application
        self.test_data = test_data or TestDataContext()
        self.registry = registry if registry is not None else default_registry()
        self.sampler = sampler or MetricsSampler()
        self.rng = rng or random.Random()
        self._scenario = ""
        self._recorder = MetricsRecorder()

    async def run_scenario(
        self,
        scenario: ScenarioDefinition,
        environment: str,
        iteration: int,
    ) -> MetricSample:
        """Execute every step, wait for the page to settle, and sample metrics.

        Args:
            scenario: The scenario to run.
            environment: "pre" or "pro".
            iteration: 1-based iteration number.

        Returns:
            The MetricSample for this run.

        Raises:
            ConfigurationError: If a step is malformed.
            AutomationTimeoutError: If an element, navigation, or response
                does not appear in time.
        """
        self._scenario = scenario.name
        self._recorder = MetricsRecorder()
        logger.info(
            "Running scenario %s on %s (iteration %d)",
            scenario.name, self.application.name, iteration,
        )

        start = time.monotonic()
        await self.sampler.prepare(self.session)

        if scenario.needs_login and self.application.credentials is not None:
            logger.info("  signing in to %s", self.application.name)
            await perform_login(self.session, self.application, self._recorder)

        for i, step in enumerate(scenario.steps, start=1):
            logger.info("  step %d: %s", i, getattr(step, "action", type(step).__name__))
            await self.execute_step(step)

        url = self.session.url
        await wait_for_page_load(self.session)
        sample = await self.sampler.collect_all(
            self.session,
            url=url,
            environment=environment,
            application=self.application.name,
            scenario=scenario.name,
            iteration=iteration,
            recorder=self._recorder,
        )
        logger.info("Scenario %s completed in %.0fms", scenario.name, (time.monotonic() - start) * 1000)
        return sample

    async def execute_step(self, step: Step) -> None:
        if isinstance(step, NavigateStep):
            await self._navigate(step)
        elif isinstance(step, ClickStep):
            await self._click(step)
        elif isinstance(step, FillStep):
            await self._fill(step)
        elif isinstance(step, WaitStep):
            await self._wait(step)
        elif isinstance(step, CustomStep):
            await self._custom(step)
        else:
            logger.warning("Unknown step %r, skipping", step)

    # -- step handlers ------------------------------------------------------

    async def _navigate(self, step: NavigateStep) -> None:
        url = resolve_url(step.url, self.application.base_url)
        await self.session.goto(url, timeout=step.timeout or NAVIGATE_TIMEOUT_MS)

    async def _click(self, step: ClickStep) -> None:
        await self.session.wait_for_visible(step.selector, step.timeout or DEFAULT_STEP_TIMEOUT_MS)
        await self.session.click(step.selector)
        # Absorb navigation or content changes triggered by the click.
        await self.session.wait_for_timeout(CLICK_SETTLE_MS)

    async def _fill(self, step: FillStep) -> None:
        await self.session.wait_for_visible(step.selector, FILL_VISIBLE_TIMEOUT_MS)
        value = substitute(step.value, self.test_data, self.rng)
        await self.session.clear(step.selector)
        await self.session.fill(step.selector, value)

    async def _wait(self, step: WaitStep) -> None:
        timeout = step.timeout or DEFAULT_STEP_TIMEOUT_MS
        if step.selector:
            await self.session.wait_for_visible(step.selector, timeout)
        else:
            await self.session.wait_for_timeout(min(timeout, MAX_IDLE_WAIT_MS))

    async def _custom(self, step: CustomStep) -> None:
        handler = self.registry.get(step.custom_function)
        if handler is None:
            logger.warning("Unknown custom function %r, skipping", step.custom_function)
            return
        await handler(ActionContext(
            session=self.session,
            application=self.application,
            scenario=self._scenario,
            recorder=self._recorder,
            sampler=self.sampler,
            rng=self.rng,
        ))
