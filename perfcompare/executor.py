"""Run every (scenario x application) pair in parallel, then analyse the results."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncContextManager, Callable, List, Optional, Sequence

from playwright.async_api import Browser, async_playwright
from playwright.async_api import Error as PlaywrightError

from perfcompare.comparison import (
    check_thresholds,
    compare_applications,
    detect_regressions,
    generate_recommendations,
    summarize,
)
from perfcompare.errors import AutomationError, PerfCompareError
from perfcompare.interpreter import StepInterpreter
from perfcompare.loader import APPLICATION_KEYS, ScenarioLibrary
from perfcompare.models import (
    ApplicationConfig,
    MetricSample,
    NetworkConditions,
    PerformanceReport,
    PerformanceThresholds,
    RunConfig,
    ScenarioReport,
)
from perfcompare.results import SampleCollector, append_sample
from perfcompare.session import PlaywrightSession, Session
from perfcompare.statistics import calculate_performance_score
from perfcompare.steps import ScenarioDefinition

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[Session]]

VIEWPORT = {"width": 1366, "height": 768}


async def run_comparison(
    config: RunConfig,
    library: ScenarioLibrary,
    scenarios: Optional[Sequence[str]] = None,
    iterations: Optional[int] = None,
    workers: Optional[int] = None,
    samples_path: Optional[str] = None,
    session_factory: Optional[SessionFactory] = None,
) -> PerformanceReport:
    """Run each scenario against both applications and compare the results.

    One worker per (scenario, application) pair, at most ``workers`` at a
    time, each in its own browser context. Analysis starts only after every
    worker has finished.

    Args:
        config: Run configuration.
        library: Scenario definitions and test data.
        scenarios: Scenario names; defaults to the configured list, then to
            every scenario in the library.
        iterations: Iterations per worker; defaults to the environment's.
        workers: Maximum concurrent workers; defaults to the config's.
        samples_path: Optional JSONL file each sample is appended to.
        session_factory: Provides one session per worker. A headless
            Chromium is launched when omitted.

    Returns:
        The PerformanceReport.
    """
    names = list(scenarios or config.execution.scenarios or library.names())
    iterations = iterations or config.current_environment.iterations
    workers = workers or config.worker_count

    if session_factory is not None:
        return await _run(config, library, names, iterations, workers, samples_path, session_factory)

    async with async_playwright() as pw:
        try:
            browser = await pw.chromium.launch(headless=config.execution.headless)
        except PlaywrightError as exc:
            raise AutomationError(f"browser launch failed: {exc.message}") from exc
        try:
            network = config.current_environment.network_conditions
            return await _run(
                config, library, names, iterations, workers, samples_path,
                lambda: browser_session(browser, network),
            )
        finally:
            await browser.close()


@asynccontextmanager
async def browser_session(browser: Browser, network: Optional[NetworkConditions] = None):
    """A fresh browser context and page, throttled when ``network`` is given.

    Raises:
        AutomationError: The context or page could not be set up.
    """
    try:
        context = await browser.new_context(viewport=VIEWPORT, ignore_https_errors=True)
    except PlaywrightError as exc:
        raise AutomationError(f"browser context failed: {exc.message}") from exc
    try:
        try:
            page = await context.new_page()
            if network is not None:
                cdp = await context.new_cdp_session(page)
                await cdp.send("Network.enable")
                await cdp.send("Network.emulateNetworkConditions", {
                    "offline": network.offline,
                    "latency": network.latency,
                    "downloadThroughput": network.download_throughput,
                    "uploadThroughput": network.upload_throughput,
                })
        except PlaywrightError as exc:
            raise AutomationError(f"page setup failed: {exc.message}") from exc
        yield PlaywrightSession(page)
    finally:
        try:
            await context.close()
        except PlaywrightError as exc:
            logger.warning("Closing browser context failed: %s", exc.message)


def analyze(collector: SampleCollector, library: ScenarioLibrary, config: RunConfig) -> List[ScenarioReport]:
    """Compare baseline and candidate samples for every collected scenario."""
    baseline_name = config.applications["baseline"].name
    candidate_name = config.applications["candidate"].name

    reports = []
    for scenario in collector.scenarios():
        reports.append(analyze_scenario(
            scenario,
            collector.samples_for(baseline_name, scenario),
            collector.samples_for(candidate_name, scenario),
            thresholds=config.execution.thresholds.merged(library.expected_metrics(scenario)),
            regression_threshold=config.execution.regression_threshold,
        ))
    return reports


def analyze_scenario(
    scenario: str,
    baseline_samples: Sequence[MetricSample],
    candidate_samples: Sequence[MetricSample],
    thresholds: Optional[PerformanceThresholds] = None,
    regression_threshold: float = 15.0,
) -> ScenarioReport:
    """Comparisons, regressions, recommendations, threshold checks, and scores.

    Args:
        scenario: Scenario name.
        baseline_samples: Baseline samples for the scenario.
        candidate_samples: Candidate samples for the scenario.
        thresholds: Per-sample bounds; defaults apply when omitted.
        regression_threshold: Minimum slowdown percent reported as a regression.

    Returns:
        A ScenarioReport. Comparisons are empty unless both sides have samples.
    """
    thresholds = thresholds or PerformanceThresholds()
    report = ScenarioReport(scenario=scenario)

    for samples in (baseline_samples, candidate_samples):
        if not samples:
            continue
        application = samples[0].application
        check = check_thresholds(samples, thresholds)
        for failure in check.failures:
            logger.warning("%s: %s", scenario, failure)
        report.threshold_checks[application] = check
        report.scores[application] = calculate_performance_score(samples)

    if not baseline_samples or not candidate_samples:
        logger.warning("Scenario %s lacks samples for one application; not compared", scenario)
        return report

    report.comparisons = compare_applications(baseline_samples, candidate_samples, scenario)
    report.regressions = detect_regressions(report.comparisons, regression_threshold)
    report.recommendations = generate_recommendations(report.comparisons)
    return report


# -- internal helpers ---------------------------------------------------------


async def _run(
    config: RunConfig,
    library: ScenarioLibrary,
    names: List[str],
    iterations: int,
    workers: int,
    samples_path: Optional[str],
    session_factory: SessionFactory,
) -> PerformanceReport:
    start = time.monotonic()
    collector = SampleCollector()
    semaphore = asyncio.Semaphore(workers)

    logger.info(
        "Running %d scenario(s) x %d application(s), %d iteration(s) each, %d worker(s)",
        len(names), len(APPLICATION_KEYS), iterations, workers,
    )

    failures = await asyncio.gather(*(
        _worker(config, library, name, key, iterations, semaphore, collector, samples_path, session_factory)
        for name in names
        for key in APPLICATION_KEYS
    ))
    # Every worker has joined; the sample population is complete.
    collector.close()

    scenario_reports = analyze(collector, library, config)
    comparisons = [c for s in scenario_reports for c in s.comparisons]

    return PerformanceReport(
        generated_at=datetime.now(timezone.utc).isoformat(),
        environment=config.environment,
        applications={key: config.applications[key].name for key in APPLICATION_KEYS},
        scenarios=scenario_reports,
        summary=summarize(comparisons),
        total_samples=len(collector),
        failed_iterations=sum(failures),
        execution_time_ms=(time.monotonic() - start) * 1000,
    )


async def _worker(
    config: RunConfig,
    library: ScenarioLibrary,
    scenario_name: str,
    app_key: str,
    iterations: int,
    semaphore: asyncio.Semaphore,
    collector: SampleCollector,
    samples_path: Optional[str],
    session_factory: SessionFactory,
) -> int:
    """Run all iterations of one scenario for one application; return failures."""
    application = config.applications[app_key]
    try:
        scenario = library.get(scenario_name)
    except PerfCompareError as exc:
        logger.error("%s - %s: %s", application.name, scenario_name, exc)
        return iterations

    # Iterations that never ran because the session failed to open count as failed.
    failures = iterations
    async with semaphore:
        try:
            async with session_factory() as session:
                failures = await _iterate(
                    config, library, scenario, application, iterations, collector, samples_path, session,
                )
        except PerfCompareError as exc:
            logger.error("%s - %s: browser session failed: %s", application.name, scenario_name, exc)
    return failures


async def _iterate(
    config: RunConfig,
    library: ScenarioLibrary,
    scenario: ScenarioDefinition,
    application: ApplicationConfig,
    iterations: int,
    collector: SampleCollector,
    samples_path: Optional[str],
    session: Session,
) -> int:
    failures = 0
    interpreter = StepInterpreter(session, application, library.test_data())
    for iteration in range(1, iterations + 1):
        try:
            sample = await interpreter.run_scenario(scenario, config.environment, iteration)
        except PerfCompareError as exc:
            failures += 1
            logger.error(
                "%s - %s - iteration %d/%d failed: %s",
                application.name, scenario.name, iteration, iterations, exc,
            )
            continue

        collector.add(sample)
        if samples_path:
            append_sample(sample, samples_path)
        logger.info(
            "%s - %s - iteration %d/%d: %.0fms total load",
            application.name, scenario.name, iteration, iterations,
            sample.performance_metrics.total_page_load_time,
        )

        if iteration < iterations and config.execution.iteration_delay_ms:
            try:
                await session.wait_for_timeout(config.execution.iteration_delay_ms)
            except PerfCompareError as exc:
                logger.warning("%s - %s: delay between iterations failed: %s",
                               application.name, scenario.name, exc)
    return failures
