"""CLI entry point for comparing the performance of two web applications."""

import asyncio
import logging
import os
import sys
from datetime import datetime, timezone

import click

from perfcompare.comparison import summarize
from perfcompare.errors import PerfCompareError
from perfcompare.executor import analyze_scenario, run_comparison
from perfcompare.loader import load_config, load_scenario_file
from perfcompare.models import PerformanceReport
from perfcompare.results import group_by_scenario, read_samples, write_report


@click.group()
def main():
    """Perf Compare -- run scripted scenarios against two applications and compare them."""


@main.command()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True),
    help="Path to the run configuration (YAML or JSON). Defaults apply when omitted.",
)
@click.option(
    "--scenarios-file",
    required=True,
    type=click.Path(exists=True),
    help="Path to the scenario file (YAML or JSON).",
)
@click.option(
    "--scenario",
    "scenario_names",
    multiple=True,
    help="Scenario to run. Repeat for several. Runs the configured scenarios if omitted.",
)
@click.option("--iterations", type=click.IntRange(min=1), default=None, help="Iterations per scenario and application.")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Maximum concurrent browser sessions.")
@click.option(
    "--environment",
    type=click.Choice(["pre", "pro"]),
    default=None,
    help="Environment profile to use. Overrides the config and TEST_ENVIRONMENT.",
)
@click.option("--headed", is_flag=True, help="Show the browser windows.")
@click.option(
    "--out",
    default=None,
    type=click.Path(),
    help="Output path for the JSON report. Defaults to <outputPath>/performance-report.json.",
)
@click.option(
    "--samples",
    default=None,
    type=click.Path(),
    help="Optional JSONL file every collected sample is appended to.",
)
@click.option(
    "--fail-on-regression",
    is_flag=True,
    help="Exit with status 2 when any regression is detected.",
)
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
def run(config_path, scenarios_file, scenario_names, iterations, workers, environment,
        headed, out, samples, fail_on_regression, log_level):
    """Run scenarios against the baseline and candidate applications."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(config_path)
        library = load_scenario_file(scenarios_file)
    except PerfCompareError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if environment:
        config.environment = environment
    if headed:
        config.execution.headless = False

    unknown = [name for name in scenario_names if name not in library]
    if unknown:
        click.echo(f"Error: unknown scenario(s): {', '.join(unknown)}", err=True)
        sys.exit(1)

    try:
        report = asyncio.run(run_comparison(
            config,
            library,
            scenarios=list(scenario_names) or None,
            iterations=iterations,
            workers=workers,
            samples_path=samples,
        ))
    except Exception as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    _print_report(report)

    out = out or os.path.join(config.execution.output_path, "performance-report.json")
    write_report(report, out)
    click.echo(f"Report written to {out}")

    if fail_on_regression and report.regressions:
        sys.exit(2)


@main.command()
@click.option(
    "--baseline",
    required=True,
    type=click.Path(exists=True),
    help="JSONL samples recorded against the baseline application.",
)
@click.option(
    "--candidate",
    required=True,
    type=click.Path(exists=True),
    help="JSONL samples recorded against the candidate application.",
)
@click.option(
    "--threshold",
    default=15.0,
    type=click.FloatRange(min=0),
    show_default=True,
    help="Minimum slowdown (percent) reported as a regression.",
)
@click.option(
    "--out",
    default=None,
    type=click.Path(),
    help="Optional output path for the JSON report.",
)
def compare(baseline, candidate, threshold, out):
    """Compare two previously recorded sample files."""
    baseline_by_scenario = group_by_scenario(read_samples(baseline))
    candidate_by_scenario = group_by_scenario(read_samples(candidate))

    if not baseline_by_scenario or not candidate_by_scenario:
        click.echo("Error: both sample files must contain at least one sample", err=True)
        sys.exit(1)

    scenarios = list(baseline_by_scenario)
    scenarios += [s for s in candidate_by_scenario if s not in baseline_by_scenario]

    reports = [
        analyze_scenario(
            name,
            baseline_by_scenario.get(name, []),
            candidate_by_scenario.get(name, []),
            regression_threshold=threshold,
        )
        for name in scenarios
    ]
    comparisons = [c for r in reports for c in r.comparisons]

    baseline_samples = next(iter(baseline_by_scenario.values()))
    candidate_samples = next(iter(candidate_by_scenario.values()))
    report = PerformanceReport(
        generated_at=datetime.now(timezone.utc).isoformat(),
        environment=baseline_samples[0].environment,
        applications={
            "baseline": baseline_samples[0].application,
            "candidate": candidate_samples[0].application,
        },
        scenarios=reports,
        summary=summarize(comparisons),
        total_samples=sum(len(v) for v in baseline_by_scenario.values())
        + sum(len(v) for v in candidate_by_scenario.values()),
    )

    _print_report(report)

    if out:
        write_report(report, out)
        click.echo(f"Report written to {out}")


@main.command()
@click.option(
    "--scenarios-file",
    required=True,
    type=click.Path(exists=True),
    help="Path to the scenario file (YAML or JSON).",
)
def scenarios(scenarios_file):
    """List the scenarios defined in a scenario file."""
    try:
        library = load_scenario_file(scenarios_file)
    except PerfCompareError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    for name in library.names():
        try:
            scenario = library.get(name)
        except PerfCompareError as exc:
            click.echo(f"{name}: invalid ({exc})")
            continue
        click.echo(f"{name}: {len(scenario.steps)} step(s) - {scenario.description}")


def _print_report(report: PerformanceReport) -> None:
    baseline = report.applications.get("baseline", "baseline")
    candidate = report.applications.get("candidate", "candidate")

    for scenario in report.scenarios:
        click.echo(f"\n=== {scenario.scenario} ===")
        for app, score in scenario.scores.items():
            click.echo(f"Performance score ({app}): {score}")
        for c in scenario.comparisons:
            marker = " *" if c.significant_difference else ""
            click.echo(
                f"  {c.metric}: {baseline} {c.baseline.mean} vs {candidate} {c.candidate.mean} "
                f"({c.improvement_percent:+}%) -> {c.winner}{marker}"
            )
        for r in scenario.regressions:
            click.echo(f"  REGRESSION {r.metric}: candidate {abs(r.improvement_percent)}% slower")
        for recommendation in scenario.recommendations:
            click.echo(f"  - {recommendation}")
        for app, check in scenario.threshold_checks.items():
            if not check.passed:
                click.echo(f"  {app}: {len(check.failures)} threshold failure(s)")

    summary = report.summary
    click.echo("\n--- Summary ---")
    click.echo(f"Environment: {report.environment}")
    click.echo(f"Samples: {report.total_samples} (failed iterations: {report.failed_iterations})")
    click.echo(
        f"Wins: {baseline} {summary.baseline_wins}, {candidate} {summary.candidate_wins}, "
        f"ties {summary.ties}"
    )
    click.echo(f"Overall winner: {summary.overall_winner}")


if __name__ == "__main__":
    main()
