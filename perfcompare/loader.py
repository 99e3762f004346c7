"""Load scenario scripts and run configuration from YAML or JSON files."""

import json
import os
from typing import Dict, List, Mapping, Optional

import yaml

from perfcompare.errors import ConfigurationError
from perfcompare.models import (
    ApplicationConfig,
    EnvironmentConfig,
    ExecutionConfig,
    NetworkConditions,
    PerformanceThresholds,
    RunConfig,
    UserCredentials,
)
from perfcompare.steps import ScenarioDefinition, TestDataContext, scenario_from_dict

APPLICATION_KEYS = ("baseline", "candidate")
ENVIRONMENT_KEYS = ("pre", "pro")


class ScenarioLibrary:
    """Scenario definitions from one scenario file, validated on access.

    A malformed scenario only fails the runs that ask for it.
    """

    def __init__(self, scenarios: List[dict], test_data: Optional[dict] = None):
        self._raw: Dict[str, dict] = {}
        for entry in scenarios:
            self._raw[entry["name"]] = entry
        self._test_data = TestDataContext.from_dict(test_data)

    def names(self) -> List[str]:
        return list(self._raw)

    def __contains__(self, name: str) -> bool:
        return name in self._raw

    def get(self, name: str) -> ScenarioDefinition:
        """Build the named scenario.

        Raises:
            ConfigurationError: If the scenario is unknown or malformed.
        """
        raw = self._raw.get(name)
        if raw is None:
            raise ConfigurationError(f"scenario '{name}' not found")
        return scenario_from_dict(raw)

    def test_data(self) -> TestDataContext:
        return self._test_data

    def expected_metrics(self, name: str) -> dict:
        raw = self._raw.get(name) or {}
        expected = raw.get("expectedMetrics")
        return expected if isinstance(expected, dict) else {}


def load_scenario_file(path: str) -> ScenarioLibrary:
    """Load a scenario file.

    Args:
        path: Path to a ``.json``, ``.yaml``, or ``.yml`` scenario file.

    Returns:
        A ScenarioLibrary.

    Raises:
        ConfigurationError: If the file is missing, unreadable, or not in
            the scenario file schema.
    """
    raw = _read_document(path)

    errors: List[str] = []
    scenarios = raw.get("scenarios")
    if not isinstance(scenarios, list):
        errors.append("'scenarios' is required and must be a list")
        scenarios = []

    seen = set()
    for i, entry in enumerate(scenarios):
        if not isinstance(entry, dict):
            errors.append(f"scenarios[{i}] must be a mapping")
            continue
        name = entry.get("name")
        if not name or not isinstance(name, str):
            errors.append(f"scenarios[{i}].name is required and must be a string")
        elif name in seen:
            errors.append(f"duplicate scenario name: {name}")
        else:
            seen.add(name)

    test_data = raw.get("testData", {})
    if not isinstance(test_data, dict):
        errors.append("'testData' must be a mapping")
        test_data = {}
    elif not isinstance(test_data.get("users", []), list):
        errors.append("'testData.users' must be a list")

    if errors:
        raise ConfigurationError(
            "scenario file validation failed:\n  - " + "\n  - ".join(errors)
        )

    return ScenarioLibrary(scenarios, test_data)


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> RunConfig:
    """Load the run configuration, applying environment-variable overrides.

    Args:
        path: Optional YAML or JSON config file. Defaults apply when omitted.
        env: Environment mapping; ``os.environ`` when omitted.

    Returns:
        A validated RunConfig.

    Raises:
        ConfigurationError: If the file or the resulting config is invalid.
    """
    env = os.environ if env is None else env
    raw = _read_document(path) if path else {}
    errors: List[str] = []

    applications = _parse_applications(raw.get("applications", {}), env, errors)
    environments = _parse_environments(raw.get("environments", {}), env, errors)
    execution = _parse_execution(raw.get("execution", {}), env, errors)

    environment = env.get("TEST_ENVIRONMENT") or raw.get("environment", "pre")
    if environment not in ENVIRONMENT_KEYS:
        errors.append(f"environment must be one of {ENVIRONMENT_KEYS}, got {environment!r}")

    workers = _env_int(env, "WORKER_COUNT", errors)

    names = [app.name for app in applications.values()]
    if len(names) == len(APPLICATION_KEYS) and len(set(names)) < len(names):
        errors.append(f"baseline and candidate must have distinct names, both are {names[0]!r}")

    if errors:
        raise ConfigurationError(
            "config validation failed:\n  - " + "\n  - ".join(errors)
        )

    return RunConfig(
        applications=applications,
        environments=environments,
        execution=execution,
        environment=environment,
        workers=workers,
    )


# -- internal helpers ---------------------------------------------------------


def _read_document(path: str) -> dict:
    if not os.path.isfile(path):
        raise ConfigurationError(f"file not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    try:
        with open(path, "r") as f:
            if ext in (".yaml", ".yml"):
                raw = yaml.safe_load(f)
            elif ext == ".json":
                raw = json.load(f)
            else:
                raise ConfigurationError(
                    f"unsupported file extension: {ext} (expected .yaml, .yml, or .json)"
                )
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"failed to parse {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path} must be a mapping/object at the top level")
    return raw


_DEFAULT_APPLICATIONS = {
    "baseline": {"name": "Baseline Application", "baseUrl": "http://localhost:8001/baseline"},
    "candidate": {"name": "Candidate Application", "baseUrl": "http://localhost:8001/candidate"},
}


def _parse_applications(raw, env, errors: List[str]) -> Dict[str, ApplicationConfig]:
    if not isinstance(raw, dict):
        errors.append("'applications' must be a mapping")
        raw = {}

    applications = {}
    for key in APPLICATION_KEYS:
        entry = raw.get(key, _DEFAULT_APPLICATIONS[key])
        if not isinstance(entry, dict):
            errors.append(f"'applications.{key}' must be a mapping")
            continue
        prefix = key.upper()
        base_url = env.get(f"{prefix}_BASE_URL") or entry.get("baseUrl")
        if not base_url or not isinstance(base_url, str):
            errors.append(f"'applications.{key}.baseUrl' is required")
            base_url = ""

        credentials = None
        creds_raw = entry.get("credentials") or {}
        username = env.get(f"{prefix}_USERNAME") or creds_raw.get("username")
        password = env.get(f"{prefix}_PASSWORD") or creds_raw.get("password")
        if username or password:
            credentials = UserCredentials(
                username=str(username or ""),
                password=str(password or ""),
                account_type=str(creds_raw.get("accountType", "")),
            )

        applications[key] = ApplicationConfig(
            name=str(entry.get("name", key)),
            base_url=base_url,
            technology=str(entry.get("technology", "")),
            credentials=credentials,
        )
    return applications


def _parse_environments(raw, env, errors: List[str]) -> Dict[str, EnvironmentConfig]:
    if not isinstance(raw, dict):
        errors.append("'environments' must be a mapping")
        raw = {}

    iterations_override = _env_int(env, "ITERATION_COUNT", errors)
    environments = {}
    for key in ENVIRONMENT_KEYS:
        entry = raw.get(key, {})
        if not isinstance(entry, dict):
            errors.append(f"'environments.{key}' must be a mapping")
            continue

        parallel = entry.get("parallelInstances", 1)
        iterations = entry.get("iterations", 1)
        if not isinstance(parallel, int) or parallel < 1:
            errors.append(f"'environments.{key}.parallelInstances' must be a positive integer")
            parallel = 1
        if not isinstance(iterations, int) or iterations < 1:
            errors.append(f"'environments.{key}.iterations' must be a positive integer")
            iterations = 1

        network = None
        net_raw = entry.get("networkConditions")
        if isinstance(net_raw, dict):
            network = NetworkConditions(
                offline=bool(net_raw.get("offline", False)),
                download_throughput=float(net_raw.get("downloadThroughput", -1)),
                upload_throughput=float(net_raw.get("uploadThroughput", -1)),
                latency=float(net_raw.get("latency", 0)),
            )
        elif net_raw is not None:
            errors.append(f"'environments.{key}.networkConditions' must be a mapping")

        environments[key] = EnvironmentConfig(
            name=str(entry.get("name", key)),
            parallel_instances=parallel,
            iterations=iterations_override or iterations,
            network_conditions=network,
        )
    return environments


def _parse_execution(raw, env, errors: List[str]) -> ExecutionConfig:
    if not isinstance(raw, dict):
        errors.append("'execution' must be a mapping")
        raw = {}

    scenarios = raw.get("scenarios", [])
    if not isinstance(scenarios, list) or not all(isinstance(s, str) for s in scenarios):
        errors.append("'execution.scenarios' must be a list of names")
        scenarios = []

    thresholds_raw = raw.get("thresholds", {})
    if not isinstance(thresholds_raw, dict):
        errors.append("'execution.thresholds' must be a mapping")
        thresholds_raw = {}

    regression = raw.get("regressionThreshold", 15.0)
    if not isinstance(regression, (int, float)) or regression < 0:
        errors.append("'execution.regressionThreshold' must be a non-negative number")
        regression = 15.0

    delay = raw.get("iterationDelayMs", 2000)
    if not isinstance(delay, int) or delay < 0:
        errors.append("'execution.iterationDelayMs' must be a non-negative integer")
        delay = 2000

    headless = bool(raw.get("headless", True))
    if env.get("HEADED", "").lower() == "true":
        headless = False

    return ExecutionConfig(
        scenarios=scenarios,
        output_path=env.get("OUTPUT_PATH") or str(raw.get("outputPath", "./reports")),
        thresholds=PerformanceThresholds().merged(thresholds_raw),
        regression_threshold=float(regression),
        iteration_delay_ms=delay,
        headless=headless,
    )


def _env_int(env, name: str, errors: List[str]) -> Optional[int]:
    value = env.get(name)
    if not value:
        return None
    try:
        parsed = int(value)
    except ValueError:
        errors.append(f"{name} must be an integer, got {value!r}")
        return None
    if parsed < 1:
        errors.append(f"{name} must be a positive integer")
        return None
    return parsed
