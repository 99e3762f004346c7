"""Data models for metric samples, comparisons, and run configuration."""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple


# -- telemetry ----------------------------------------------------------------


@dataclass(frozen=True)
class CoreWebVitals:
    lcp: float = 0.0
    cls: float = 0.0
    fid: float = 0.0
    inp: float = 0.0


@dataclass(frozen=True)
class ResourceTiming:
    name: str
    type: str  # "script", "stylesheet", "image", "font", "other"
    duration: float = 0.0
    size: int = 0
    transfer_size: int = 0


@dataclass(frozen=True)
class PerformanceMetrics:
    ttfb: float = 0.0
    fcp: float = 0.0
    tti: float = 0.0
    dns_time: float = 0.0
    ssl_time: float = 0.0
    total_page_load_time: float = 0.0
    dom_content_loaded: float = 0.0
    load_complete: float = 0.0
    resource_load_times: Tuple[ResourceTiming, ...] = ()


@dataclass(frozen=True)
class ApplicationMetrics:
    navigation_times: Dict[str, float] = field(default_factory=dict)
    api_response_times: Dict[str, float] = field(default_factory=dict)
    form_processing_times: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricSample:
    """One completed scenario run. 0 in a numeric field means "not captured"."""

    timestamp: str
    url: str
    environment: str  # "pre" or "pro"
    application: str
    scenario: str
    iteration: int
    core_web_vitals: CoreWebVitals = field(default_factory=CoreWebVitals)
    performance_metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    application_metrics: ApplicationMetrics = field(default_factory=ApplicationMetrics)
    user_agent: str = ""


# -- analysis -----------------------------------------------------------------


@dataclass(frozen=True)
class StatisticalSummary:
    mean: float
    median: float
    p95: float
    p99: float
    min: float
    max: float
    standard_deviation: float
    variance: float


@dataclass(frozen=True)
class ComparisonResult:
    scenario: str
    metric: str
    baseline: StatisticalSummary
    candidate: StatisticalSummary
    improvement_percent: float  # positive means the candidate is faster
    significant_difference: bool
    winner: str  # "baseline", "candidate", "tie"


@dataclass
class PerformanceThresholds:
    lcp: float = 2500.0
    fid: float = 100.0
    cls: float = 0.1
    ttfb: float = 600.0
    total_load_time: float = 5000.0

    def merged(self, overrides: Optional[dict]) -> "PerformanceThresholds":
        """Return a copy with the given (camelCase or snake_case) keys replaced."""
        if not overrides:
            return replace(self)
        aliases = {"totalLoadTime": "total_load_time"}
        changes = {}
        for key, value in overrides.items():
            name = aliases.get(key, key)
            if name in _THRESHOLD_FIELDS and isinstance(value, (int, float)):
                changes[name] = float(value)
        return replace(self, **changes)


_THRESHOLD_FIELDS = ("lcp", "fid", "cls", "ttfb", "total_load_time")


@dataclass
class ThresholdReport:
    passed: bool
    failures: List[str] = field(default_factory=list)


@dataclass
class WinSummary:
    baseline_wins: int = 0
    candidate_wins: int = 0
    ties: int = 0
    overall_winner: str = "tie"

    @property
    def total(self) -> int:
        return self.baseline_wins + self.candidate_wins + self.ties


@dataclass
class ScenarioReport:
    scenario: str
    comparisons: List[ComparisonResult] = field(default_factory=list)
    regressions: List[ComparisonResult] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    threshold_checks: Dict[str, ThresholdReport] = field(default_factory=dict)
    scores: Dict[str, float] = field(default_factory=dict)


@dataclass
class PerformanceReport:
    generated_at: str
    environment: str
    applications: Dict[str, str] = field(default_factory=dict)
    scenarios: List[ScenarioReport] = field(default_factory=list)
    summary: WinSummary = field(default_factory=WinSummary)
    total_samples: int = 0
    failed_iterations: int = 0
    execution_time_ms: float = 0.0

    @property
    def comparisons(self) -> List[ComparisonResult]:
        return [c for s in self.scenarios for c in s.comparisons]

    @property
    def regressions(self) -> List[ComparisonResult]:
        return [r for s in self.scenarios for r in s.regressions]


# -- configuration ------------------------------------------------------------


@dataclass
class UserCredentials:
    username: str
    password: str
    account_type: str = ""


@dataclass
class ApplicationConfig:
    name: str
    base_url: str
    technology: str = ""
    credentials: Optional[UserCredentials] = None


@dataclass
class NetworkConditions:
    offline: bool = False
    download_throughput: float = -1  # bytes/s, -1 disables throttling
    upload_throughput: float = -1
    latency: float = 0  # ms


@dataclass
class EnvironmentConfig:
    name: str
    parallel_instances: int = 1
    iterations: int = 1
    network_conditions: Optional[NetworkConditions] = None


@dataclass
class ExecutionConfig:
    scenarios: List[str] = field(default_factory=list)
    output_path: str = "./reports"
    thresholds: PerformanceThresholds = field(default_factory=PerformanceThresholds)
    regression_threshold: float = 15.0
    iteration_delay_ms: int = 2000
    headless: bool = True


@dataclass
class RunConfig:
    applications: Dict[str, ApplicationConfig]  # keyed "baseline", "candidate"
    environments: Dict[str, EnvironmentConfig]  # keyed "pre", "pro"
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    environment: str = "pre"
    workers: Optional[int] = None

    @property
    def current_environment(self) -> EnvironmentConfig:
        return self.environments[self.environment]

    @property
    def worker_count(self) -> int:
        if self.workers is not None:
            return self.workers
        return self.current_environment.parallel_instances
