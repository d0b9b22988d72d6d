"""
Data models for the Network Latency Tester.

Defines structured types for DNS strategies, probe targets, per-iteration
outcomes, aggregated statistics and the finished run configuration.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class StrategyKind(Enum):
    """How a probe resolves the target host name."""
    SYSTEM = "system"
    CUSTOM = "custom"
    DOH = "doh"  # DNS over HTTPS


class Phase(Enum):
    """Named sub-durations of a single probe."""
    RESOLUTION = "resolution"
    CONNECT = "connect"
    TLS_HANDSHAKE = "tls_handshake"
    FIRST_BYTE = "first_byte"
    TOTAL = "total"


class FailureKind(Enum):
    """Classified reason a probe did not succeed."""
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    DNS_RESOLUTION_FAILED = "dns_resolution_failed"
    TLS_ERROR = "tls_error"
    UNEXPECTED_STATUS = "unexpected_status"
    OTHER = "other"


class PerformanceLevel(Enum):
    """Latency band of a mean total response time."""
    EXCELLENT = "excellent"  # < 50ms
    GOOD = "good"  # 50-100ms
    FAIR = "fair"  # 100-300ms
    POOR = "poor"  # 300-1000ms
    VERY_POOR = "very_poor"  # >= 1000ms

    @classmethod
    def from_latency(cls, latency_ms: float) -> "PerformanceLevel":
        if latency_ms < 50:
            return cls.EXCELLENT
        if latency_ms < 100:
            return cls.GOOD
        if latency_ms < 300:
            return cls.FAIR
        if latency_ms < 1000:
            return cls.POOR
        return cls.VERY_POOR

    @property
    def description(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def style(self) -> str:
        """Rich style used when rendering this level."""
        return {
            PerformanceLevel.EXCELLENT: "green",
            PerformanceLevel.GOOD: "cyan",
            PerformanceLevel.FAIR: "yellow",
            PerformanceLevel.POOR: "magenta",
            PerformanceLevel.VERY_POOR: "red",
        }[self]


@dataclass(frozen=True)
class DnsStrategy:
    """
    A DNS resolution strategy.

    Exactly one of the variants is meaningful per instance: ``SYSTEM`` uses
    the operating system resolver, ``CUSTOM`` queries ``servers`` in order
    and ``DOH`` posts wire-format queries to ``doh_url``.
    """
    kind: StrategyKind
    servers: tuple[str, ...] = ()
    doh_url: Optional[str] = None

    @classmethod
    def system(cls) -> "DnsStrategy":
        return cls(kind=StrategyKind.SYSTEM)

    @classmethod
    def custom(cls, servers) -> "DnsStrategy":
        servers = tuple(servers)
        if not servers:
            raise ValueError("Custom DNS strategy needs at least one server")
        return cls(kind=StrategyKind.CUSTOM, servers=servers)

    @classmethod
    def doh(cls, url: str) -> "DnsStrategy":
        if not url:
            raise ValueError("DoH strategy needs an endpoint URL")
        return cls(kind=StrategyKind.DOH, doh_url=url)

    @property
    def label(self) -> str:
        """Human-readable name, also used as the grouping key."""
        if self.kind == StrategyKind.CUSTOM:
            return f"Custom DNS ({', '.join(self.servers)})"
        if self.kind == StrategyKind.DOH:
            return f"DoH ({self.doh_url})"
        return "System DNS"

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class ProbeTarget:
    """A target URL paired with the DNS strategy used to reach it."""
    url: str
    strategy: DnsStrategy

    @property
    def key(self) -> tuple[str, str]:
        return (self.url, self.strategy.label)


@dataclass(frozen=True)
class PhaseTimings:
    """Per-phase durations of one probe, in milliseconds."""
    total_ms: float
    resolution_ms: float = 0.0
    connect_ms: float = 0.0
    tls_handshake_ms: Optional[float] = None  # None for plaintext HTTP
    first_byte_ms: float = 0.0

    def __post_init__(self):
        for phase in Phase:
            value = self.get(phase)
            if value is not None and value < 0:
                raise ValueError(f"{phase.value} duration must be non-negative, got {value}")

    def get(self, phase: Phase) -> Optional[float]:
        """Duration of ``phase`` or None when the probe had no such phase."""
        return getattr(self, f"{phase.value}_ms")


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of a single probe iteration."""
    timings: Optional[PhaseTimings] = None
    status_code: Optional[int] = None
    failure: Optional[FailureKind] = None
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now, compare=False)

    @classmethod
    def success(cls, timings: PhaseTimings, status_code: int) -> "ProbeOutcome":
        if timings.total_ms <= 0:
            raise ValueError("Successful probe must have a positive total duration")
        return cls(timings=timings, status_code=status_code)

    @classmethod
    def failed(
        cls,
        kind: FailureKind,
        error_message: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> "ProbeOutcome":
        return cls(failure=kind, error_message=error_message, status_code=status_code)

    @property
    def is_success(self) -> bool:
        return self.failure is None

    @property
    def total_ms(self) -> Optional[float]:
        return self.timings.total_ms if self.timings else None


@dataclass(frozen=True)
class OutcomeSummary:
    """
    What the concurrency tuner observes about one completed probe.

    For a success ``latency_ms`` is the measured total; for a failure it is
    the wall-clock time the attempt took. The tuner only counts failures
    toward the failure rate and never mixes their duration into its
    latency trend or P95.
    """
    latency_ms: float
    success: bool

    @classmethod
    def from_outcome(cls, outcome: ProbeOutcome, elapsed_ms: float) -> "OutcomeSummary":
        latency = outcome.total_ms if outcome.is_success else elapsed_ms
        return cls(latency_ms=latency, success=outcome.is_success)


@dataclass(frozen=True)
class Recommendation:
    """Concurrency level and per-probe timeout (seconds) suggested by the tuner."""
    concurrency: int
    timeout: float


@dataclass(frozen=True)
class PhaseStats:
    """Aggregated timings for one phase (milliseconds)."""
    count: int
    mean_ms: float
    min_ms: float
    max_ms: float
    stddev_ms: float
    median_ms: float
    p95_ms: float
    p99_ms: float


@dataclass(frozen=True)
class Statistics:
    """
    Aggregated metrics for one configuration run.

    A phase maps to None when no successful outcome carried it, which keeps
    "no data" distinct from a real zero.
    """
    attempted: int
    successful: int
    success_rate: float
    phases: dict[Phase, Optional[PhaseStats]]
    failure_counts: dict[FailureKind, int]
    jitter_ms: Optional[float] = None

    @property
    def failed(self) -> int:
        return self.attempted - self.successful

    @property
    def total(self) -> Optional[PhaseStats]:
        return self.phases.get(Phase.TOTAL)

    @property
    def performance_level(self) -> Optional[PerformanceLevel]:
        """Band of the mean total latency, None without successes."""
        if self.total is None:
            return None
        return PerformanceLevel.from_latency(self.total.mean_ms)

    def phase(self, phase: Phase) -> Optional[PhaseStats]:
        return self.phases.get(phase)


@dataclass
class ConfigurationRun:
    """All iterations executed for one (URL, DNS strategy) pair."""
    target: ProbeTarget
    configured_iterations: int
    outcomes: list[ProbeOutcome] = field(default_factory=list)
    abandoned: bool = False
    statistics: Optional[Statistics] = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def config_name(self) -> str:
        return self.target.strategy.label

    @property
    def url(self) -> str:
        return self.target.url

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.is_success)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def record(self, outcome: ProbeOutcome) -> None:
        """Append the outcome of the next iteration."""
        if self.completed_at is not None:
            raise RuntimeError(f"Run for {self.target.key} is already finalized")
        self.outcomes.append(outcome)


@dataclass
class TestReport:
    """Complete result of one invocation, handed to the output layer."""
    started_at: datetime
    completed_at: datetime
    iterations: int
    runs: list[ConfigurationRun] = field(default_factory=list)

    # Tuner state at the end of the run
    final_concurrency: Optional[int] = None
    final_timeout: Optional[float] = None

    __test__ = False  # not a pytest test class

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def total_probes(self) -> int:
        return sum(r.attempted for r in self.runs)

    @property
    def successful_probes(self) -> int:
        return sum(r.success_count for r in self.runs)

    @property
    def abandoned_runs(self) -> list[ConfigurationRun]:
        return [r for r in self.runs if r.abandoned]


@dataclass(frozen=True)
class PlatformLimits:
    """Process-wide defaults derived once from the platform at startup."""
    cpu_cores: int
    initial_concurrency: int
    max_concurrency: int
    min_timeout: float
    max_timeout: float

    def __post_init__(self):
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if not 1 <= self.initial_concurrency <= self.max_concurrency:
            raise ValueError("initial_concurrency must lie between 1 and max_concurrency")
        if not 0 < self.min_timeout <= self.max_timeout:
            raise ValueError("timeout bounds must satisfy 0 < min_timeout <= max_timeout")


@dataclass
class RunConfig:
    """Finished, validated configuration consumed by the test executor."""
    target_urls: list[str]
    strategies: list[DnsStrategy]
    iterations: int = 5
    timeout: float = 10.0
    min_timeout: float = 1.0
    max_timeout: float = 30.0
    iteration_delay: float = 0.1
    abandon_threshold: int = 3

    # Passed through to the output layer
    enable_color: bool = True
    verbose: bool = False
    debug: bool = False

    @property
    def pair_count(self) -> int:
        return len(self.target_urls) * len(self.strategies)
